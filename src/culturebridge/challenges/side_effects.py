"""Best-effort follow-ups of a recorded attempt (feed post, notifications).

They run after the primary writes are committed; a failure is logged and
counted, never raised back into the caller's result.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger()


class SideEffects:
    """Runs named best-effort steps and keeps success/failure counts."""

    def __init__(self) -> None:
        self.succeeded: Counter[str] = Counter()
        self.failed: Counter[str] = Counter()

    async def run(self, name: str, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> bool:  # noqa: ANN401
        try:
            await fn(*args, **kwargs)
        except Exception:
            self.failed[name] += 1
            logger.warning("side_effect_failed", effect=name, failures=self.failed[name], exc_info=True)
            return False
        self.succeeded[name] += 1
        return True

    def get_stats(self) -> dict[str, dict[str, int]]:
        return {"succeeded": dict(self.succeeded), "failed": dict(self.failed)}
