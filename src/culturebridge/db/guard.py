"""Bounded waits around row store calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from culturebridge.config import get_settings
from culturebridge.errors import PersistenceFailure

T = TypeVar("T")


async def guarded(awaitable: Awaitable[T], stage: str, timeout: float | None = None) -> T:
    """Await a row store call with a timeout.

    Timeouts and driver errors surface as ``PersistenceFailure`` tagged with ``stage``.
    """
    if timeout is None:
        timeout = get_settings().row_store_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as e:
        msg = f"Row store did not respond within {timeout:g}s"
        raise PersistenceFailure(msg, stage=stage) from e
    except SQLAlchemyError as e:
        msg = f"Row store error: {e.__class__.__name__}"
        raise PersistenceFailure(msg, stage=stage) from e
