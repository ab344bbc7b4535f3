"""In-memory challenge catalog and daily challenge selection."""

from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from culturebridge.challenges.matching import is_scorable, usable_choices
from culturebridge.db.models import Challenge

DEFAULT_REROLL_ATTEMPTS = 10


@dataclass(frozen=True)
class ChallengeSnapshot:
    """Read-only copy of a challenge row, held for the lifetime of a session."""

    id: str
    title: str
    description: str
    type: str
    country: str
    flag: str
    points: int
    difficulty: str
    options: dict[str, Any] | None
    correct_answer: str | None
    is_daily: bool
    created_at: datetime
    media_url: str | None = None

    @classmethod
    def from_row(cls, row: Challenge) -> ChallengeSnapshot:
        options = row.options
        if isinstance(options, dict) and isinstance(options.get("choices"), list):
            # Detach from the ORM-tracked JSON so session shuffles never leak back
            options = {**options, "choices": tuple(options["choices"])}
        return cls(
            id=row.id,
            title=row.title,
            description=row.description,
            type=row.type,
            country=row.country,
            flag=row.flag,
            points=row.points,
            difficulty=row.difficulty,
            options=options,
            correct_answer=row.correct_answer,
            is_daily=bool(row.is_daily),
            created_at=row.created_at,
            media_url=row.media_url,
        )

    @property
    def choices(self) -> list[str] | None:
        return usable_choices(self.options)

    @property
    def scorable(self) -> bool:
        return is_scorable(self)


@dataclass(frozen=True)
class DailyPick:
    """A challenge chosen for today plus the session-local order of its choices."""

    challenge: ChallengeSnapshot
    choices: tuple[str, ...] | None = None


def shuffled(items: Sequence[str], rng: random.Random | None = None) -> tuple[str, ...]:
    """Uniform permutation of ``items`` (Fisher-Yates) without touching the input."""
    rng = rng or random.SystemRandom()
    out = list(items)
    for i in range(len(out) - 1, 0, -1):
        j = rng.randint(0, i)
        out[i], out[j] = out[j], out[i]
    return tuple(out)


def eligible_pool(catalog: Sequence[ChallengeSnapshot]) -> list[ChallengeSnapshot]:
    """Challenges flagged daily, or the whole catalog when none are flagged."""
    flagged = [c for c in catalog if c.is_daily]
    return flagged or list(catalog)


def _pick(challenge: ChallengeSnapshot, rng: random.Random | None) -> DailyPick:
    choices = challenge.choices
    return DailyPick(
        challenge=challenge,
        choices=shuffled(choices, rng) if choices else None,
    )


def select_daily(
    catalog: Sequence[ChallengeSnapshot],
    rng: random.Random | None = None,
) -> DailyPick | None:
    """Pick today's challenge uniformly at random. None for an empty catalog."""
    pool = eligible_pool(catalog)
    if not pool:
        return None
    rng = rng or random.SystemRandom()
    return _pick(rng.choice(pool), rng)


def advance_daily(
    catalog: Sequence[ChallengeSnapshot],
    current_id: str | None,
    rng: random.Random | None = None,
    attempts: int = DEFAULT_REROLL_ATTEMPTS,
) -> DailyPick | None:
    """Pick a new daily challenge, avoiding ``current_id`` when possible.

    Re-rolls at most ``attempts`` times and then accepts a repeat, so
    single-member pools never loop forever.
    """
    pool = eligible_pool(catalog)
    if not pool:
        return None
    rng = rng or random.SystemRandom()

    candidate = rng.choice(pool)
    for _ in range(max(attempts, 1) - 1):
        if candidate.id != current_id:
            break
        candidate = rng.choice(pool)
    return _pick(candidate, rng)
