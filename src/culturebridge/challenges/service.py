"""Challenge catalog and attempt persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import select

from culturebridge.challenges.catalog import ChallengeSnapshot
from culturebridge.db.models import Challenge, UserChallenge

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class ChallengeSummary:
    id: str | None
    title: str | None
    country: str | None
    flag: str | None


@dataclass(frozen=True)
class RecentAttempt:
    id: str
    challenge_id: str
    user_answer: str | None
    is_correct: bool
    points_earned: int
    completed_at: datetime
    challenge: ChallengeSummary


_MISSING_CHALLENGE = ChallengeSummary(id=None, title=None, country=None, flag=None)


async def load_challenges(db: AsyncSession) -> list[ChallengeSnapshot]:
    """Full catalog, newest first."""
    result = await db.execute(select(Challenge).order_by(Challenge.created_at.desc()))
    return [ChallengeSnapshot.from_row(row) for row in result.scalars()]


async def get_challenge(db: AsyncSession, challenge_id: str) -> ChallengeSnapshot | None:
    result = await db.execute(select(Challenge).where(Challenge.id == challenge_id))
    row = result.scalar_one_or_none()
    return ChallengeSnapshot.from_row(row) if row is not None else None


async def insert_attempt(
    db: AsyncSession,
    user_id: str,
    challenge_id: str,
    user_answer: str | None,
    is_correct: bool,
    points_earned: int,
    completed_at: datetime | None = None,
) -> UserChallenge:
    """Append a new attempt row. Never updates an earlier attempt."""
    attempt = UserChallenge(
        user_id=user_id,
        challenge_id=challenge_id,
        user_answer=user_answer,
        is_correct=is_correct,
        points_earned=points_earned,
        completed_at=completed_at or datetime.now(timezone.utc),
    )
    db.add(attempt)
    await db.flush()
    return attempt


async def last_correct_attempt_at(
    db: AsyncSession,
    user_id: str,
    exclude_attempt_id: str | None = None,
) -> datetime | None:
    """Timestamp of the user's most recent correct attempt, if any."""
    stmt = (
        select(UserChallenge.completed_at)
        .where(UserChallenge.user_id == user_id, UserChallenge.is_correct.is_(True))
        .order_by(UserChallenge.completed_at.desc())
        .limit(1)
    )
    if exclude_attempt_id is not None:
        stmt = stmt.where(UserChallenge.id != exclude_attempt_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def _summary(challenge: Challenge | None) -> ChallengeSummary | None:
    if challenge is None:
        return None
    return ChallengeSummary(
        id=challenge.id,
        title=challenge.title,
        country=challenge.country,
        flag=challenge.flag,
    )


async def get_recent_attempts(db: AsyncSession, user_id: str, limit: int = 3) -> list[RecentAttempt]:
    """Newest attempts joined with a challenge summary.

    Rows whose challenge did not come back from the join are looked up one by
    one; if still missing they are returned with empty challenge fields.
    """
    result = await db.execute(
        select(UserChallenge, Challenge)
        .outerjoin(Challenge, Challenge.id == UserChallenge.challenge_id)
        .where(UserChallenge.user_id == user_id)
        .order_by(UserChallenge.completed_at.desc())
        .limit(limit)
    )
    rows = result.all()

    fallback: dict[str, ChallengeSummary] = {}
    attempts: list[RecentAttempt] = []
    for attempt, challenge in rows:
        summary = _summary(challenge)
        if summary is None:
            if attempt.challenge_id not in fallback:
                single = await db.execute(select(Challenge).where(Challenge.id == attempt.challenge_id))
                fallback[attempt.challenge_id] = _summary(single.scalar_one_or_none()) or _MISSING_CHALLENGE
            summary = fallback[attempt.challenge_id]
        attempts.append(RecentAttempt(
            id=attempt.id,
            challenge_id=attempt.challenge_id,
            user_answer=attempt.user_answer,
            is_correct=attempt.is_correct,
            points_earned=attempt.points_earned,
            completed_at=attempt.completed_at,
            challenge=summary,
        ))
    return attempts
