"""Profile reads and the conditional stats update."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import select, update

from culturebridge.challenges.levels import level_title
from culturebridge.challenges.scoring import ProfileStats
from culturebridge.db.models import Profile

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProfileSnapshot:
    """Immutable view of a profile row handed to observers and responses."""

    user_id: str
    username: str | None
    display_name: str | None
    avatar_url: str | None
    level: str
    total_points: int
    current_streak: int
    max_streak: int
    countries_bridged: tuple[str, ...]

    @classmethod
    def from_row(cls, row: Profile) -> ProfileSnapshot:
        return cls(
            user_id=row.user_id,
            username=row.username,
            display_name=row.display_name,
            avatar_url=row.avatar_url,
            level=row.level,
            total_points=row.total_points or 0,
            current_streak=row.current_streak or 0,
            max_streak=row.max_streak or 0,
            countries_bridged=tuple(row.countries_bridged or ()),
        )

    @property
    def stats(self) -> ProfileStats:
        return ProfileStats(
            total_points=self.total_points,
            current_streak=self.current_streak,
            max_streak=self.max_streak,
            countries_bridged=self.countries_bridged,
        )


async def get_profile(db: AsyncSession, user_id: str) -> Profile | None:
    """Fetch a profile, bypassing any stale copy in the session identity map."""
    result = await db.execute(
        select(Profile)
        .where(Profile.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_or_create_profile(
    db: AsyncSession,
    user_id: str,
    username: str | None = None,
) -> tuple[Profile, bool]:
    """Get the user's profile, creating an empty one on first sign-in.

    Returns:
        Tuple of (profile, created).
    """
    profile = await get_profile(db, user_id)
    if profile is not None:
        return profile, False

    now = datetime.now(timezone.utc)
    profile = Profile(
        user_id=user_id,
        username=username,
        display_name=username,
        level=level_title(0),
        total_points=0,
        current_streak=0,
        max_streak=0,
        countries_bridged=[],
        created_at=now,
        updated_at=now,
    )
    db.add(profile)
    await db.flush()
    logger.info("profile_created", user_id=user_id)
    return profile, True


async def compare_and_set_stats(
    db: AsyncSession,
    user_id: str,
    expected: ProfileStats,
    new: ProfileStats,
    now: datetime | None = None,
) -> bool:
    """Write new stats only if the row still holds ``expected``.

    Every stats write adds points, so ``total_points`` together with
    ``current_streak`` acts as the row version. Returns False when another
    writer got there first.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    result = await db.execute(
        update(Profile)
        .where(
            Profile.user_id == user_id,
            Profile.total_points == expected.total_points,
            Profile.current_streak == expected.current_streak,
        )
        .values(
            total_points=new.total_points,
            current_streak=new.current_streak,
            max_streak=new.max_streak,
            countries_bridged=list(new.countries_bridged),
            level=level_title(new.total_points),
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
