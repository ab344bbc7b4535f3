"""Scoring and streak rules. Pure functions, no I/O."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timezone


@dataclass(frozen=True)
class ProfileStats:
    """The slice of a profile that an attempt can change."""

    total_points: int = 0
    current_streak: int = 0
    max_streak: int = 0
    countries_bridged: tuple[str, ...] = ()


def points_awarded(base_points: int, is_correct: bool) -> int:
    """Full points when correct, half (floored) otherwise."""
    if base_points <= 0:
        msg = f"base_points must be positive, got {base_points}"
        raise ValueError(msg)
    return base_points if is_correct else base_points // 2


def utc_day(ts: datetime) -> date:
    """Calendar day of a timestamp in UTC. Naive timestamps are taken as UTC."""
    if ts.tzinfo is None:
        return ts.date()
    return ts.astimezone(timezone.utc).date()


def compute_new_streak(
    previous_correct_at: datetime | None,
    current_streak: int,
    now: datetime | None = None,
) -> int:
    """Streak value after a correct attempt made at ``now``.

    Only call this for correct attempts; incorrect ones leave the streak alone.
    """
    if previous_correct_at is None:
        return 1
    if now is None:
        now = datetime.now(timezone.utc)

    gap = (utc_day(now) - utc_day(previous_correct_at)).days
    if gap == 0:
        # Same-day repeats must not inflate; a zero streak still counts today
        return max(current_streak, 1)
    if gap == 1:
        return current_streak + 1
    # Two or more days, or a previous attempt dated in the future
    return 1


def bridge_country(countries: tuple[str, ...], country: str | None) -> tuple[str, ...]:
    """Add a country once, keeping first-seen order."""
    if not country or country in countries:
        return countries
    return (*countries, country)


def apply_attempt(
    stats: ProfileStats,
    *,
    base_points: int,
    is_correct: bool,
    country: str | None,
    previous_correct_at: datetime | None,
    now: datetime | None = None,
) -> tuple[ProfileStats, int]:
    """Fold one attempt into profile stats.

    Returns the new stats and the points awarded. Zero-point attempts leave
    the stats untouched.
    """
    points = points_awarded(base_points, is_correct)
    if points == 0:
        return stats, 0

    new_streak = stats.current_streak
    new_max = stats.max_streak
    if is_correct:
        new_streak = compute_new_streak(previous_correct_at, stats.current_streak, now)
        new_max = max(new_streak, stats.max_streak)

    return replace(
        stats,
        total_points=stats.total_points + points,
        current_streak=new_streak,
        max_streak=new_max,
        countries_bridged=bridge_country(stats.countries_bridged, country),
    ), points
