"""End-to-end attempt recording against the row store."""

from __future__ import annotations

import random
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from culturebridge.challenges.session import (
    ERROR_NOT_FOUND,
    ERROR_PROFILE_UPDATE_FAILED,
    ERROR_RECORDING_FAILED,
    ChallengeSession,
    SessionState,
)
from culturebridge.db.models import FeedPost, UserChallenge
from culturebridge.errors import DegradedChallenge, NotFound
from culturebridge.users.service import get_profile

NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


async def _bound_session(db: AsyncSession, user_id: str) -> ChallengeSession:
    session = ChallengeSession(user_id=user_id, rng=random.Random(0))
    await session.bind_user(db, user_id)
    await session.load_challenges(db)
    return session


async def _count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


async def _raise_db_error(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("connection reset"))


class TestScoring:
    @pytest.mark.asyncio
    async def test_correct_next_day_extends_streak(
        self, db_session, make_profile, make_challenge, make_attempt
    ) -> None:
        await make_profile("u-1", total_points=100, current_streak=3, max_streak=5, countries_bridged=["Italy"])
        challenge = await make_challenge(country="Japan", points=20, correct_answer="Ohayo")
        await make_attempt("u-1", challenge.id, datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc))

        session = await _bound_session(db_session, "u-1")
        result = await session.submit_answer(db_session, challenge.id, "ohayo", now=NOW)

        assert result.recorded is True
        assert result.awarded_full is True
        assert result.points_awarded == 20
        assert result.error is None
        assert result.updated_profile.total_points == 120
        assert result.updated_profile.current_streak == 4
        assert result.updated_profile.max_streak == 5
        assert result.updated_profile.countries_bridged == ("Italy", "Japan")

        row = await get_profile(db_session, "u-1")
        assert row.total_points == 120
        assert row.current_streak == 4
        assert row.countries_bridged == ["Italy", "Japan"]
        assert row.level == "Culture Explorer"

    @pytest.mark.asyncio
    async def test_same_day_repeat_does_not_inflate_streak(
        self, db_session, make_profile, make_challenge, make_attempt
    ) -> None:
        await make_profile("u-1", total_points=50, current_streak=4, max_streak=4, countries_bridged=["Japan"])
        challenge = await make_challenge(points=20)
        await make_attempt("u-1", challenge.id, datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc))

        session = await _bound_session(db_session, "u-1")
        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert result.updated_profile.total_points == 70
        assert result.updated_profile.current_streak == 4
        assert result.updated_profile.countries_bridged == ("Japan",)

    @pytest.mark.asyncio
    async def test_gap_resets_streak(self, db_session, make_profile, make_challenge, make_attempt) -> None:
        await make_profile("u-1", total_points=900, current_streak=40, max_streak=40)
        challenge = await make_challenge(points=20)
        await make_attempt("u-1", challenge.id, datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))

        session = await _bound_session(db_session, "u-1")
        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert result.updated_profile.current_streak == 1
        assert result.updated_profile.max_streak == 40

    @pytest.mark.asyncio
    async def test_incorrect_awards_half_and_keeps_streak(
        self, db_session, make_profile, make_challenge, make_attempt
    ) -> None:
        await make_profile("u-1", total_points=100, current_streak=3, max_streak=5, countries_bridged=["Italy"])
        challenge = await make_challenge(points=20)
        await make_attempt("u-1", challenge.id, datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc))

        session = await _bound_session(db_session, "u-1")
        result = await session.submit_answer(db_session, challenge.id, "Konnichiwa", now=NOW)

        assert result.recorded is True
        assert result.awarded_full is False
        assert result.points_awarded == 10
        assert result.updated_profile.total_points == 110
        assert result.updated_profile.current_streak == 3
        assert result.updated_profile.countries_bridged == ("Italy", "Japan")

    @pytest.mark.asyncio
    async def test_first_correct_attempt_starts_streak(self, db_session, make_challenge) -> None:
        challenge = await make_challenge(points=20)

        session = await _bound_session(db_session, "u-new")
        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert result.updated_profile.total_points == 20
        assert result.updated_profile.current_streak == 1
        assert result.updated_profile.max_streak == 1

    @pytest.mark.asyncio
    async def test_streak_over_consecutive_days(self, db_session, make_challenge) -> None:
        challenge = await make_challenge(points=10)
        session = await _bound_session(db_session, "u-1")

        for day in (8, 9, 10):
            result = await session.submit_answer(
                db_session, challenge.id, "Ohayo", now=datetime(2026, 3, day, 10, tzinfo=timezone.utc)
            )
        assert result.updated_profile.current_streak == 3
        assert result.updated_profile.max_streak == 3
        assert result.updated_profile.total_points == 30

    @pytest.mark.asyncio
    async def test_zero_point_attempt_recorded_without_profile_change(
        self, db_session, make_profile, make_challenge
    ) -> None:
        await make_profile("u-1", total_points=10, current_streak=2, max_streak=2)
        challenge = await make_challenge(points=1, country="Peru")

        session = await _bound_session(db_session, "u-1")
        result = await session.submit_answer(db_session, challenge.id, "wrong", now=NOW)

        assert result.recorded is True
        assert result.points_awarded == 0
        assert await _count(db_session, UserChallenge) == 1
        assert await _count(db_session, FeedPost) == 0
        row = await get_profile(db_session, "u-1")
        assert row.total_points == 10
        assert row.countries_bridged == []

    @pytest.mark.asyncio
    async def test_multiple_choice_exact_match(self, db_session, make_challenge) -> None:
        challenge = await make_challenge(
            type="quiz", country="Italy", options={"choices": ["Rome", "Roma", "Milan"]}, correct_answer="Rome"
        )
        session = await _bound_session(db_session, "u-1")

        near = await session.submit_answer(db_session, challenge.id, "Roma", now=NOW)
        exact = await session.submit_answer(db_session, challenge.id, " rome ", now=NOW)
        assert near.awarded_full is False
        assert exact.awarded_full is True

    @pytest.mark.asyncio
    async def test_audio_always_full_points(self, db_session, make_challenge) -> None:
        challenge = await make_challenge(type="audio", correct_answer=None, points=30)
        session = await _bound_session(db_session, "u-1")

        result = await session.submit_answer(db_session, challenge.id, None, now=NOW)
        assert result.awarded_full is True
        assert result.points_awarded == 30
        attempt = (await db_session.execute(select(UserChallenge))).scalar_one()
        assert attempt.user_answer == "recorded"


class TestFeedEmission:
    @pytest.mark.asyncio
    async def test_scored_attempt_emits_one_post(self, db_session, make_challenge) -> None:
        challenge = await make_challenge(title="Greeting in Japanese", points=20)
        session = await _bound_session(db_session, "u-1")

        await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        post = (await db_session.execute(select(FeedPost))).scalar_one()
        assert post.user_id == "u-1"
        assert post.challenge_id == challenge.id
        assert post.action_type == "challenge_completed"
        assert post.action_description == "completed the Greeting in Japanese"
        assert post.points_earned == 20
        assert post.streak_count == 1
        assert post.country == "Japan"
        assert session.side_effects.succeeded["feed_post"] == 1

    @pytest.mark.asyncio
    async def test_feed_failure_does_not_fail_attempt(self, db_session, make_challenge, monkeypatch) -> None:
        challenge = await make_challenge(points=20)
        session = await _bound_session(db_session, "u-1")
        monkeypatch.setattr("culturebridge.challenges.session.create_feed_post", _raise_db_error)

        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert result.recorded is True
        assert result.error is None
        assert result.updated_profile.total_points == 20
        assert session.side_effects.failed["feed_post"] == 1
        assert await _count(db_session, FeedPost) == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_insert_failure_changes_nothing(
        self, db_session, make_profile, make_challenge, monkeypatch
    ) -> None:
        await make_profile("u-1", total_points=100, current_streak=3, max_streak=5)
        challenge = await make_challenge(points=20)
        session = await _bound_session(db_session, "u-1")
        monkeypatch.setattr("culturebridge.challenges.session.insert_attempt", _raise_db_error)

        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert result.recorded is False
        assert result.error == ERROR_RECORDING_FAILED
        assert result.points_awarded == 0
        assert await _count(db_session, UserChallenge) == 0
        assert await _count(db_session, FeedPost) == 0
        row = await get_profile(db_session, "u-1")
        assert row.total_points == 100
        assert row.current_streak == 3

    @pytest.mark.asyncio
    async def test_profile_failure_keeps_attempt_and_flags_stale(
        self, db_session, make_profile, make_challenge, monkeypatch
    ) -> None:
        await make_profile("u-1", total_points=100, current_streak=3, max_streak=5)
        challenge = await make_challenge(points=20)
        session = await _bound_session(db_session, "u-1")
        monkeypatch.setattr("culturebridge.challenges.session.compare_and_set_stats", _raise_db_error)

        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert result.recorded is True
        assert result.error == ERROR_PROFILE_UPDATE_FAILED
        assert result.profile_stale is True
        assert result.updated_profile is None
        assert await _count(db_session, UserChallenge) == 1
        assert await _count(db_session, FeedPost) == 0
        row = await get_profile(db_session, "u-1")
        assert row.total_points == 100

    @pytest.mark.asyncio
    async def test_lost_compare_and_set_retries_then_fails(
        self, db_session, make_profile, make_challenge, monkeypatch
    ) -> None:
        await make_profile("u-1", total_points=100)
        challenge = await make_challenge(points=20)
        session = await _bound_session(db_session, "u-1")
        calls = []

        async def always_lose(*args, **kwargs):
            calls.append(1)
            return False

        monkeypatch.setattr("culturebridge.challenges.session.compare_and_set_stats", always_lose)

        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)
        assert result.error == ERROR_PROFILE_UPDATE_FAILED
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_concurrent_writer_is_not_overwritten(
        self, db_session, make_profile, make_challenge, monkeypatch
    ) -> None:
        """A write landing between read and update forces a re-read, not a lost update."""
        from culturebridge.challenges import session as session_module
        from culturebridge.db.models import Profile
        from sqlalchemy import update

        await make_profile("u-1", total_points=100, current_streak=1, max_streak=1)
        challenge = await make_challenge(points=20)
        session = await _bound_session(db_session, "u-1")
        real_cas = session_module.compare_and_set_stats
        interfered = []

        async def racing_cas(db, user_id, expected, new, now=None):
            if not interfered:
                interfered.append(1)
                await db.execute(update(Profile).where(Profile.user_id == user_id).values(total_points=150))
                await db.commit()
            return await real_cas(db, user_id, expected, new, now)

        monkeypatch.setattr(session_module, "compare_and_set_stats", racing_cas)

        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)
        assert result.error is None
        assert result.updated_profile.total_points == 170

    @pytest.mark.asyncio
    async def test_unknown_challenge(self, db_session) -> None:
        session = await _bound_session(db_session, "u-1")
        with pytest.raises(NotFound):
            await session.submit_answer(db_session, "missing", "x", now=NOW)

        result = await session.record_attempt(db_session, "missing", "x", True, 10, now=NOW)
        assert result.error == ERROR_NOT_FOUND

    @pytest.mark.asyncio
    async def test_degraded_challenge_rejected(self, db_session, make_challenge) -> None:
        challenge = await make_challenge(correct_answer=None)
        session = await _bound_session(db_session, "u-1")
        with pytest.raises(DegradedChallenge):
            await session.submit_answer(db_session, challenge.id, "x", now=NOW)
        assert await _count(db_session, UserChallenge) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("challenge_type", ["quiz", "visual", "cultural"])
    async def test_blank_correct_answer_rejected(
        self, db_session, make_profile, make_challenge, challenge_type
    ) -> None:
        await make_profile("u-1", total_points=0)
        challenge = await make_challenge(
            type=challenge_type, options={"choices": ["A", "B"]}, correct_answer="  ", points=20
        )
        session = await _bound_session(db_session, "u-1")

        with pytest.raises(DegradedChallenge):
            await session.submit_answer(db_session, challenge.id, "A", now=NOW)

        assert await _count(db_session, UserChallenge) == 0
        row = await get_profile(db_session, "u-1")
        assert row.total_points == 0
        assert row.countries_bridged == []

    @pytest.mark.asyncio
    async def test_failed_rollback_still_returns_result(
        self, db_session, make_profile, make_challenge, monkeypatch
    ) -> None:
        await make_profile("u-1", total_points=100)
        challenge = await make_challenge(points=20)
        session = await _bound_session(db_session, "u-1")
        monkeypatch.setattr("culturebridge.challenges.session.insert_attempt", _raise_db_error)
        monkeypatch.setattr(db_session, "rollback", _raise_db_error)

        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert result.recorded is False
        assert result.error == ERROR_RECORDING_FAILED

    @pytest.mark.asyncio
    async def test_previous_correct_attempt_reread_on_retry(
        self, db_session, make_profile, make_challenge, monkeypatch
    ) -> None:
        from culturebridge.challenges import session as session_module

        await make_profile("u-1", total_points=100)
        challenge = await make_challenge(points=20)
        session = await _bound_session(db_session, "u-1")
        real_lookup = session_module.last_correct_attempt_at
        lookups = []

        async def counting_lookup(*args, **kwargs):
            lookups.append(1)
            return await real_lookup(*args, **kwargs)

        async def always_lose(*args, **kwargs):
            return False

        monkeypatch.setattr(session_module, "last_correct_attempt_at", counting_lookup)
        monkeypatch.setattr(session_module, "compare_and_set_stats", always_lose)

        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)
        assert result.error == ERROR_PROFILE_UPDATE_FAILED
        assert len(lookups) == 3


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_attempt_on_daily_marks_attempted(self, db_session, make_challenge) -> None:
        challenge = await make_challenge()
        session = await _bound_session(db_session, "u-1")
        await session.select_daily()
        assert session.daily.challenge.id == challenge.id

        events = []
        session.subscribe(lambda event, s: events.append(event))
        result = await session.submit_answer(db_session, challenge.id, "Ohayo", now=NOW)

        assert session.state is SessionState.ATTEMPTED
        assert session.last_outcome == result
        assert session.profile.total_points == 20
        assert events == ["attempt", "profile"]

    @pytest.mark.asyncio
    async def test_ensure_ready_loads_and_picks(self, db_session, make_challenge) -> None:
        await make_challenge()
        session = ChallengeSession(user_id="u-1")
        await session.bind_user(db_session, "u-1")
        await session.ensure_ready(db_session)
        assert session.state is SessionState.READY
        assert session.daily is not None

    @pytest.mark.asyncio
    async def test_catalog_failure_keeps_previous_catalog(
        self, db_session, make_challenge, monkeypatch
    ) -> None:
        from culturebridge.errors import PersistenceFailure

        await make_challenge()
        session = await _bound_session(db_session, "u-1")
        assert len(session.catalog) == 1

        monkeypatch.setattr("culturebridge.challenges.session.load_challenges", _raise_db_error)
        with pytest.raises(PersistenceFailure):
            await session.load_challenges(db_session)
        assert len(session.catalog) == 1

    @pytest.mark.asyncio
    async def test_bind_user_bootstraps_profile(self, db_session) -> None:
        session = ChallengeSession(user_id="u-1")
        profile = await session.bind_user(db_session, "u-1", "ana")
        assert profile.username == "ana"
        assert profile.total_points == 0
        assert profile.level == "Curious Traveler"
        assert session.authenticated is True

        again = ChallengeSession(user_id="u-1")
        await again.bind_user(db_session, "u-1", "someone-else")
        assert again.profile.username == "ana"
