"""Per-user challenge session: catalog, daily pick and attempt recording.

State machine over one daily challenge slot::

    LOADING -> READY(attempted=False) -> ATTEMPTED(outcome) -> READY(new pick) -> ...
                                                             -> CLOSED (teardown)

All consumers (HTTP handlers, the WebSocket push) read the same session object
and can subscribe to its change events instead of refetching on their own.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import random
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

import structlog
from sqlalchemy.exc import SQLAlchemyError

from culturebridge.challenges.catalog import (
    ChallengeSnapshot,
    DailyPick,
    advance_daily,
    select_daily,
)
from culturebridge.challenges.matching import AUDIO_RECORDED, AudioTask, answer_kind
from culturebridge.challenges.scoring import apply_attempt, points_awarded
from culturebridge.challenges.service import (
    RecentAttempt,
    get_challenge,
    get_recent_attempts,
    insert_attempt,
    last_correct_attempt_at,
    load_challenges,
)
from culturebridge.challenges.side_effects import SideEffects
from culturebridge.config import get_settings
from culturebridge.db.guard import guarded
from culturebridge.errors import NotFound, PersistenceFailure, Unauthenticated
from culturebridge.social.events import FEED_POST_CHANNEL, publish_insert, publish_to_user
from culturebridge.social.feed_service import create_feed_post
from culturebridge.users.service import (
    ProfileSnapshot,
    compare_and_set_stats,
    get_or_create_profile,
    get_profile,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

ERROR_UNAUTHENTICATED = "unauthenticated"
ERROR_NOT_FOUND = "not_found"
ERROR_RECORDING_FAILED = "recording_failed"
ERROR_PROFILE_UPDATE_FAILED = "profile_update_failed"


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ATTEMPTED = "attempted"
    CLOSED = "closed"


class AuthStatus(str, Enum):
    RESOLVING = "resolving"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class AttemptResult:
    recorded: bool
    awarded_full: bool
    points_awarded: int
    updated_profile: ProfileSnapshot | None = None
    error: str | None = None
    attempt_id: str | None = None

    @property
    def profile_stale(self) -> bool:
        """True when the attempt is stored but the profile may not reflect it."""
        return self.error == ERROR_PROFILE_UPDATE_FAILED


def _rejected(error: str) -> AttemptResult:
    return AttemptResult(recorded=False, awarded_full=False, points_awarded=0, error=error)


async def _rollback(db: AsyncSession) -> None:
    # The connection may already be gone; the failure is reported by the caller
    with contextlib.suppress(SQLAlchemyError):
        await db.rollback()


Observer = Callable[[str, "ChallengeSession"], Awaitable[None] | None]


class ChallengeSession:
    """Single source of truth for one user's challenge state."""

    def __init__(
        self,
        user_id: str | None = None,
        rng: random.Random | None = None,
        reroll_attempts: int | None = None,
    ) -> None:
        self.user_id = user_id
        self.auth_status = AuthStatus.RESOLVING
        self.profile: ProfileSnapshot | None = None
        self.catalog: tuple[ChallengeSnapshot, ...] = ()
        self.daily: DailyPick | None = None
        self.state = SessionState.LOADING
        self.last_outcome: AttemptResult | None = None
        self.side_effects = SideEffects()
        self._lock = asyncio.Lock()
        self._observers: list[Observer] = []
        self._rng = rng or random.SystemRandom()
        self._reroll_attempts = reroll_attempts or get_settings().daily_reroll_attempts

    # ── Observers ──

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register a change observer. Returns a callable that unsubscribes it."""
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    async def _notify(self, event: str) -> None:
        for observer in list(self._observers):
            try:
                result = observer(event, self)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.warning("session_observer_failed", session_event=event, user_id=self.user_id, exc_info=True)

    # ── Auth binding ──

    @property
    def authenticated(self) -> bool:
        return self.auth_status is AuthStatus.AUTHENTICATED and self.profile is not None

    async def bind(self, profile: ProfileSnapshot | None) -> None:
        """Resolve auth: a profile means signed in, None means anonymous."""
        self.profile = profile
        self.auth_status = AuthStatus.AUTHENTICATED if profile is not None else AuthStatus.ANONYMOUS
        if profile is not None:
            self.user_id = profile.user_id
        await self._notify("auth")

    async def bind_user(self, db: AsyncSession, user_id: str, username: str | None = None) -> ProfileSnapshot:
        """Load (or bootstrap) the user's profile and mark the session authenticated."""
        profile, created = await guarded(get_or_create_profile(db, user_id, username), stage="profile")
        if created:
            await guarded(db.commit(), stage="profile")
        snapshot = ProfileSnapshot.from_row(profile)
        await self.bind(snapshot)
        return snapshot

    async def refresh_profile(self, db: AsyncSession) -> ProfileSnapshot | None:
        """Best-effort reload of the profile for display."""
        if self.user_id is None:
            return None
        try:
            row = await guarded(get_profile(db, self.user_id), stage="profile")
        except PersistenceFailure:
            logger.warning("profile_refresh_failed", user_id=self.user_id, exc_info=True)
            return self.profile
        if row is not None:
            self.profile = ProfileSnapshot.from_row(row)
            await self._notify("profile")
        return self.profile

    # ── Catalog and daily pick ──

    async def load_challenges(self, db: AsyncSession) -> list[ChallengeSnapshot]:
        """Fetch the catalog, newest first.

        On failure the previous catalog is kept and the error is re-raised once
        for the caller to surface.
        """
        try:
            catalog = await guarded(load_challenges(db), stage="catalog")
        except PersistenceFailure:
            logger.warning("catalog_load_failed", user_id=self.user_id, kept=len(self.catalog))
            raise
        self.catalog = tuple(catalog)
        await self._notify("catalog")
        return catalog

    async def ensure_ready(self, db: AsyncSession) -> None:
        """Leave LOADING by fetching the catalog and picking today's challenge."""
        if self.state is SessionState.CLOSED:
            msg = "Session is closed"
            raise Unauthenticated(msg)
        if self.state is SessionState.LOADING:
            await self.load_challenges(db)
            await self.select_daily()

    async def select_daily(self) -> DailyPick | None:
        self.daily = select_daily(self.catalog, self._rng)
        await self._enter_ready()
        return self.daily

    async def advance_daily(self) -> DailyPick | None:
        current_id = self.daily.challenge.id if self.daily else None
        self.daily = advance_daily(self.catalog, current_id, self._rng, self._reroll_attempts)
        await self._enter_ready()
        return self.daily

    async def _enter_ready(self) -> None:
        self.state = SessionState.READY
        self.last_outcome = None
        await self._notify("daily")

    def find_challenge(self, challenge_id: str) -> ChallengeSnapshot | None:
        for challenge in self.catalog:
            if challenge.id == challenge_id:
                return challenge
        return None

    async def _resolve_challenge(self, db: AsyncSession, challenge_id: str) -> ChallengeSnapshot | None:
        challenge = self.find_challenge(challenge_id)
        if challenge is None:
            challenge = await guarded(get_challenge(db, challenge_id), stage="catalog")
        return challenge

    # ── Attempts ──

    async def submit_answer(
        self,
        db: AsyncSession,
        challenge_id: str,
        answer: str | None,
        now: datetime | None = None,
    ) -> AttemptResult:
        """Match an answer and record the attempt.

        Raises:
            NotFound: If the challenge does not exist.
            DegradedChallenge: If the challenge cannot be scored.
        """
        if not self.authenticated:
            return _rejected(ERROR_UNAUTHENTICATED)

        challenge = await self._resolve_challenge(db, challenge_id)
        if challenge is None:
            msg = "Challenge not found"
            raise NotFound(msg)

        kind = answer_kind(challenge)
        if isinstance(kind, AudioTask):
            answer = answer or AUDIO_RECORDED
        is_correct = kind.validate(answer)
        return await self.record_attempt(db, challenge.id, answer, is_correct, challenge.points, now=now)

    async def record_attempt(
        self,
        db: AsyncSession,
        challenge_id: str,
        submitted_answer: str | None,
        is_correct: bool,
        base_points: int,
        now: datetime | None = None,
    ) -> AttemptResult:
        """Record an attempt end to end.

        Attempt insert, then profile compare-and-set, then feed post. Attempts
        for the same session are serialized. Row store failures come back as
        an ``AttemptResult`` with ``error`` set, never as exceptions.
        """
        if not self.authenticated or self.user_id is None:
            return _rejected(ERROR_UNAUTHENTICATED)

        async with self._lock:
            result = await self._record_attempt(db, challenge_id, submitted_answer, is_correct, base_points, now)

        if result.recorded:
            await self._finish(challenge_id, result)
        return result

    async def _record_attempt(
        self,
        db: AsyncSession,
        challenge_id: str,
        submitted_answer: str | None,
        is_correct: bool,
        base_points: int,
        now: datetime | None,
    ) -> AttemptResult:
        user_id = self.user_id
        assert user_id is not None
        if now is None:
            now = datetime.now(timezone.utc)

        try:
            challenge = await self._resolve_challenge(db, challenge_id)
        except PersistenceFailure:
            logger.warning("attempt_challenge_lookup_failed", user_id=user_id, challenge_id=challenge_id)
            return _rejected(ERROR_RECORDING_FAILED)
        if challenge is None:
            return _rejected(ERROR_NOT_FOUND)

        points = points_awarded(base_points, is_correct)

        try:
            attempt = await guarded(
                insert_attempt(db, user_id, challenge_id, submitted_answer, is_correct, points, completed_at=now),
                stage="attempt",
            )
            attempt_id = attempt.id
            await guarded(db.commit(), stage="attempt")
        except PersistenceFailure as e:
            await _rollback(db)
            logger.warning("attempt_recording_failed", user_id=user_id, challenge_id=challenge_id, error=e.message)
            return _rejected(ERROR_RECORDING_FAILED)

        logger.info(
            "attempt_recorded",
            user_id=user_id,
            challenge_id=challenge_id,
            is_correct=is_correct,
            points=points,
        )

        if points == 0:
            return AttemptResult(
                recorded=True,
                awarded_full=is_correct,
                points_awarded=0,
                updated_profile=self.profile,
                attempt_id=attempt_id,
            )

        try:
            profile = await self._apply_to_profile(db, challenge, base_points, is_correct, attempt_id, now)
        except PersistenceFailure as e:
            await _rollback(db)
            logger.error("profile_update_failed", user_id=user_id, attempt_id=attempt_id, error=e.message)
            return AttemptResult(
                recorded=True,
                awarded_full=is_correct,
                points_awarded=points,
                error=ERROR_PROFILE_UPDATE_FAILED,
                attempt_id=attempt_id,
            )

        self.profile = profile
        await self.side_effects.run(
            "feed_post", self._emit_feed_post, db, challenge, points, profile.current_streak
        )
        return AttemptResult(
            recorded=True,
            awarded_full=is_correct,
            points_awarded=points,
            updated_profile=profile,
            attempt_id=attempt_id,
        )

    async def _apply_to_profile(
        self,
        db: AsyncSession,
        challenge: ChallengeSnapshot,
        base_points: int,
        is_correct: bool,
        attempt_id: str,
        now: datetime,
    ) -> ProfileSnapshot:
        """Read-compute-conditional-write, retried when another writer wins."""
        user_id = self.user_id
        assert user_id is not None
        retries = max(get_settings().profile_update_retries, 1)
        for attempt_no in range(1, retries + 1):
            previous_correct_at = await guarded(
                last_correct_attempt_at(db, user_id, exclude_attempt_id=attempt_id), stage="profile"
            )
            row = await guarded(get_profile(db, user_id), stage="profile")
            if row is None:
                msg = "Profile row is missing"
                raise PersistenceFailure(msg, stage="profile")
            current = ProfileSnapshot.from_row(row).stats
            new, _ = apply_attempt(
                current,
                base_points=base_points,
                is_correct=is_correct,
                country=challenge.country,
                previous_correct_at=previous_correct_at,
                now=now,
            )
            if await guarded(compare_and_set_stats(db, user_id, current, new, now), stage="profile"):
                await guarded(db.commit(), stage="profile")
                row = await guarded(get_profile(db, user_id), stage="profile")
                assert row is not None
                return ProfileSnapshot.from_row(row)

            await _rollback(db)
            logger.info("profile_update_conflict", user_id=user_id, attempt=attempt_no)

        msg = f"Profile changed concurrently {retries} times"
        raise PersistenceFailure(msg, stage="profile")

    async def _emit_feed_post(
        self,
        db: AsyncSession,
        challenge: ChallengeSnapshot,
        points: int,
        streak: int,
    ) -> None:
        assert self.user_id is not None
        try:
            post = await guarded(create_feed_post(db, self.user_id, challenge, points, streak), stage="feed")
            post_id = post.id
            await guarded(db.commit(), stage="feed")
        except PersistenceFailure:
            await _rollback(db)
            raise
        await publish_insert(FEED_POST_CHANNEL, "feed_posts", post_id)

    async def _finish(self, challenge_id: str, result: AttemptResult) -> None:
        if self.daily is not None and self.daily.challenge.id == challenge_id:
            self.state = SessionState.ATTEMPTED
            self.last_outcome = result
        await self._notify("attempt")
        if result.updated_profile is not None and result.error is None:
            await self._notify("profile")

    async def recent_attempts(self, db: AsyncSession, limit: int | None = None) -> list[RecentAttempt]:
        if not self.authenticated or self.user_id is None:
            msg = "Sign in to see recent attempts"
            raise Unauthenticated(msg)
        if limit is None:
            limit = get_settings().recent_attempts_limit
        return await guarded(get_recent_attempts(db, self.user_id, limit), stage="read")

    async def close(self) -> None:
        self.state = SessionState.CLOSED
        await self._notify("closed")
        self._observers.clear()


# ── Registry ──


async def push_profile_update(event: str, session: ChallengeSession) -> None:
    """Observer: forward profile changes to the user's WebSocket connections."""
    if event != "profile" or session.profile is None or session.user_id is None:
        return
    await publish_to_user(session.user_id, "profile_updated", asdict(session.profile))


class SessionRegistry:
    """In-process map of user id to their live ``ChallengeSession``.

    Least recently used sessions are dropped past ``max_sessions``; a dropped
    session is rebuilt from the row store on the user's next request.
    """

    def __init__(self, max_sessions: int | None = None) -> None:
        self._sessions: OrderedDict[str, ChallengeSession] = OrderedDict()
        self._max_sessions = max_sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: str) -> ChallengeSession | None:
        return self._sessions.get(user_id)

    def get_or_create(self, user_id: str) -> ChallengeSession:
        session = self._sessions.get(user_id)
        if session is not None:
            self._sessions.move_to_end(user_id)
            return session

        session = ChallengeSession(user_id=user_id)
        session.subscribe(push_profile_update)
        self._sessions[user_id] = session

        limit = self._max_sessions or get_settings().max_live_sessions
        while len(self._sessions) > limit:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("session_evicted", user_id=evicted, live=len(self._sessions))
        return session

    async def close(self, user_id: str) -> None:
        session = self._sessions.pop(user_id, None)
        if session is not None:
            await session.close()

    async def close_all(self) -> None:
        for user_id in list(self._sessions):
            await self.close(user_id)


# Global singleton
registry = SessionRegistry()
