"""Challenge API endpoints — catalog, daily session, submissions, recent attempts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from culturebridge.auth.dependencies import get_challenge_session
from culturebridge.challenges.catalog import ChallengeSnapshot, shuffled
from culturebridge.challenges.schemas import (
    AttemptResultResponse,
    ChallengeListResponse,
    ChallengeResponse,
    ChallengeSummaryResponse,
    RecentAttemptResponse,
    RecentAttemptsResponse,
    SessionResponse,
    SubmitAnswerRequest,
)
from culturebridge.challenges.session import AttemptResult, ChallengeSession, SessionState
from culturebridge.database import get_session
from culturebridge.users.router import profile_response

router = APIRouter(prefix="/api/v1/challenges", tags=["Challenges"])


# ── Helpers ──


def challenge_response(challenge: ChallengeSnapshot, choices: tuple[str, ...] | None = None) -> ChallengeResponse:
    """Build a ChallengeResponse. The correct answer is never exposed."""
    if choices is None and challenge.choices:
        choices = shuffled(challenge.choices)
    return ChallengeResponse(
        id=challenge.id,
        title=challenge.title,
        description=challenge.description,
        type=challenge.type,
        country=challenge.country,
        flag=challenge.flag,
        points=challenge.points,
        difficulty=challenge.difficulty,
        choices=list(choices) if choices else None,
        media_url=challenge.media_url,
        is_daily=challenge.is_daily,
        scorable=challenge.scorable,
        created_at=challenge.created_at,
    )


def attempt_response(result: AttemptResult) -> AttemptResultResponse:
    return AttemptResultResponse(
        recorded=result.recorded,
        awarded_full=result.awarded_full,
        points_awarded=result.points_awarded,
        profile_stale=result.profile_stale,
        error=result.error,
        attempt_id=result.attempt_id,
        updated_profile=profile_response(result.updated_profile) if result.updated_profile else None,
    )


def session_response(session: ChallengeSession) -> SessionResponse:
    daily = None
    if session.daily is not None:
        daily = challenge_response(session.daily.challenge, session.daily.choices or ())
    return SessionResponse(
        state=session.state.value,
        auth_status=session.auth_status.value,
        attempted=session.state is SessionState.ATTEMPTED,
        daily=daily,
        last_outcome=attempt_response(session.last_outcome) if session.last_outcome else None,
        profile=profile_response(session.profile) if session.profile else None,
    )


# ── Endpoints ──


@router.get("", response_model=ChallengeListResponse)
async def list_challenges(
    session: ChallengeSession = Depends(get_challenge_session),
    db: AsyncSession = Depends(get_session),
):
    """Reload and return the full catalog, newest first."""
    catalog = await session.load_challenges(db)
    return ChallengeListResponse(
        challenges=[challenge_response(c) for c in catalog],
        total=len(catalog),
    )


@router.get("/daily", response_model=SessionResponse)
async def get_daily(
    session: ChallengeSession = Depends(get_challenge_session),
    db: AsyncSession = Depends(get_session),
):
    """Current session snapshot; picks today's challenge on first call."""
    await session.ensure_ready(db)
    return session_response(session)


@router.post("/daily/advance", response_model=SessionResponse)
async def advance_daily(
    session: ChallengeSession = Depends(get_challenge_session),
    db: AsyncSession = Depends(get_session),
):
    """Move on to a different daily challenge."""
    await session.ensure_ready(db)
    await session.advance_daily()
    return session_response(session)


@router.get("/attempts/recent", response_model=RecentAttemptsResponse)
async def recent_attempts(
    limit: int | None = Query(None, ge=1, le=50),
    session: ChallengeSession = Depends(get_challenge_session),
    db: AsyncSession = Depends(get_session),
):
    """The user's latest attempts with challenge summaries."""
    attempts = await session.recent_attempts(db, limit)
    return RecentAttemptsResponse(attempts=[
        RecentAttemptResponse(
            id=a.id,
            challenge_id=a.challenge_id,
            user_answer=a.user_answer,
            is_correct=a.is_correct,
            points_earned=a.points_earned,
            completed_at=a.completed_at,
            challenge=ChallengeSummaryResponse(
                id=a.challenge.id,
                title=a.challenge.title,
                country=a.challenge.country,
                flag=a.challenge.flag,
            ),
        )
        for a in attempts
    ])


@router.post("/{challenge_id}/submit", response_model=AttemptResultResponse)
async def submit_answer(
    challenge_id: str,
    body: SubmitAnswerRequest,
    session: ChallengeSession = Depends(get_challenge_session),
    db: AsyncSession = Depends(get_session),
):
    """Check an answer and record the attempt.

    Recording failures come back in the body (``recorded=false`` plus ``error``);
    unknown or unscorable challenges are 404 / 422.
    """
    result = await session.submit_answer(db, challenge_id, body.answer)
    return attempt_response(result)
