"""Pydantic models for challenge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from culturebridge.users.schemas import ProfileResponse


# --- Catalog ---


class ChallengeResponse(BaseModel):
    id: str
    title: str
    description: str
    type: str
    country: str
    flag: str
    points: int
    difficulty: str
    choices: list[str] | None = None
    media_url: str | None = None
    is_daily: bool
    scorable: bool
    created_at: datetime


class ChallengeListResponse(BaseModel):
    challenges: list[ChallengeResponse]
    total: int


# --- Session ---


class AttemptResultResponse(BaseModel):
    recorded: bool
    awarded_full: bool
    points_awarded: int
    profile_stale: bool = False
    error: str | None = None
    attempt_id: str | None = None
    updated_profile: ProfileResponse | None = None


class SessionResponse(BaseModel):
    state: str
    auth_status: str
    attempted: bool
    daily: ChallengeResponse | None = None
    last_outcome: AttemptResultResponse | None = None
    profile: ProfileResponse | None = None


class SubmitAnswerRequest(BaseModel):
    answer: str | None = Field(None, max_length=2000)


# --- Recent attempts ---


class ChallengeSummaryResponse(BaseModel):
    id: str | None = None
    title: str | None = None
    country: str | None = None
    flag: str | None = None


class RecentAttemptResponse(BaseModel):
    id: str
    challenge_id: str
    user_answer: str | None = None
    is_correct: bool
    points_earned: int
    completed_at: datetime
    challenge: ChallengeSummaryResponse


class RecentAttemptsResponse(BaseModel):
    attempts: list[RecentAttemptResponse]
