"""Pydantic models for profile endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class ProfileResponse(BaseModel):
    user_id: str
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    level: str
    total_points: int
    current_streak: int
    max_streak: int
    countries_bridged: list[str] = []


class LevelResponse(BaseModel):
    level: int
    title: str
    points_into_level: int
    points_for_level: int
    next_title: str


class MyProfileResponse(BaseModel):
    profile: ProfileResponse
    level_info: LevelResponse


class ProfileSummaryResponse(BaseModel):
    user_id: str
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    level: str | None = None
