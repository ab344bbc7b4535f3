"""Pydantic models for feed and friend endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from culturebridge.users.schemas import ProfileSummaryResponse


# --- Feed ---


class FeedPostResponse(BaseModel):
    id: str
    user_id: str
    challenge_id: str | None = None
    action_type: str
    action_description: str
    points_earned: int | None = None
    streak_count: int | None = None
    country: str | None = None
    flag: str | None = None
    created_at: datetime
    author: ProfileSummaryResponse | None = None
    like_count: int = 0
    liked_by_me: bool = False
    comment_count: int = 0


class FeedResponse(BaseModel):
    posts: list[FeedPostResponse]


class LikeResponse(BaseModel):
    post_id: str
    liked: bool


class CreateCommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)


class CommentResponse(BaseModel):
    id: str
    post_id: str
    user_id: str
    content: str
    created_at: datetime
    author: ProfileSummaryResponse | None = None


class CommentListResponse(BaseModel):
    comments: list[CommentResponse]


# --- Friends ---


class FriendRequestCreate(BaseModel):
    friend_id: str = Field(..., min_length=1, max_length=64)


class FriendshipResponse(BaseModel):
    id: str
    user_id: str
    friend_id: str
    status: str
    created_at: datetime


class IncomingRequestResponse(BaseModel):
    id: str
    user_id: str
    friend_id: str
    status: str
    created_at: datetime
    requester_profile: ProfileSummaryResponse | None = None


class IncomingRequestsResponse(BaseModel):
    requests: list[IncomingRequestResponse]


class FriendResponse(BaseModel):
    friendship_id: str
    created_at: datetime
    friend_user_id: str
    profile: ProfileSummaryResponse | None = None


class FriendListResponse(BaseModel):
    friends: list[FriendResponse]


class SuggestionsResponse(BaseModel):
    suggestions: list[ProfileSummaryResponse]
