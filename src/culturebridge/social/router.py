"""Social API endpoints — 11 routes.

Feed (4), Friends (7).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from culturebridge.auth.dependencies import AuthUser, get_current_user
from culturebridge.config import get_settings
from culturebridge.database import get_session
from culturebridge.db.guard import guarded
from culturebridge.db.models import Friendship, PostComment, Profile
from culturebridge.social.events import (
    POST_COMMENT_CHANNEL,
    POST_LIKE_CHANNEL,
    publish_insert,
)
from culturebridge.social.feed_service import (
    FeedItem,
    add_comment,
    list_comments,
    list_feed,
    toggle_like,
)
from culturebridge.social.friends_service import (
    accept_request,
    decline_request,
    get_friends,
    get_incoming_requests,
    get_suggestions,
    remove_friend,
    send_request,
)
from culturebridge.social.schemas import (
    CommentListResponse,
    CommentResponse,
    CreateCommentRequest,
    FeedPostResponse,
    FeedResponse,
    FriendListResponse,
    FriendRequestCreate,
    FriendResponse,
    FriendshipResponse,
    IncomingRequestResponse,
    IncomingRequestsResponse,
    LikeResponse,
    SuggestionsResponse,
)
from culturebridge.users.schemas import ProfileSummaryResponse

router = APIRouter(prefix="/api/v1", tags=["Social"])


# ── Helpers ──


def _profile_summary(profile: Profile | None) -> ProfileSummaryResponse | None:
    if profile is None:
        return None
    return ProfileSummaryResponse(
        user_id=profile.user_id,
        username=profile.username,
        display_name=profile.display_name,
        avatar_url=profile.avatar_url,
        level=profile.level,
    )


def _post_response(item: FeedItem) -> FeedPostResponse:
    post = item.post
    return FeedPostResponse(
        id=post.id,
        user_id=post.user_id,
        challenge_id=post.challenge_id,
        action_type=post.action_type,
        action_description=post.action_description,
        points_earned=post.points_earned,
        streak_count=post.streak_count,
        country=post.country,
        flag=post.flag,
        created_at=post.created_at,
        author=_profile_summary(item.author),
        like_count=item.like_count,
        liked_by_me=item.liked_by_me,
        comment_count=item.comment_count,
    )


def _comment_response(comment: PostComment, author: Profile | None = None) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        post_id=comment.post_id,
        user_id=comment.user_id,
        content=comment.content,
        created_at=comment.created_at,
        author=_profile_summary(author),
    )


def _friendship_response(friendship: Friendship) -> FriendshipResponse:
    return FriendshipResponse(
        id=friendship.id,
        user_id=friendship.user_id,
        friend_id=friendship.friend_id,
        status=friendship.status,
        created_at=friendship.created_at,
    )


# ── Feed Endpoints (4) ──


@router.get("/feed", response_model=FeedResponse)
async def get_feed(
    limit: int | None = Query(None, ge=1, le=100),
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Latest feed posts, newest first."""
    items = await guarded(list_feed(db, user.id, limit or get_settings().feed_page_size), stage="feed")
    return FeedResponse(posts=[_post_response(i) for i in items])


@router.post("/feed/{post_id}/like", response_model=LikeResponse)
async def like_post(
    post_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Toggle the caller's like on a post."""
    liked = await guarded(toggle_like(db, post_id, user.id), stage="feed")
    await guarded(db.commit(), stage="feed")
    await publish_insert(POST_LIKE_CHANNEL, "post_likes", post_id)
    return LikeResponse(post_id=post_id, liked=liked)


@router.get("/feed/{post_id}/comments", response_model=CommentListResponse)
async def get_comments(
    post_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Comments on a post, oldest first."""
    rows = await guarded(list_comments(db, post_id), stage="feed")
    return CommentListResponse(comments=[_comment_response(c, a) for c, a in rows])


@router.post("/feed/{post_id}/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    post_id: str,
    body: CreateCommentRequest,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Comment on a post."""
    comment = await guarded(add_comment(db, post_id, user.id, body.content), stage="feed")
    await guarded(db.commit(), stage="feed")
    await publish_insert(POST_COMMENT_CHANNEL, "post_comments", comment.id)
    return _comment_response(comment)


# ── Friend Endpoints (7) ──


@router.get("/friends/suggestions", response_model=SuggestionsResponse)
async def friend_suggestions(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Profiles the caller has no friendship row with."""
    profiles = await guarded(get_suggestions(db, user.id, get_settings().suggestions_page_size), stage="friendship")
    return SuggestionsResponse(suggestions=[_profile_summary(p) for p in profiles])


@router.post("/friends/requests", response_model=FriendshipResponse, status_code=201)
async def create_friend_request(
    body: FriendRequestCreate,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Send a friend request."""
    friendship = await guarded(send_request(db, user.id, body.friend_id), stage="friendship")
    await guarded(db.commit(), stage="friendship")
    return _friendship_response(friendship)


@router.get("/friends/requests/incoming", response_model=IncomingRequestsResponse)
async def incoming_requests(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Pending requests addressed to the caller."""
    rows = await guarded(get_incoming_requests(db, user.id), stage="friendship")
    return IncomingRequestsResponse(requests=[
        IncomingRequestResponse(
            id=f.id,
            user_id=f.user_id,
            friend_id=f.friend_id,
            status=f.status,
            created_at=f.created_at,
            requester_profile=_profile_summary(requester),
        )
        for f, requester in rows
    ])


@router.post("/friends/requests/{request_id}/accept", response_model=FriendshipResponse)
async def accept_friend_request(
    request_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Accept a pending request (recipient only)."""
    friendship = await guarded(accept_request(db, user.id, request_id), stage="friendship")
    await guarded(db.commit(), stage="friendship")
    return _friendship_response(friendship)


@router.post("/friends/requests/{request_id}/decline", status_code=204)
async def decline_friend_request(
    request_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    """Decline a pending request (recipient only)."""
    await guarded(decline_request(db, user.id, request_id), stage="friendship")
    await guarded(db.commit(), stage="friendship")


@router.get("/friends", response_model=FriendListResponse)
async def list_friends(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Accepted friends, each with the other side's profile."""
    views = await guarded(get_friends(db, user.id), stage="friendship")
    return FriendListResponse(friends=[
        FriendResponse(
            friendship_id=v.friendship_id,
            created_at=v.created_at,
            friend_user_id=v.friend_user_id,
            profile=_profile_summary(v.profile),
        )
        for v in views
    ])


@router.delete("/friends/{friendship_id}", status_code=204)
async def delete_friend(
    friendship_id: str,
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> None:
    """Remove a friendship the caller is part of."""
    await guarded(remove_friend(db, user.id, friendship_id), stage="friendship")
    await guarded(db.commit(), stage="friendship")
