"""Social feed: posts, likes and comments."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select

from culturebridge.db.models import FeedPost, PostComment, PostLike, Profile
from culturebridge.errors import NotFound

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from culturebridge.challenges.catalog import ChallengeSnapshot


@dataclass
class FeedItem:
    post: FeedPost
    author: Profile | None
    like_count: int = 0
    liked_by_me: bool = False
    comment_count: int = 0
    likes: set[str] = field(default_factory=set)


async def create_feed_post(
    db: AsyncSession,
    user_id: str,
    challenge: ChallengeSnapshot,
    points_earned: int,
    streak_count: int,
) -> FeedPost:
    """Insert the timeline entry for a scored attempt."""
    post = FeedPost(
        user_id=user_id,
        challenge_id=challenge.id,
        action_type="challenge_completed",
        action_description=f"completed the {challenge.title}",
        points_earned=points_earned,
        streak_count=streak_count,
        country=challenge.country,
        flag=challenge.flag,
        created_at=datetime.now(timezone.utc),
    )
    db.add(post)
    await db.flush()
    return post


async def get_post(db: AsyncSession, post_id: str) -> FeedPost:
    result = await db.execute(select(FeedPost).where(FeedPost.id == post_id))
    post = result.scalar_one_or_none()
    if post is None:
        msg = "Post not found"
        raise NotFound(msg)
    return post


async def list_feed(db: AsyncSession, viewer_id: str | None, limit: int = 20) -> list[FeedItem]:
    """Latest posts with author, like and comment counts."""
    result = await db.execute(
        select(FeedPost, Profile)
        .outerjoin(Profile, Profile.user_id == FeedPost.user_id)
        .order_by(FeedPost.created_at.desc())
        .limit(limit)
    )
    rows = result.all()
    if not rows:
        return []

    post_ids = [post.id for post, _ in rows]

    likes: dict[str, set[str]] = {pid: set() for pid in post_ids}
    like_rows = await db.execute(
        select(PostLike.post_id, PostLike.user_id).where(PostLike.post_id.in_(post_ids))
    )
    for post_id, user_id in like_rows.all():
        likes[post_id].add(user_id)

    comment_counts = await db.execute(
        select(PostComment.post_id, func.count())
        .where(PostComment.post_id.in_(post_ids))
        .group_by(PostComment.post_id)
    )
    comments = dict(comment_counts.all())

    return [
        FeedItem(
            post=post,
            author=author,
            like_count=len(likes[post.id]),
            liked_by_me=viewer_id is not None and viewer_id in likes[post.id],
            comment_count=comments.get(post.id, 0),
            likes=likes[post.id],
        )
        for post, author in rows
    ]


async def toggle_like(db: AsyncSession, post_id: str, user_id: str) -> bool:
    """Like the post, or remove the like if present. Returns the new liked state."""
    await get_post(db, post_id)

    existing = await db.execute(
        select(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == user_id)
    )
    if existing.scalar_one_or_none() is not None:
        await db.execute(
            delete(PostLike).where(PostLike.post_id == post_id, PostLike.user_id == user_id)
        )
        await db.flush()
        return False

    db.add(PostLike(post_id=post_id, user_id=user_id, created_at=datetime.now(timezone.utc)))
    await db.flush()
    return True


async def add_comment(db: AsyncSession, post_id: str, user_id: str, content: str) -> PostComment:
    await get_post(db, post_id)
    comment = PostComment(
        post_id=post_id,
        user_id=user_id,
        content=content,
        created_at=datetime.now(timezone.utc),
    )
    db.add(comment)
    await db.flush()
    return comment


async def list_comments(db: AsyncSession, post_id: str) -> list[tuple[PostComment, Profile | None]]:
    """Comments of a post, oldest first, with author profiles."""
    await get_post(db, post_id)
    result = await db.execute(
        select(PostComment, Profile)
        .outerjoin(Profile, Profile.user_id == PostComment.user_id)
        .where(PostComment.post_id == post_id)
        .order_by(PostComment.created_at.asc())
    )
    return [(comment, author) for comment, author in result.all()]
