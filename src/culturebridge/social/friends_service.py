"""Friend graph operations.

A friendship row is created ``pending`` by the requester (``user_id``) and can
only be accepted or declined by the recipient (``friend_id``). Once accepted it
is read from both sides by normalizing which column is "self".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import and_, or_, select

from culturebridge.db.models import Friendship, Profile
from culturebridge.errors import Conflict, CultureBridgeError, NotFound

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

PENDING = "pending"
ACCEPTED = "accepted"


@dataclass(frozen=True)
class FriendView:
    friendship_id: str
    created_at: datetime
    friend_user_id: str
    profile: Profile | None


def _involving(user_id: str):
    return or_(Friendship.user_id == user_id, Friendship.friend_id == user_id)


async def _profiles_by_user_id(db: AsyncSession, user_ids: list[str]) -> dict[str, Profile]:
    if not user_ids:
        return {}
    result = await db.execute(select(Profile).where(Profile.user_id.in_(user_ids)))
    return {p.user_id: p for p in result.scalars()}


async def get_suggestions(db: AsyncSession, user_id: str, limit: int = 30) -> list[Profile]:
    """Profiles that are neither self nor connected to the user in any status."""
    result = await db.execute(
        select(Friendship.user_id, Friendship.friend_id).where(_involving(user_id))
    )
    excluded = {user_id}
    for requester, recipient in result.all():
        excluded.add(requester)
        excluded.add(recipient)

    profiles = await db.execute(
        select(Profile)
        .where(Profile.user_id.not_in(excluded))
        .order_by(Profile.total_points.desc(), Profile.created_at.asc())
        .limit(limit)
    )
    return list(profiles.scalars())


async def send_request(db: AsyncSession, user_id: str, target_user_id: str) -> Friendship:
    """Create a pending request from ``user_id`` to ``target_user_id``.

    Raises:
        CultureBridgeError: If the user targets themselves.
        NotFound: If the target has no profile.
        Conflict: If any friendship row already links the two users.
    """
    if target_user_id == user_id:
        msg = "Cannot send a friend request to yourself"
        raise CultureBridgeError(msg)

    target = await db.execute(select(Profile.id).where(Profile.user_id == target_user_id))
    if target.scalar_one_or_none() is None:
        msg = "User not found"
        raise NotFound(msg)

    existing = await db.execute(
        select(Friendship.id).where(
            or_(
                and_(Friendship.user_id == user_id, Friendship.friend_id == target_user_id),
                and_(Friendship.user_id == target_user_id, Friendship.friend_id == user_id),
            )
        )
    )
    if existing.first() is not None:
        msg = "A friendship or pending request already exists"
        raise Conflict(msg)

    friendship = Friendship(
        user_id=user_id,
        friend_id=target_user_id,
        status=PENDING,
        created_at=datetime.now(timezone.utc),
    )
    db.add(friendship)
    await db.flush()
    logger.info("friend_request_sent", user_id=user_id, friend_id=target_user_id)
    return friendship


async def get_incoming_requests(db: AsyncSession, user_id: str) -> list[tuple[Friendship, Profile | None]]:
    """Pending requests addressed to the user, newest first, with requester profiles."""
    result = await db.execute(
        select(Friendship)
        .where(Friendship.friend_id == user_id, Friendship.status == PENDING)
        .order_by(Friendship.created_at.desc())
    )
    requests = list(result.scalars())
    profiles = await _profiles_by_user_id(db, [r.user_id for r in requests])
    return [(r, profiles.get(r.user_id)) for r in requests]


async def _pending_for_recipient(db: AsyncSession, user_id: str, request_id: str) -> Friendship:
    result = await db.execute(
        select(Friendship).where(
            Friendship.id == request_id,
            Friendship.friend_id == user_id,
            Friendship.status == PENDING,
        )
    )
    friendship = result.scalar_one_or_none()
    if friendship is None:
        msg = "Friend request not found"
        raise NotFound(msg)
    return friendship


async def accept_request(db: AsyncSession, user_id: str, request_id: str) -> Friendship:
    """Accept a pending request. Only the recipient may accept."""
    friendship = await _pending_for_recipient(db, user_id, request_id)
    friendship.status = ACCEPTED
    await db.flush()
    logger.info("friend_request_accepted", request_id=request_id, user_id=user_id)
    return friendship


async def decline_request(db: AsyncSession, user_id: str, request_id: str) -> None:
    """Decline (delete) a pending request. Only the recipient may decline."""
    friendship = await _pending_for_recipient(db, user_id, request_id)
    await db.delete(friendship)
    await db.flush()
    logger.info("friend_request_declined", request_id=request_id, user_id=user_id)


async def get_friends(db: AsyncSession, user_id: str) -> list[FriendView]:
    """Accepted friendships seen from the user's side."""
    result = await db.execute(
        select(Friendship)
        .where(_involving(user_id), Friendship.status == ACCEPTED)
        .order_by(Friendship.created_at.desc())
    )
    rels = list(result.scalars())
    other_ids = [r.friend_id if r.user_id == user_id else r.user_id for r in rels]
    profiles = await _profiles_by_user_id(db, other_ids)
    return [
        FriendView(
            friendship_id=r.id,
            created_at=r.created_at,
            friend_user_id=other,
            profile=profiles.get(other),
        )
        for r, other in zip(rels, other_ids)
    ]


async def remove_friend(db: AsyncSession, user_id: str, friendship_id: str) -> None:
    """Delete a friendship the user is part of (either side, any status)."""
    result = await db.execute(
        select(Friendship).where(Friendship.id == friendship_id, _involving(user_id))
    )
    friendship = result.scalar_one_or_none()
    if friendship is None:
        msg = "Friendship not found"
        raise NotFound(msg)
    await db.delete(friendship)
    await db.flush()
    logger.info("friend_removed", friendship_id=friendship_id, user_id=user_id)
