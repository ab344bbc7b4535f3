"""Change notifications published to Redis pub/sub.

Payloads only carry ids. Subscribers refetch on every notification, so a
duplicate or out-of-order delivery is harmless.
"""

from __future__ import annotations

import json
from typing import Any

import structlog

from culturebridge.redis_client import get_redis_or_none

logger = structlog.get_logger()

FEED_POST_CHANNEL = "pubsub:feed_post"
POST_LIKE_CHANNEL = "pubsub:post_like"
POST_COMMENT_CHANNEL = "pubsub:post_comment"


def user_channel(user_id: str) -> str:
    return f"ws:user:{user_id}"


async def publish(channel: str, payload: dict[str, Any]) -> bool:
    """Publish a JSON notification. Returns False if Redis is absent or publishing failed."""
    redis = get_redis_or_none()
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))
    except Exception:
        logger.warning("publish_failed", channel=channel, exc_info=True)
        return False
    return True


async def publish_insert(channel: str, table: str, row_id: str) -> bool:
    return await publish(channel, {"event": "insert", "table": table, "id": row_id})


async def publish_to_user(user_id: str, event: str, data: dict[str, Any]) -> bool:
    return await publish(user_channel(user_id), {"event": event, "data": data})
