"""Bridges Redis pub/sub to WebSocket clients.

Feed change notifications are broadcast on the ``feed`` channel; messages on
``ws:user:<id>`` go only to that user's connections.
"""

import asyncio
import json

import redis.asyncio as aioredis
import structlog

from culturebridge.social.events import (
    FEED_POST_CHANNEL,
    POST_COMMENT_CHANNEL,
    POST_LIKE_CHANNEL,
)
from culturebridge.ws.manager import manager

logger = structlog.get_logger()

USER_CHANNEL_PREFIX = "ws:user:"

# Map Redis pub/sub channels to WebSocket channels
CHANNEL_MAP: dict[str, str] = {
    FEED_POST_CHANNEL: "feed",
    POST_LIKE_CHANNEL: "feed",
    POST_COMMENT_CHANNEL: "feed",
}


async def dispatch(msg_type: str, redis_channel: str, payload: dict) -> int:
    """Route one decoded pub/sub message. Returns the number of recipients."""
    if msg_type == "pmessage" and redis_channel.startswith(USER_CHANNEL_PREFIX):
        user_id = redis_channel[len(USER_CHANNEL_PREFIX):]
        if not user_id:
            logger.warning("pubsub_invalid_user_id", channel=redis_channel)
            return 0
        event_type = payload.get("event", "notification")
        sent = await manager.send_to_user_direct(user_id, {
            "type": event_type,
            "payload": payload.get("data", payload),
        })
        if sent > 0:
            logger.debug("user_notification_sent", user_id=user_id, event_type=event_type, recipients=sent)
        return sent

    ws_channel = CHANNEL_MAP.get(redis_channel)
    if ws_channel is None:
        return 0

    sent = await manager.broadcast_to_channel(ws_channel, {
        "type": redis_channel.split(":")[-1],
        **payload,
    })
    if sent > 0:
        logger.debug("pubsub_broadcast", channel=ws_channel, recipients=sent)
    return sent


class PubSubBridge:
    """Subscribes to Redis pub/sub and pushes messages to WebSocket clients."""

    def __init__(self, redis_client: aioredis.Redis) -> None:
        self.redis = redis_client
        self._running = False

    async def start(self) -> None:
        """Start listening to Redis pub/sub channels."""
        self._running = True
        pubsub = self.redis.pubsub()

        await pubsub.subscribe(*CHANNEL_MAP.keys())
        await pubsub.psubscribe(f"{USER_CHANNEL_PREFIX}*")

        logger.info(
            "pubsub_bridge_started",
            channels=list(CHANNEL_MAP.keys()),
            patterns=[f"{USER_CHANNEL_PREFIX}*"],
        )

        try:
            while self._running:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message is None:
                    continue

                redis_channel = message.get("channel", "")
                if isinstance(redis_channel, bytes):
                    redis_channel = redis_channel.decode()

                try:
                    data = message.get("data", b"")
                    if isinstance(data, bytes):
                        data = data.decode()
                    payload = json.loads(data)
                except (json.JSONDecodeError, UnicodeDecodeError):
                    logger.warning("pubsub_invalid_message", channel=redis_channel)
                    continue
                if not isinstance(payload, dict):
                    continue

                try:
                    await dispatch(message.get("type", ""), redis_channel, payload)
                except Exception:
                    logger.warning("pubsub_dispatch_failed", channel=redis_channel, exc_info=True)

        except asyncio.CancelledError:
            pass
        finally:
            await pubsub.unsubscribe()
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("pubsub_bridge_stopped")

    async def stop(self) -> None:
        """Signal the bridge to stop."""
        self._running = False
