"""WebSocket endpoint with JWT authentication and channel multiplexing."""

import asyncio
import json
import uuid

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from culturebridge.auth.jwt import verify_token
from culturebridge.config import get_settings
from culturebridge.ws.manager import manager

logger = structlog.get_logger()

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    """Single WebSocket endpoint with JWT authentication and channel multiplexing.

    Protocol:
        Client -> Server:
            {"action": "subscribe", "channel": "feed"}
            {"action": "unsubscribe", "channel": "feed"}
            {"action": "ping"}

        Server -> Client:
            {"channel": "feed", "data": {"type": "feed_post", "event": "insert", ...}}
            {"type": "profile_updated", "payload": {...}}
            {"type": "pong"}
            {"type": "heartbeat"}   (after an idle interval)
            {"type": "error", "message": "..."}
            {"type": "subscribed", "channel": "feed"}
            {"type": "unsubscribed", "channel": "feed"}
    """
    try:
        payload = verify_token(token)
        user_id = str(payload["sub"])
    except Exception as e:
        await websocket.close(code=4001, reason=f"Authentication failed: {e}")
        return

    conn_id = str(uuid.uuid4())
    await manager.connect(websocket, conn_id, user_id)
    heartbeat = get_settings().ws_heartbeat_interval_seconds

    try:
        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=heartbeat)
            except TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
                continue
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            action = msg.get("action") if isinstance(msg, dict) else None

            if action == "subscribe":
                channel = msg.get("channel", "")
                if await manager.subscribe(conn_id, channel):
                    await websocket.send_json({"type": "subscribed", "channel": channel})
                else:
                    await websocket.send_json({
                        "type": "error",
                        "message": f"Invalid channel: {channel}",
                    })

            elif action == "unsubscribe":
                channel = msg.get("channel", "")
                await manager.unsubscribe(conn_id, channel)
                await websocket.send_json({"type": "unsubscribed", "channel": channel})

            elif action == "ping":
                await websocket.send_json({"type": "pong"})

            else:
                await websocket.send_json({
                    "type": "error",
                    "message": f"Unknown action: {action}",
                })

    except WebSocketDisconnect:
        await manager.disconnect(conn_id)
    except Exception:
        logger.exception("ws_error", conn_id=conn_id)
        await manager.disconnect(conn_id)
