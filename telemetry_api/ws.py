"""WebSocket endpoint for live telemetry.

Endpoints:
- ws://api/ws/telemetry - heartbeat frames from one client are re-emitted to all others
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from .broadcast import Subscriber, WebSocketTransport
from .context import AppContext, get_ws_context

logger = logging.getLogger(__name__)

ws_router = APIRouter()

HEARTBEAT = "heartbeat"


@ws_router.websocket("/ws/telemetry")
async def telemetry_ws(websocket: WebSocket, ctx: AppContext = Depends(get_ws_context)):
    """Register the client, then relay every inbound heartbeat to the other clients.

    Frames are JSON objects ``{"event": <name>, "data": <payload>}``; frames that
    are not JSON and events other than ``heartbeat`` are ignored.
    """
    await websocket.accept()
    subscriber = Subscriber(WebSocketTransport(websocket))
    await ctx.broadcaster.connect(subscriber)
    try:
        await subscriber.send("connection", "IoT telemetry server connected")
        while True:
            try:
                message = await websocket.receive_json()
            except ValueError:
                logger.debug(f"Ignoring malformed frame from subscriber {subscriber.id}")
                continue
            if not isinstance(message, dict) or message.get("event") != HEARTBEAT:
                continue
            await ctx.broadcaster.publish(HEARTBEAT, message.get("data"), origin=subscriber)
    except WebSocketDisconnect:
        pass
    finally:
        await ctx.broadcaster.disconnect(subscriber)
