"""WebSocket routes for real-time state and notification streams.

Endpoints:
  WS /ws/state?keys=devices,notifications  — store key changes
  WS /ws/notifications                     — new notifications as delivered
"""

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from .websocket_hub import NOTIFICATIONS_CHANNEL

router = APIRouter(tags=["websocket"])
logger = logging.getLogger("homesim.ws.routes")

DEFAULT_KEYS = "devices,notifications"


async def _hold(ws: WebSocket, channels: list[str]):
    hub = router.app.state.ws_hub
    hub.set_loop(asyncio.get_running_loop())
    await ws.accept()
    for channel in channels:
        await hub.subscribe(ws, channel)

    try:
        # Keep connection alive until the client goes away
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        for channel in channels:
            await hub.unsubscribe(ws, channel)


@router.websocket("/ws/state")
async def ws_state(ws: WebSocket, keys: str = Query(default=DEFAULT_KEYS)):
    """Stream the new value of each subscribed store key after every change."""
    wanted = [k.strip() for k in keys.split(",") if k.strip()]
    logger.info("State stream connected: keys=%s", wanted)
    await _hold(ws, [f"state:{k}" for k in wanted])
    logger.info("State stream disconnected: keys=%s", wanted)


@router.websocket("/ws/notifications")
async def ws_notifications(ws: WebSocket):
    await _hold(ws, [NOTIFICATIONS_CHANNEL])
