"""WebSocket Hub — manages connections and broadcasts events.

Supports two channel types:
  - "state:{key}" — full new value of a store key after each mutation
  - "notifications" — each new notification as it is delivered

Thread-safe: store subscribers fire on whatever thread mutated the store
(timer threads, background scenes, request handlers). push_state_change()
and push_notification() bridge into the async loop with
asyncio.run_coroutine_threadsafe().
"""

import asyncio
import json
import logging

from fastapi import WebSocket

logger = logging.getLogger("homesim.ws")

NOTIFICATIONS_CHANNEL = "notifications"


class WebSocketHub:
    """Manages WebSocket connections and broadcasts events to subscribers."""

    def __init__(self):
        # channel -> set of WebSocket connections
        self._channels: dict[str, set[WebSocket]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    def set_loop(self, loop: asyncio.AbstractEventLoop):
        """Set the asyncio event loop (called on startup and on connect)."""
        self._loop = loop

    async def subscribe(self, ws: WebSocket, channel: str):
        self._channels.setdefault(channel, set()).add(ws)
        logger.info("WS subscribed: %s (total: %d)", channel, len(self._channels[channel]))

    async def unsubscribe(self, ws: WebSocket, channel: str):
        if channel in self._channels:
            self._channels[channel].discard(ws)
            if not self._channels[channel]:
                del self._channels[channel]
            logger.info("WS unsubscribed: %s", channel)

    async def broadcast(self, channel: str, data: dict):
        """Send a JSON message to all subscribers of a channel."""
        subscribers = self._channels.get(channel)
        if not subscribers:
            return

        message = json.dumps(data, default=str)
        dead = []
        for ws in list(subscribers):
            try:
                await ws.send_text(message)
            except (ConnectionError, RuntimeError) as e:
                logger.warning("broadcast: send failed on %s: %s", channel, e)
                dead.append(ws)

        for ws in dead:
            subscribers.discard(ws)

    def _schedule(self, channel: str, data: dict):
        if not self._loop or not self._loop.is_running():
            return
        if not self.has_subscribers(channel):
            return
        try:
            asyncio.run_coroutine_threadsafe(self.broadcast(channel, data), self._loop)
        except RuntimeError:
            pass  # Loop closed during shutdown

    def push_state_change(self, key: str, value):
        """Thread-safe: push the new value of a store key."""
        self._schedule(f"state:{key}", {"type": "state_change", "key": key, "value": value})

    def push_notification(self, notification: dict):
        """Thread-safe: push a freshly added notification."""
        self._schedule(NOTIFICATIONS_CHANNEL, {"type": "notification", "notification": notification})

    def has_subscribers(self, channel: str) -> bool:
        return bool(self._channels.get(channel))

    @property
    def connection_count(self) -> int:
        """Total active WebSocket subscriptions across all channels."""
        return sum(len(s) for s in self._channels.values())
