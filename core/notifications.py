"""Notification Center — bounded notification history in the store.

Keeps the most recent MAX_NOTIFICATIONS notifications under the
"notifications" key, newest first. Older entries are evicted as new ones
arrive, like a ring buffer.

Delivery beyond the store (OS-level popups, toasts) belongs to the UI; an
optional on_notify callback lets the API layer push new entries out.
"""

import logging
import uuid
from collections.abc import Callable

from .store import Store, now_iso

logger = logging.getLogger("homesim.notifications")

MAX_NOTIFICATIONS = 100

NOTIFICATION_TYPES = ("info", "success", "warning", "error")

# Canned device notifications: kind -> (type, title template, message template)
SMART_NOTIFICATIONS = {
    "temperature_reached": (
        "success",
        "{name} reached its target temperature",
        "Current temperature: {current_temperature}°C",
    ),
    "energy_high": (
        "warning",
        "High energy usage",
        "{name} is using more energy than usual",
    ),
    "maintenance_reminder": (
        "info",
        "Maintenance reminder",
        "{name} is due for a periodic check",
    ),
    "automation_executed": (
        "success",
        "Automation executed",
        "{name} was controlled automatically",
    ),
}


class _Fields(dict):
    """Template fields; missing device attributes render as '?'."""

    def __missing__(self, key):
        return "?"


class NotificationCenter:
    """Adds, reads and trims notifications held by the store."""

    def __init__(
        self,
        store: Store,
        max_size: int = MAX_NOTIFICATIONS,
        on_notify: Callable[[dict], None] | None = None,
    ):
        self._store = store
        self._max_size = max_size
        self.on_notify = on_notify

    def add(self, data: dict) -> dict:
        """Record a notification (newest first) and return it."""
        notification = {
            "type": "info",
            "title": "",
            "message": "",
            "icon": "🔔",
            **data,
            "id": uuid.uuid4().hex,
            "timestamp": now_iso(),
            "is_read": False,
        }
        if notification["type"] not in NOTIFICATION_TYPES:
            logger.warning("Unknown notification type '%s', using info", notification["type"])
            notification["type"] = "info"

        with self._store.lock:
            notifications = [notification] + list(self._store.get("notifications"))
            del notifications[self._max_size :]
            self._store.set("notifications", notifications)

        logger.info("Notification [%s] %s", notification["type"], notification["title"])

        if self.on_notify and self._delivery_enabled():
            self.on_notify(notification)
        return notification

    def add_device_notification(self, kind: str, device: dict, **overrides) -> dict | None:
        """Add one of the canned device notifications (see SMART_NOTIFICATIONS)."""
        template = SMART_NOTIFICATIONS.get(kind)
        if not template:
            logger.warning("Unknown device notification kind: %s", kind)
            return None
        ntype, title, message = template
        fields = _Fields(device)
        fields.setdefault("name", device.get("id"))
        data = {
            "type": ntype,
            "title": title.format_map(fields),
            "message": message.format_map(fields),
            "icon": device.get("icon", "🔔"),
            "device_id": device.get("id"),
        }
        data.update(overrides)
        return self.add(data)

    def list(self, unread_only: bool = False) -> list[dict]:
        notifications = self._store.get("notifications")
        if unread_only:
            return [n for n in notifications if not n.get("is_read")]
        return list(notifications)

    def unread_count(self) -> int:
        return sum(1 for n in self._store.get("notifications") if not n.get("is_read"))

    def mark_read(self, notification_id: str) -> bool:
        with self._store.lock:
            notifications = self._store.get("notifications")
            if not any(n["id"] == notification_id for n in notifications):
                return False
            self._store.set(
                "notifications",
                [
                    {**n, "is_read": True} if n["id"] == notification_id else n
                    for n in notifications
                ],
            )
        return True

    def mark_all_read(self):
        with self._store.lock:
            notifications = self._store.get("notifications")
            self._store.set("notifications", [{**n, "is_read": True} for n in notifications])

    def delete(self, notification_id: str) -> bool:
        with self._store.lock:
            notifications = self._store.get("notifications")
            remaining = [n for n in notifications if n["id"] != notification_id]
            if len(remaining) == len(notifications):
                return False
            self._store.set("notifications", remaining)
        return True

    def _delivery_enabled(self) -> bool:
        settings = self._store.get("settings") or {}
        return settings.get("notifications", {}).get("enabled", True)
