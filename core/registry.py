"""DeviceRegistry — device, home and room records on the store.

All device mutations go through update_device, which replaces the device
record (never mutating it in place), refreshes last_updated and then runs
the state-change hook synchronously before returning. The hook is how the
automation engine observes the world; it is injected by the composition
root so the registry does not depend on the engine.

Unknown ids are silent no-ops: mutators return None/False and log at debug.
"""

import logging
import uuid
from collections.abc import Callable

from devices import catalog

from .analytics import Analytics
from .notifications import NotificationCenter
from .store import Store, now_iso

logger = logging.getLogger("homesim.registry")

# on_state_change(device_id, old_state, patch)
StateChangeHook = Callable[[str, dict, dict], None]


class DeviceRegistry:
    """CRUD and queries for devices (plus homes and rooms)."""

    def __init__(
        self,
        store: Store,
        analytics: Analytics,
        notifications: NotificationCenter,
        on_state_change: StateChangeHook | None = None,
        on_device_removed: Callable[[str], None] | None = None,
    ):
        self._store = store
        self._analytics = analytics
        self._notifications = notifications
        self._on_state_change = on_state_change
        self._on_device_removed = on_device_removed

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def add_device(self, data: dict) -> dict:
        """Create a device with catalog defaults, a fresh id and timestamps."""
        device_type = data.get("type")
        if not device_type:
            raise ValueError("Device type is required")
        if not catalog.is_known_type(device_type):
            raise ValueError(f"Unknown device type: {device_type}")

        now = now_iso()
        current_home = self._store.get("current_home")
        device = {
            **catalog.defaults_for(device_type),
            "is_online": True,
            "is_favorite": False,
            "linked_devices": [],
            **data,
            "id": data.get("id") or uuid.uuid4().hex,
            "created_at": now,
            "last_updated": now,
        }
        if not device.get("home_id") and current_home:
            device["home_id"] = current_home["id"]
        device.setdefault("name", device_type.replace("_", " ").title())

        with self._store.lock:
            self._store.set("devices", self._store.get("devices") + [device])

        logger.info("Device added: %s (%s) [%s]", device["id"], device_type, device["name"])
        return device

    def get_device(self, device_id: str) -> dict | None:
        for device in self._store.get("devices"):
            if device["id"] == device_id:
                return device
        return None

    def list_devices(self) -> list[dict]:
        return list(self._store.get("devices"))

    def update_device(self, device_id: str, patch: dict) -> dict | None:
        """Merge patch into a device and run the state-change hook.

        The store lock is held for the whole call, including cascades
        triggered by the hook, so no timer thread interleaves.
        """
        with self._store.lock:
            old_state = self.get_device(device_id)
            if old_state is None:
                logger.debug("update_device: unknown device %s", device_id)
                return None

            patch = {k: v for k, v in patch.items() if k not in ("id", "created_at")}
            updated = {**old_state, **patch, "last_updated": now_iso()}
            self._store.set(
                "devices",
                [updated if d["id"] == device_id else d for d in self._store.get("devices")],
            )
            logger.debug("%s ← %s", device_id, patch)

            if self._on_state_change:
                self._on_state_change(device_id, old_state, patch)

            return self.get_device(device_id)

    def delete_device(self, device_id: str) -> bool:
        """Remove a device and scrub references to it (scenes, links, rules)."""
        with self._store.lock:
            devices = self._store.get("devices")
            if not any(d["id"] == device_id for d in devices):
                logger.debug("delete_device: unknown device %s", device_id)
                return False

            remaining = []
            for device in devices:
                if device["id"] == device_id:
                    continue
                links = device.get("linked_devices") or []
                if device_id in links:
                    device = {**device, "linked_devices": [i for i in links if i != device_id]}
                remaining.append(device)
            self._store.set("devices", remaining)

            scenes = self._store.get("scenes")
            self._store.set(
                "scenes",
                [
                    {
                        **scene,
                        "actions": [
                            a for a in scene.get("actions", []) if a.get("device_id") != device_id
                        ],
                    }
                    for scene in scenes
                ],
            )

            if self._on_device_removed:
                self._on_device_removed(device_id)

        logger.info("Device removed: %s", device_id)
        return True

    def toggle_device(self, device_id: str) -> dict | None:
        """Flip is_on and record the action in today's analytics."""
        with self._store.lock:
            device = self.get_device(device_id)
            if device is None:
                logger.debug("toggle_device: unknown device %s", device_id)
                return None
            new_state = not device.get("is_on", False)
            result = self.update_device(device_id, {"is_on": new_state, "last_action": now_iso()})
            self._analytics.record_device_action(device_id, "on" if new_state else "off")
            return result

    def finish_towel_dry(self, device_id: str) -> bool:
        """Switch off a towel dryer whose towel-dry cycle reached its target.

        The single place this transition happens outside the rule engine.
        Returns False (no change) unless the dryer is on, in towel_dry mode
        and at or above its target temperature.
        """
        with self._store.lock:
            device = self.get_device(device_id)
            if not device or device.get("type") != "towel_dryer":
                return False
            current = device.get("current_temperature")
            target = device.get("target_temperature")
            if not (
                device.get("is_on")
                and device.get("mode") == "towel_dry"
                and current is not None
                and target is not None
                and current >= target
            ):
                return False
            self.update_device(device_id, {"is_on": False, "last_auto_action": "towel_dry_complete"})
            self._notifications.add(
                {
                    "type": "success",
                    "title": "Towel drying complete",
                    "message": f"{device.get('name')} reached its target temperature and switched off",
                    "icon": device.get("icon", "🧺"),
                    "device_id": device_id,
                }
            )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def by_room(self, room_id: str) -> list[dict]:
        return [d for d in self._store.get("devices") if d.get("room_id") == room_id]

    def by_type(self, device_type: str) -> list[dict]:
        return [d for d in self._store.get("devices") if d.get("type") == device_type]

    def favorites(self) -> list[dict]:
        return [d for d in self._store.get("devices") if d.get("is_favorite")]

    def linked_devices(self, device_id: str) -> list[dict]:
        device = self.get_device(device_id)
        if not device:
            return []
        linked = []
        for other_id in device.get("linked_devices") or []:
            other = self.get_device(other_id)
            if other:
                linked.append(other)
        return linked

    # ------------------------------------------------------------------
    # Links (symmetric)
    # ------------------------------------------------------------------

    def link_devices(self, first_id: str, second_id: str) -> bool:
        with self._store.lock:
            first = self.get_device(first_id)
            second = self.get_device(second_id)
            if not first or not second or first_id == second_id:
                return False
            links = list(first.get("linked_devices") or [])
            if second_id not in links:
                self.update_device(first_id, {"linked_devices": links + [second_id]})
            links = list(second.get("linked_devices") or [])
            if first_id not in links:
                self.update_device(second_id, {"linked_devices": links + [first_id]})
        logger.info("Devices linked: %s ↔ %s", first_id, second_id)
        return True

    def unlink_devices(self, first_id: str, second_id: str) -> bool:
        with self._store.lock:
            first = self.get_device(first_id)
            second = self.get_device(second_id)
            if not first or not second:
                return False
            self.update_device(
                first_id,
                {"linked_devices": [i for i in first.get("linked_devices") or [] if i != second_id]},
            )
            self.update_device(
                second_id,
                {"linked_devices": [i for i in second.get("linked_devices") or [] if i != first_id]},
            )
        return True

    # ------------------------------------------------------------------
    # Homes and rooms
    # ------------------------------------------------------------------

    def add_home(self, data: dict) -> dict:
        home = {
            **data,
            "id": data.get("id") or uuid.uuid4().hex,
            "rooms": [self._new_room(r) for r in data.get("rooms", [])],
            "created_at": now_iso(),
        }
        with self._store.lock:
            homes = self._store.get("homes") + [home]
            self._store.set("homes", homes)
            if len(homes) == 1:
                self.set_current_home(home["id"])
        logger.info("Home added: %s (%d room(s))", home.get("name"), len(home["rooms"]))
        return home

    def get_home(self, home_id: str) -> dict | None:
        for home in self._store.get("homes"):
            if home["id"] == home_id:
                return home
        return None

    def set_current_home(self, home_id: str) -> bool:
        home = self.get_home(home_id)
        if not home:
            return False
        self._store.set("current_home", home)
        return True

    def add_room(self, home_id: str, data: dict) -> dict | None:
        with self._store.lock:
            home = self.get_home(home_id)
            if not home:
                return None
            room = self._new_room(data)
            self._update_home(home_id, {"rooms": home.get("rooms", []) + [room]})
        return room

    def delete_room(self, home_id: str, room_id: str) -> bool:
        """Remove a room and every device placed in it."""
        with self._store.lock:
            home = self.get_home(home_id)
            if not home or not any(r["id"] == room_id for r in home.get("rooms", [])):
                return False
            self._update_home(
                home_id, {"rooms": [r for r in home["rooms"] if r["id"] != room_id]}
            )
            for device in self.by_room(room_id):
                self.delete_device(device["id"])
        return True

    def _update_home(self, home_id: str, updates: dict):
        homes = [
            {**h, **updates, "updated_at": now_iso()} if h["id"] == home_id else h
            for h in self._store.get("homes")
        ]
        self._store.set("homes", homes)
        current = self._store.get("current_home")
        if current and current["id"] == home_id:
            self._store.set("current_home", self.get_home(home_id))

    @staticmethod
    def _new_room(data: dict) -> dict:
        return {
            **data,
            "id": data.get("id") or uuid.uuid4().hex,
            "created_at": data.get("created_at") or now_iso(),
        }
