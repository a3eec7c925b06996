"""SmartHome — constructs and wires every simulator component.

There are no module-level singletons: one SmartHome owns the store, its
persistence, the registry, the automation engine, the scene runner and the
simulation clock, and passes each collaborator in explicitly. The registry
reaches the engine only through the two hooks installed here.

On start-up the store is restored from the last snapshot when one exists.
Otherwise bootstrap_from_config seeds a home, its rooms, devices and scenes
from the "home" section of config.yaml.
"""

import logging
import random
from collections.abc import Callable
from datetime import datetime

from devices.catalog import HEATING_DEVICE_TYPES
from devices.thermostat import HysteresisThermostat
from persistence.db import Database
from persistence.snapshot import SnapshotAdapter
from scenarios.periodic import SimulationClock

from .analytics import Analytics
from .automation import DEFAULT_LINKAGE_DELAY, AutomationEngine
from .notifications import MAX_NOTIFICATIONS, NotificationCenter
from .registry import DeviceRegistry
from .scenes import DEFAULT_SETTLE_DELAY, SceneRunner
from .store import Store

logger = logging.getLogger("homesim.home")

DEFAULT_SAMPLE_HISTORY_DAYS = 30


class SmartHome:
    """Composition root for one simulated home."""

    def __init__(
        self,
        config: dict | None = None,
        db: Database | None = None,
        rng: random.Random | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            config: Parsed config.yaml (sections home, simulation, api).
            db: Connected Database for snapshots; None keeps state in memory.
            rng: Random source shared by the clock and sample data.
            now: Clock used for analytics days and time-of-day rules.
        """
        self.config = config or {}
        sim = self.config.get("simulation") or {}
        self._rng = rng or random.Random()

        self.db = db
        self.snapshots = SnapshotAdapter(db) if db else None
        initial = self.snapshots.load_snapshot() if self.snapshots else None
        self.restored = initial is not None

        self.store = Store(initial=initial, on_persist=self._persist)
        self.analytics = Analytics(self.store, now=now)
        self.notifications = NotificationCenter(
            self.store, max_size=sim.get("max_notifications", MAX_NOTIFICATIONS)
        )
        self.registry = DeviceRegistry(
            self.store,
            self.analytics,
            self.notifications,
            on_state_change=self._on_device_state_change,
            on_device_removed=self._on_device_removed,
        )
        self.engine = AutomationEngine(
            self.store,
            self.registry,
            self.notifications,
            thermostat=HysteresisThermostat(sim.get("thermostat_tolerance", 1.0)),
            linkage_delay=sim.get("linkage_delay", DEFAULT_LINKAGE_DELAY),
            now=now,
        )
        self.scenes = SceneRunner(
            self.store,
            self.registry,
            self.notifications,
            self.analytics,
            settle_delay=sim.get("scene_settle_delay", DEFAULT_SETTLE_DELAY),
        )
        self.clock = SimulationClock(
            self.store,
            self.registry,
            self.engine,
            self.analytics,
            self.notifications,
            config=sim,
            rng=self._rng,
        )

        loaded = self.engine.load_rules()
        if self.restored:
            logger.info(
                "Restored snapshot: %d device(s), %d rule(s)",
                len(self.store.get("devices")),
                loaded,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        self.engine.start()
        self.clock.start()
        logger.info("SmartHome started")

    def stop(self):
        self.clock.stop()
        self.engine.stop()
        logger.info("SmartHome stopped")

    @property
    def is_running(self) -> bool:
        return self.engine.is_running

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _persist(self, store: Store):
        if self.snapshots:
            self.snapshots.save_snapshot(store)

    def _on_device_state_change(self, device_id: str, old_state: dict, patch: dict):
        self.engine.handle_device_change(device_id, old_state, patch)

    def _on_device_removed(self, device_id: str):
        self.engine.forget_device(device_id)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def add_device(self, data: dict, with_automation: bool = True) -> dict:
        """Add a device; heating appliances are paired and get their built-in rules."""
        with self.store.lock:
            device = self.registry.add_device(data)
            if device["type"] in HEATING_DEVICE_TYPES:
                self._pair_heating_devices(device)
                if with_automation:
                    self.engine.setup_device_automation(device)
            return self.registry.get_device(device["id"])

    def _pair_heating_devices(self, device: dict):
        """Link a water heater and towel dryer sharing a room."""
        partner_type = "towel_dryer" if device["type"] == "water_heater" else "water_heater"
        for other in self.registry.by_room(device.get("room_id")):
            if other["type"] == partner_type and other["id"] != device["id"]:
                self.registry.link_devices(device["id"], other["id"])
                logger.info("Paired %s with %s", device["id"], other["id"])
                return

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def bootstrap_from_config(self, config: dict | None = None) -> bool:
        """Seed the home from config on first run. Returns False when state already exists."""
        config = config if config is not None else self.config
        if self.store.get("homes"):
            logger.info("Home already present, skipping bootstrap")
            return False

        home_cfg = config.get("home") or {}
        home = self.registry.add_home(
            {
                "name": home_cfg.get("name", "My Home"),
                "address": home_cfg.get("address", ""),
                "rooms": [
                    {**{k: v for k, v in room.items() if k != "key"}, "id": room.get("id") or room.get("key")}
                    for room in home_cfg.get("rooms", [])
                ],
            }
        )
        rooms = {r.get("name"): r["id"] for r in home["rooms"]}
        rooms.update({r["id"]: r["id"] for r in home["rooms"]})

        # Config-local keys → generated device ids, for scene actions
        device_ids = {}
        for dev_cfg in home_cfg.get("devices", []):
            data = {k: v for k, v in dev_cfg.items() if k not in ("key", "room")}
            room = dev_cfg.get("room")
            if room is not None:
                if room not in rooms:
                    logger.warning("Device %s: unknown room '%s'", dev_cfg.get("name"), room)
                data["room_id"] = rooms.get(room)
            try:
                device = self.add_device(data)
            except ValueError as e:
                logger.warning("Skipping config device %s: %s", dev_cfg.get("name"), e)
                continue
            device_ids[dev_cfg.get("key") or device["name"]] = device["id"]

        for scene_cfg in home_cfg.get("scenes", []):
            actions = []
            for action in scene_cfg.get("actions", []):
                device_id = device_ids.get(action.get("device"))
                if device_id is None:
                    logger.warning(
                        "Scene %s: unknown device '%s'", scene_cfg.get("name"), action.get("device")
                    )
                    continue
                actions.append({"device_id": device_id, "type": action["type"], "value": action.get("value")})
            self.scenes.add_scene({**{k: v for k, v in scene_cfg.items() if k != "actions"}, "actions": actions})

        days = (config.get("simulation") or {}).get("sample_history_days", DEFAULT_SAMPLE_HISTORY_DAYS)
        if days and not self.store.get("analytics"):
            self.analytics.generate_sample_history(days, rng=self._rng)

        logger.info(
            "Bootstrapped home '%s': %d room(s), %d device(s), %d scene(s)",
            home["name"],
            len(home["rooms"]),
            len(self.store.get("devices")),
            len(self.store.get("scenes")),
        )
        return True

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        devices = self.store.get("devices")
        stats = {
            "devices_total": len(devices),
            "devices_on": sum(1 for d in devices if d.get("is_on")),
            "devices_online": sum(1 for d in devices if d.get("is_online", True)),
            "scenes": len(self.store.get("scenes")),
            "automation_rules": len(self.store.get("automation_rules")),
            "unread_notifications": self.notifications.unread_count(),
        }
        if self.snapshots:
            stats["snapshots_saved"] = self.snapshots.save_count
            stats["snapshot_failures"] = self.snapshots.failure_count
        return stats
