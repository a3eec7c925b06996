"""Simulation clock — periodic physical-model tasks.

Each task runs on its own background thread at a configurable cadence and
feeds the device registry and automation engine:

  - temperature_step: heat/cool heating appliances (5s)
  - rule_sweep: evaluate temperature-reached rules (10s)
  - status_step: countdown timers, energy accumulators, towel-dry completion (60s)
  - connectivity_sweep: random online/offline flips (30s)
  - energy_analytics_sweep: synthetic energy figures into today's analytics (1h)
  - notification_sweep: high-usage warning against the daily average (5min)
  - learn_usage_patterns: schedule/energy suggestions for heaters (1h)

Every step is also callable directly, which is how the tests drive the
clock deterministically.
"""

import logging
import random

from core.analytics import Analytics, learnable
from core.automation import AutomationEngine
from core.notifications import NotificationCenter
from core.registry import DeviceRegistry
from core.store import Store
from core.timers import PeriodicTask
from devices.catalog import (
    AMBIENT_TEMPERATURE,
    HEATING_DEVICE_TYPES,
    base_consumption,
    hourly_consumption,
)
from devices.thermal import step_temperature

logger = logging.getLogger("homesim.clock")

DEFAULT_INTERVALS = {
    "temperature_interval": 5,
    "rule_sweep_interval": 10,
    "status_interval": 60,
    "connectivity_interval": 30,
    "energy_analytics_interval": 3600,
    "notification_interval": 300,
    "learning_interval": 3600,
}

OFFLINE_FLIP_CHANCE = 0.05
ONLINE_PROBABILITY = 0.9
ENERGY_WARNING_RATIO = 1.3
PATTERN_CONFIDENCE_THRESHOLD = 0.7
HIGH_DAILY_USAGE = 5


class SimulationClock:
    """Owns the periodic simulation tasks."""

    def __init__(
        self,
        store: Store,
        registry: DeviceRegistry,
        engine: AutomationEngine,
        analytics: Analytics,
        notifications: NotificationCenter,
        config: dict | None = None,
        rng: random.Random | None = None,
    ):
        """
        Args:
            config: The "simulation" config section. Interval keys are in
                seconds; ambient_temperature and connectivity_enabled are
                also read.
            rng: Random source for connectivity and energy noise.
        """
        self._store = store
        self._registry = registry
        self._engine = engine
        self._analytics = analytics
        self._notifications = notifications
        self._rng = rng or random.Random()

        config = config or {}
        self.intervals = {k: config.get(k, v) for k, v in DEFAULT_INTERVALS.items()}
        self.ambient = config.get("ambient_temperature", AMBIENT_TEMPERATURE)
        self.connectivity_enabled = config.get("connectivity_enabled", True)
        self._tasks: list[PeriodicTask] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        steps = [
            ("temperature", "temperature_interval", self.temperature_step),
            ("rule-sweep", "rule_sweep_interval", self.rule_sweep),
            ("status", "status_interval", self.status_step),
            ("energy-analytics", "energy_analytics_interval", self.energy_analytics_sweep),
            ("notifications", "notification_interval", self.notification_sweep),
            ("learning", "learning_interval", self.learn_usage_patterns),
        ]
        if self.connectivity_enabled:
            steps.append(("connectivity", "connectivity_interval", self.connectivity_sweep))

        for name, key, callback in steps:
            interval = self.intervals[key]
            if not interval or interval <= 0:
                logger.info("Clock task %s disabled", name)
                continue
            task = PeriodicTask(name=name, interval=float(interval), callback=callback)
            task.start()
            self._tasks.append(task)
        logger.info("Simulation clock started (%d task(s))", len(self._tasks))

    def stop(self):
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        logger.info("Simulation clock stopped")

    @property
    def is_running(self) -> bool:
        return any(task.is_running for task in self._tasks)

    # ------------------------------------------------------------------
    # Physical model
    # ------------------------------------------------------------------

    def temperature_step(self):
        """Advance the thermal model one tick for every heating appliance."""
        with self._store.lock:
            for device_id in self._device_ids():
                # Re-read: an earlier update may have cascaded into this device
                device = self._registry.get_device(device_id)
                if not device or device.get("type") not in HEATING_DEVICE_TYPES:
                    continue
                patch = step_temperature(device, self.ambient)
                changed = {k: v for k, v in patch.items() if device.get(k) != v}
                if changed:
                    self._registry.update_device(device["id"], changed)

    def _device_ids(self) -> list[str]:
        return [d["id"] for d in self._registry.list_devices()]

    def rule_sweep(self):
        self._engine.check_all_rules()

    def status_step(self):
        """Countdown timers, accumulate energy and complete towel-dry cycles."""
        interval = self.intervals["status_interval"]
        with self._store.lock:
            for device_id in self._device_ids():
                device = self._registry.get_device(device_id)
                if not device:
                    continue
                # Timers count down regardless; only a running device draws power
                running = bool(device.get("is_on") and device.get("is_online", True))

                patch = {}
                timer_done = False
                remaining = device.get("remaining_time") or 0
                if remaining > 0:
                    remaining -= 1
                    patch["remaining_time"] = remaining
                    if remaining == 0:
                        patch["is_on"] = False
                        timer_done = True

                if running and "energy_consumption" in device:
                    used = hourly_consumption(device) * interval / 3600
                    patch["energy_consumption"] = round(
                        (device.get("energy_consumption") or 0.0) + used, 4
                    )

                if patch:
                    self._registry.update_device(device["id"], patch)

                if timer_done:
                    self._notifications.add(
                        {
                            "type": "info",
                            "title": "Timer complete",
                            "message": f"{device.get('name')} switched off when its timer ran out",
                            "icon": device.get("icon", "⏰"),
                            "device_id": device["id"],
                        }
                    )
                elif running and device.get("type") == "towel_dryer":
                    self._complete_towel_dry(device["id"])

    def _complete_towel_dry(self, device_id: str):
        rule = self._engine.completion_rule_for(device_id)
        if rule is not None:
            self._engine.process_temperature_check(rule)
        else:
            self._registry.finish_towel_dry(device_id)

    def connectivity_sweep(self):
        """Randomly drop devices offline (and bring them back)."""
        with self._store.lock:
            for device in self._registry.list_devices():
                if self._rng.random() >= OFFLINE_FLIP_CHANCE:
                    continue
                online = self._rng.random() < ONLINE_PROBABILITY
                if online == device.get("is_online", True):
                    continue
                self._registry.update_device(device["id"], {"is_online": online})
                if online:
                    self._notifications.add(
                        {
                            "type": "success",
                            "title": "Device back online",
                            "message": f"{device.get('name')} reconnected",
                            "icon": device.get("icon", "🔔"),
                            "device_id": device["id"],
                        }
                    )
                else:
                    self._notifications.add(
                        {
                            "type": "warning",
                            "title": "Device offline",
                            "message": f"{device.get('name')} lost its connection",
                            "icon": device.get("icon", "🔔"),
                            "device_id": device["id"],
                        }
                    )
                logger.info("%s is now %s", device["id"], "online" if online else "offline")

    # ------------------------------------------------------------------
    # Analytics-driven tasks
    # ------------------------------------------------------------------

    def energy_analytics_sweep(self):
        for device in self._registry.list_devices():
            if device.get("is_on") and device.get("is_online", True):
                kwh = base_consumption(device.get("type")) * self._rng.uniform(0.8, 1.2)
                self._analytics.record_energy(device["id"], kwh)

    def notification_sweep(self):
        today = self._analytics.energy_report("today")["total"]
        average = self._analytics.average_daily_energy()
        if average > 0 and today > average * ENERGY_WARNING_RATIO:
            self._notifications.add(
                {
                    "type": "warning",
                    "title": "High energy usage",
                    "message": f"Today's usage ({today:.1f} kWh) is well above the daily average "
                    f"({average:.1f} kWh)",
                    "icon": "⚡",
                }
            )

    def learn_usage_patterns(self) -> list[dict]:
        """Analyse heater usage and announce confident suggestions.

        Returns the suggestions made. Only notifications are written.
        """
        settings = self._store.get("settings") or {}
        if not settings.get("automation", {}).get("learning_mode", True):
            return []

        made = []
        for device in self._registry.list_devices():
            if not learnable(device):
                continue
            pattern = self._analytics.analyze_usage_pattern(device["id"])
            if pattern["confidence"] <= PATTERN_CONFIDENCE_THRESHOLD:
                continue

            if pattern["peak_hours"]:
                hours = ", ".join(f"{h:02d}:00" for h in pattern["peak_hours"])
                made.append(
                    {
                        "type": "schedule",
                        "device_id": device["id"],
                        "title": "Smart schedule",
                        "message": f"{device.get('name')} is mostly used around {hours}. "
                        "Create a schedule?",
                    }
                )
            if pattern["average_daily"] > HIGH_DAILY_USAGE:
                made.append(
                    {
                        "type": "energy",
                        "device_id": device["id"],
                        "title": "Energy saving",
                        "message": f"{device.get('name')} is used about "
                        f"{pattern['average_daily']:.0f} times a day. Consider eco mode.",
                    }
                )

        for suggestion in made:
            self._notifications.add(
                {
                    "type": "info",
                    "title": suggestion["title"],
                    "message": suggestion["message"],
                    "icon": "💡",
                    "device_id": suggestion["device_id"],
                }
            )
        if made:
            logger.info("Usage learning produced %d suggestion(s)", len(made))
        return made
