"""Analytics — per-day usage and energy history plus derived reports.

The "analytics" key holds one entry per calendar day (ISO date string):

    {
        "2026-10-18": {
            "device_actions": {device_id: [{action, value, timestamp}, ...]},
            "energy_consumption": {device_id: kWh},
            "scene_runs": {scene_id: count},
        },
    }

Reports (energy per period, usage patterns, suggestions) are pure reads.
"""

import logging
import random
import uuid
from collections.abc import Callable
from datetime import date, datetime, timedelta

from devices.catalog import HEATING_DEVICE_TYPES, base_consumption

from .store import Store

logger = logging.getLogger("homesim.analytics")

# Usage-pattern analysis
PATTERN_WINDOW_DAYS = 7
PATTERN_MIN_ACTIONS = 10
PATTERN_FULL_CONFIDENCE_ACTIONS = 50
FREQUENT_DEVICE_ACTIONS = 5


def _empty_day() -> dict:
    return {"device_actions": {}, "energy_consumption": {}, "scene_runs": {}}


class Analytics:
    """Records device activity and derives energy and usage reports."""

    def __init__(self, store: Store, now: Callable[[], datetime] = datetime.now):
        self._store = store
        self._now = now

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def today_key(self) -> str:
        return self._now().date().isoformat()

    def record_device_action(self, device_id: str, action: str, value=None):
        entry = {
            "action": action,
            "value": value,
            "timestamp": self._now().astimezone().isoformat(),
        }
        self._update_day(
            lambda day: {
                **day,
                "device_actions": {
                    **day["device_actions"],
                    device_id: day["device_actions"].get(device_id, []) + [entry],
                },
            }
        )

    def record_energy(self, device_id: str, consumption: float):
        self._update_day(
            lambda day: {
                **day,
                "energy_consumption": {
                    **day["energy_consumption"],
                    device_id: day["energy_consumption"].get(device_id, 0.0) + consumption,
                },
            }
        )

    def record_scene_run(self, scene_id: str):
        self._update_day(
            lambda day: {
                **day,
                "scene_runs": {
                    **day.get("scene_runs", {}),
                    scene_id: day.get("scene_runs", {}).get(scene_id, 0) + 1,
                },
            }
        )

    def _update_day(self, transform: Callable[[dict], dict]):
        with self._store.lock:
            key = self.today_key()
            analytics = self._store.get("analytics")
            day = {**_empty_day(), **analytics.get(key, {})}
            self._store.set("analytics", {**analytics, key: transform(day)})

    # ------------------------------------------------------------------
    # Energy reports
    # ------------------------------------------------------------------

    def day_energy(self, day_key: str) -> dict:
        day = self._store.get("analytics").get(day_key, {})
        devices = dict(day.get("energy_consumption", {}))
        return {"date": day_key, "total": sum(devices.values()), "devices": devices}

    def energy_report(self, period: str = "today") -> dict:
        """Energy totals for today, yesterday, the last 7 days, or month to date."""
        today = self._now().date()
        if period == "today":
            return self.day_energy(today.isoformat())
        if period == "yesterday":
            return self.day_energy((today - timedelta(days=1)).isoformat())
        if period == "week":
            return self._range_energy([today - timedelta(days=i) for i in range(6, -1, -1)])
        if period == "month":
            start = today.replace(day=1)
            return self._range_energy(
                [start + timedelta(days=i) for i in range((today - start).days + 1)]
            )
        logger.warning("Unknown energy period: %s", period)
        return {"total": 0.0, "devices": {}, "daily": []}

    def _range_energy(self, days: list[date]) -> dict:
        total = 0.0
        devices: dict[str, float] = {}
        daily = []
        for d in days:
            day = self.day_energy(d.isoformat())
            total += day["total"]
            daily.append({"date": day["date"], "total": day["total"]})
            for device_id, kwh in day["devices"].items():
                devices[device_id] = devices.get(device_id, 0.0) + kwh
        return {"total": total, "devices": devices, "daily": daily}

    def detailed_energy_report(self, period: str = "today") -> dict:
        """energy_report enriched with per-device cost and share, largest first."""
        report = self.energy_report(period)
        cost_per_kwh = self._store.get("settings").get("energy", {}).get("cost_per_kwh", 0)
        devices = {d["id"]: d for d in self._store.get("devices")}
        total = report["total"]

        details = []
        for device_id, kwh in report["devices"].items():
            device = devices.get(device_id)
            if not device:
                continue
            share = (kwh / total * 100) if total else 0.0
            details.append(
                {
                    "device_id": device_id,
                    "name": device.get("name"),
                    "consumption": kwh,
                    "cost": kwh * cost_per_kwh,
                    "percentage": round(share, 1),
                }
            )
        details.sort(key=lambda d: d["consumption"], reverse=True)

        return {
            **report,
            "device_details": details,
            "total_cost": total * cost_per_kwh,
            "average_hourly": total / 24,
        }

    def average_daily_energy(self) -> float:
        analytics = self._store.get("analytics")
        if not analytics:
            return 0.0
        total = sum(
            sum(day.get("energy_consumption", {}).values()) for day in analytics.values()
        )
        return total / len(analytics)

    # ------------------------------------------------------------------
    # Usage patterns
    # ------------------------------------------------------------------

    def action_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for day in self._store.get("analytics").values():
            for device_id, actions in day.get("device_actions", {}).items():
                counts[device_id] = counts.get(device_id, 0) + len(actions)
        return counts

    def frequently_used_devices(self, min_actions: int = FREQUENT_DEVICE_ACTIONS) -> list[dict]:
        counts = self.action_counts()
        frequent = [d for d in self._store.get("devices") if counts.get(d["id"], 0) > min_actions]
        return sorted(frequent, key=lambda d: counts.get(d["id"], 0), reverse=True)

    def analyze_usage_pattern(self, device_id: str) -> dict:
        """Peak hours and confidence from the last PATTERN_WINDOW_DAYS days of actions.

        Confidence scales with action volume: zero up to PATTERN_MIN_ACTIONS
        actions, reaching 1.0 at PATTERN_FULL_CONFIDENCE_ACTIONS.
        """
        analytics = self._store.get("analytics")
        recent_days = sorted(analytics)[-PATTERN_WINDOW_DAYS:]
        hourly = [0] * 24
        total = 0
        for day_key in recent_days:
            for action in analytics[day_key].get("device_actions", {}).get(device_id, []):
                try:
                    hour = datetime.fromisoformat(action["timestamp"]).hour
                except (KeyError, TypeError, ValueError):
                    continue
                hourly[hour] += 1
                total += 1

        ranked = sorted(
            ((count, hour) for hour, count in enumerate(hourly) if count > 0),
            key=lambda item: (-item[0], item[1]),
        )
        confidence = 0.0
        if total > PATTERN_MIN_ACTIONS:
            confidence = min(total / PATTERN_FULL_CONFIDENCE_ACTIONS, 1.0)

        return {
            "peak_hours": [hour for _, hour in ranked[:3]],
            "total_usage": total,
            "confidence": confidence,
            "average_daily": total / PATTERN_WINDOW_DAYS,
        }

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def suggestions(self) -> list[dict]:
        """Advisory suggestions derived from devices and history. Read-only."""
        devices = self._store.get("devices")
        suggestions = []

        if self.energy_report("today")["total"] > self.average_daily_energy() * 1.2:
            suggestions.append(
                _suggestion(
                    "energy",
                    "Save energy",
                    "Today's usage is over 20% above average. Create an energy-saving scene?",
                    "create_energy_scene",
                    "high",
                )
            )

        frequent = self.frequently_used_devices()
        if frequent:
            suggestions.append(
                _suggestion(
                    "automation",
                    "Smart automation",
                    f"You often use {frequent[0].get('name')}. Create an automatic schedule?",
                    "create_schedule",
                    "medium",
                    device_id=frequent[0]["id"],
                )
            )

        offline = [d for d in devices if not d.get("is_online", True)]
        if offline:
            suggestions.append(
                _suggestion(
                    "security",
                    "Check devices",
                    f"{len(offline)} device(s) are offline. Check their connection?",
                    "check_devices",
                    "high",
                )
            )

        details = {d["device_id"]: d for d in self.detailed_energy_report("today")["device_details"]}
        for device in devices:
            if device.get("type") == "water_heater":
                share = details.get(device["id"], {}).get("percentage", 0)
                if share > 30:
                    suggestions.append(
                        _suggestion(
                            "energy_saving",
                            "Water heater energy use",
                            f"{device.get('name')} accounts for {share}% of today's energy. "
                            "Consider eco mode.",
                            "optimize_water_heater",
                            "high",
                            device_id=device["id"],
                        )
                    )
                if (device.get("target_temperature") or 0) > 65:
                    suggestions.append(
                        _suggestion(
                            "temperature_optimization",
                            "Lower water temperature",
                            f"{device['target_temperature']}°C may be too hot. "
                            "60°C saves roughly 15% energy.",
                            "reduce_temperature",
                            "medium",
                            device_id=device["id"],
                        )
                    )
            elif device.get("type") == "towel_dryer" and not device.get("smart_automation"):
                suggestions.append(
                    _suggestion(
                        "automation",
                        "Enable smart automation",
                        f"Let {device.get('name')} work together with the water heater.",
                        "enable_smart_automation",
                        "medium",
                        device_id=device["id"],
                    )
                )

        hour = self._now().hour
        if hour >= 22 or hour <= 6:
            active = [d for d in devices if d.get("is_on") and d.get("type") not in ("camera", "lock")]
            if active:
                suggestions.append(
                    _suggestion(
                        "schedule",
                        "Night mode",
                        f"{len(active)} device(s) are running at night. Create a night schedule?",
                        "create_night_schedule",
                        "low",
                    )
                )
        return suggestions

    # ------------------------------------------------------------------
    # Sample data
    # ------------------------------------------------------------------

    def generate_sample_history(self, days: int = 30, rng: random.Random | None = None):
        """Fill the last `days` days with synthetic per-device energy figures."""
        rng = rng or random.Random()
        today = self._now().date()
        devices = self._store.get("devices")
        analytics = {}
        for offset in range(days - 1, -1, -1):
            key = (today - timedelta(days=offset)).isoformat()
            day = _empty_day()
            for device in devices:
                variation = rng.uniform(0.75, 1.25)
                day["energy_consumption"][device["id"]] = round(
                    base_consumption(device.get("type")) * variation, 2
                )
            analytics[key] = day
        self._store.set("analytics", analytics)
        logger.info("Generated %d day(s) of sample analytics", days)


def _suggestion(stype, title, message, action, priority, device_id=None) -> dict:
    suggestion = {
        "id": uuid.uuid4().hex,
        "type": stype,
        "title": title,
        "message": message,
        "action": action,
        "priority": priority,
    }
    if device_id:
        suggestion["device_id"] = device_id
    return suggestion


def learnable(device: dict) -> bool:
    """Devices whose usage patterns the learner analyses."""
    return device.get("type") in HEATING_DEVICE_TYPES
