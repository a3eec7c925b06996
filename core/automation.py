"""Automation engine — declarative rules reacting to device state.

A rule is a trigger, a list of conditions (all must hold) and a list of
actions. Rules are evaluated on two paths:

  - Synchronously on every device mutation (handle_device_change is the
    registry's state-change hook) for device_state_change triggers
  - Periodically for temperature triggers: device_temperature_reached
    rules are swept by the simulation clock, device_temperature_check rules
    each own a repeating task at their trigger interval

Rule execution calls DeviceRegistry.update_device, which re-enters the
hook. Recursion is bounded three ways:
  - A state-change trigger only fires on a real transition: the new value
    must equal the configured value and the old one must differ
  - A rule never re-enters itself on the same call stack
  - Cascades deeper than MAX_CASCADE_DEPTH rules are dropped with a warning
Chained cascades across devices (water heater off → towel dryer on) are
supported.

Trigger types:
  device_state_change         {device_id, property, value}
  device_temperature_reached  {device_id}  current >= target
  device_temperature_check    {device_id, interval}  every interval seconds

Action types:
  device_control       {device_id, property, value}
  temperature_control  {device_id, logic: maintain_temperature | night_eco}
  notification         {title, message, icon}
"""

import itertools
import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime

from devices.thermostat import HysteresisThermostat

from .notifications import NotificationCenter
from .registry import DeviceRegistry
from .store import Store, now_iso
from .timers import PeriodicTask, call_later

logger = logging.getLogger("homesim.automation")

TRIGGER_TYPES = (
    "device_state_change",
    "device_temperature_reached",
    "device_temperature_check",
)
ACTION_TYPES = ("device_control", "temperature_control", "notification")

DEFAULT_CHECK_INTERVAL = 30.0
DEFAULT_LINKAGE_DELAY = 2.0
MAX_CASCADE_DEPTH = 16

TOWEL_DRY_TARGET = 45.0
ECO_MAX_TARGET = 55.0
MORNING_MIN_TARGET = 60.0


def _same_value(actual, expected) -> bool:
    """Strict equality: True never equals 1."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


OPERATORS: dict[str, Callable] = {
    "equals": _same_value,
    "not_equals": lambda a, b: not _same_value(a, b),
    "greater_than": lambda a, b: a > b,
    "less_than": lambda a, b: a < b,
}


class AutomationEngine:
    """Rule registry and evaluator."""

    def __init__(
        self,
        store: Store,
        registry: DeviceRegistry,
        notifications: NotificationCenter,
        thermostat: HysteresisThermostat | None = None,
        linkage_delay: float = DEFAULT_LINKAGE_DELAY,
        now: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._registry = registry
        self._notifications = notifications
        self.thermostat = thermostat or HysteresisThermostat()
        self.linkage_delay = linkage_delay
        self._now = now

        self._rules: dict[str, dict] = {}
        self._tasks: dict[str, PeriodicTask] = {}
        self._generations: dict[str, int] = {}
        self._generation_counter = itertools.count(1)
        self._local = threading.local()
        self._running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start periodic checks for every registered check rule."""
        self._running = True
        for rule in list(self._rules.values()):
            if rule["trigger"].get("type") == "device_temperature_check":
                self._schedule_check(rule)
        logger.info("Automation engine started (%d rule(s))", len(self._rules))

    def stop(self):
        self._running = False
        for rule_id in list(self._tasks):
            self._tasks.pop(rule_id).cancel()
        logger.info("Automation engine stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Registration (in-memory cache)
    # ------------------------------------------------------------------

    def register_rule(self, rule: dict):
        self._rules[rule["id"]] = rule
        if rule["trigger"].get("type") == "device_temperature_check":
            self._schedule_check(rule)
        logger.debug("Rule registered: %s (%s)", rule["id"], rule["trigger"].get("type"))

    def unregister_rule(self, rule_id: str) -> bool:
        rule = self._rules.pop(rule_id, None)
        self._generations.pop(rule_id, None)
        task = self._tasks.pop(rule_id, None)
        if task:
            # The caller may hold the store lock a pending tick is blocked on
            task.cancel(wait=False)
        return rule is not None

    def get_registered(self, rule_id: str) -> dict | None:
        return self._rules.get(rule_id)

    def registered_rules(self) -> list[dict]:
        return list(self._rules.values())

    def has_periodic_task(self, rule_id: str) -> bool:
        return rule_id in self._tasks

    def _schedule_check(self, rule: dict):
        old = self._tasks.pop(rule["id"], None)
        if old:
            old.cancel(wait=False)
        generation = next(self._generation_counter)
        self._generations[rule["id"]] = generation
        interval = rule["trigger"].get("interval") or DEFAULT_CHECK_INTERVAL
        task = PeriodicTask(
            name=f"rule-{rule['id']}",
            interval=float(interval),
            callback=lambda rule_id=rule["id"], generation=generation: self._run_periodic_check(
                rule_id, generation
            ),
        )
        self._tasks[rule["id"]] = task
        if self._running:
            task.start()

    def _run_periodic_check(self, rule_id: str, generation: int | None = None):
        with self._store.lock:
            rule = self._rules.get(rule_id)
            if rule is None:
                # Unregistered between ticks
                return
            if generation is not None and self._generations.get(rule_id) != generation:
                # Tick from a task replaced while it waited for the lock
                return
            self.process_temperature_check(rule)

    # ------------------------------------------------------------------
    # Rule persistence (store-backed)
    # ------------------------------------------------------------------

    def add_rule(self, data: dict) -> dict:
        """Validate, persist and register a rule."""
        trigger = dict(data.get("trigger") or {})
        if trigger.get("type") not in TRIGGER_TYPES:
            raise ValueError(f"Unknown trigger type: {trigger.get('type')}")
        if trigger["type"] == "device_temperature_check":
            trigger.setdefault("interval", DEFAULT_CHECK_INTERVAL)

        rule = {
            "name": "",
            "description": "",
            "conditions": [],
            "actions": [],
            **data,
            "trigger": trigger,
            "id": data.get("id") or uuid.uuid4().hex,
            "is_active": data.get("is_active", True),
            "created_at": now_iso(),
        }
        with self._store.lock:
            self._store.set("automation_rules", self._store.get("automation_rules") + [rule])
            self.register_rule(rule)
        logger.info("Automation rule added: %s", rule["name"] or rule["id"])
        return rule

    def get_rule(self, rule_id: str) -> dict | None:
        for rule in self._store.get("automation_rules"):
            if rule["id"] == rule_id:
                return rule
        return None

    def list_rules(self) -> list[dict]:
        return list(self._store.get("automation_rules"))

    def update_rule(self, rule_id: str, updates: dict) -> dict | None:
        with self._store.lock:
            if not self.get_rule(rule_id):
                return None
            updates = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
            if "trigger" in updates and updates["trigger"].get("type") not in TRIGGER_TYPES:
                raise ValueError(f"Unknown trigger type: {updates['trigger'].get('type')}")
            self._store.set(
                "automation_rules",
                [
                    {**r, **updates, "updated_at": now_iso()} if r["id"] == rule_id else r
                    for r in self._store.get("automation_rules")
                ],
            )
            rule = self.get_rule(rule_id)
            self.unregister_rule(rule_id)
            self.register_rule(rule)
        return rule

    def delete_rule(self, rule_id: str) -> bool:
        with self._store.lock:
            rules = self._store.get("automation_rules")
            remaining = [r for r in rules if r["id"] != rule_id]
            if len(remaining) == len(rules):
                return False
            self._store.set("automation_rules", remaining)
            self.unregister_rule(rule_id)
        logger.info("Automation rule deleted: %s", rule_id)
        return True

    def load_rules(self) -> int:
        """Register every persisted rule (called once at start-up)."""
        rules = self._store.get("automation_rules")
        for rule in rules:
            if rule.get("trigger", {}).get("type") in TRIGGER_TYPES:
                self.register_rule(rule)
            else:
                logger.warning("Skipping persisted rule %s: bad trigger", rule.get("id"))
        return len(self._rules)

    def forget_device(self, device_id: str):
        """Drop rules triggered by a deleted device; strip its conditions and actions elsewhere."""
        with self._store.lock:
            for rule in list(self._store.get("automation_rules")):
                if rule.get("trigger", {}).get("device_id") == device_id:
                    self.delete_rule(rule["id"])
                    continue
                conditions = [c for c in rule.get("conditions", []) if c.get("device_id") != device_id]
                actions = [a for a in rule.get("actions", []) if a.get("device_id") != device_id]
                if len(conditions) != len(rule.get("conditions", [])) or len(actions) != len(
                    rule.get("actions", [])
                ):
                    self.update_rule(rule["id"], {"conditions": conditions, "actions": actions})

    # ------------------------------------------------------------------
    # State-change path
    # ------------------------------------------------------------------

    def handle_device_change(self, device_id: str, old_state: dict, patch: dict):
        """Registry hook: evaluate rules, then simulate device linkage on on/off transitions."""
        self.process_device_state_change(device_id, old_state, patch)
        if "is_on" in patch and bool(patch["is_on"]) != bool(old_state.get("is_on")):
            self.simulate_linkage(device_id, "turn_on" if patch["is_on"] else "turn_off")

    def process_device_state_change(self, device_id: str, old_state: dict | None, patch: dict):
        for rule in list(self._rules.values()):
            trigger = rule.get("trigger", {})
            if not rule.get("is_active", True):
                continue
            if trigger.get("type") != "device_state_change" or trigger.get("device_id") != device_id:
                continue
            prop = trigger.get("property")
            if prop not in patch or not _same_value(patch[prop], trigger.get("value")):
                continue
            if old_state is not None and _same_value(old_state.get(prop), patch[prop]):
                # Not a transition
                continue
            if not self.check_conditions(rule.get("conditions", [])):
                logger.debug("Rule %s: conditions not met", rule["id"])
                continue
            self.execute_rule(rule)

    def check_conditions(self, conditions: list[dict]) -> bool:
        """All conditions must hold against live device state."""
        for condition in conditions:
            device = self._registry.get_device(condition.get("device_id"))
            if device is None:
                return False
            operator = condition.get("operator", "equals")
            compare = OPERATORS.get(operator)
            if compare is None:
                logger.warning("Unknown operator '%s', comparing for equality", operator)
                compare = _same_value
            actual = device.get(condition.get("property"))
            try:
                if not compare(actual, condition.get("value")):
                    return False
            except TypeError:
                return False
        return True

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _executing(self) -> set:
        if not hasattr(self._local, "executing"):
            self._local.executing = set()
        return self._local.executing

    def execute_rule(self, rule: dict) -> bool:
        """Run every action of a rule, then announce it. Returns False if skipped."""
        executing = self._executing()
        if rule["id"] in executing:
            logger.debug("Rule %s already running on this stack, skipping", rule["id"])
            return False
        if len(executing) >= MAX_CASCADE_DEPTH:
            logger.warning("Cascade depth %d reached, dropping rule %s", MAX_CASCADE_DEPTH, rule["id"])
            return False
        if not self._automation_enabled():
            logger.debug("Automation disabled, rule %s not run", rule["id"])
            return False

        executing.add(rule["id"])
        try:
            logger.info("Executing automation rule: %s", rule.get("name") or rule["id"])
            with self._store.lock:
                for action in rule.get("actions", []):
                    self.execute_action(action)
                self._notifications.add(
                    {
                        "type": "info",
                        "title": "Automation executed",
                        "message": f"{rule.get('name') or 'Rule'} ran automatically",
                        "icon": "🤖",
                    }
                )
        finally:
            executing.discard(rule["id"])
        return True

    def execute_action(self, action: dict):
        action_type = action.get("type")
        if action_type == "device_control":
            result = self._registry.update_device(
                action.get("device_id"), {action.get("property"): action.get("value")}
            )
            if result is None:
                logger.debug("device_control: device %s not found", action.get("device_id"))
        elif action_type == "temperature_control":
            self._temperature_control(action)
        elif action_type == "notification":
            self._notifications.add(
                {
                    "type": action.get("notification_type", "info"),
                    "title": action.get("title", ""),
                    "message": action.get("message", ""),
                    "icon": action.get("icon") or "🔔",
                }
            )
        else:
            logger.warning("Unknown action type '%s', skipped", action_type)

    def _temperature_control(self, action: dict):
        device = self._registry.get_device(action.get("device_id"))
        if not device:
            return
        logic = action.get("logic")
        if logic == "maintain_temperature":
            decision = self.thermostat.evaluate(device)
            if decision is not None:
                self._registry.update_device(
                    device["id"],
                    {
                        "is_on": decision,
                        "last_auto_action": "auto_turn_on_heating" if decision else "auto_turn_off_heating",
                    },
                )
        elif logic == "night_eco":
            self._water_heater_schedule(device)
        else:
            logger.warning("Unknown temperature logic '%s', skipped", logic)

    def _water_heater_schedule(self, device: dict):
        """Eco mode overnight, back to auto with hot water for the morning."""
        hour = self._now().hour
        target = device.get("target_temperature") or 0
        if hour >= 22 or hour <= 6:
            if device.get("mode") != "eco" and device.get("is_on"):
                self._registry.update_device(
                    device["id"],
                    {
                        "mode": "eco",
                        "target_temperature": min(target, ECO_MAX_TARGET),
                        "last_auto_action": "auto_eco_mode_night",
                    },
                )
                self._notifications.add_device_notification(
                    "automation_executed", device, message="Switched to night-time eco mode"
                )
        elif hour <= 8:
            if device.get("mode") == "eco":
                self._registry.update_device(
                    device["id"],
                    {
                        "mode": "auto",
                        "target_temperature": max(target, MORNING_MIN_TARGET),
                        "last_auto_action": "auto_morning_boost",
                    },
                )
                self._notifications.add_device_notification(
                    "automation_executed", device, message="Preparing hot water for the morning"
                )

    # ------------------------------------------------------------------
    # Periodic path
    # ------------------------------------------------------------------

    def process_temperature_check(self, rule: dict) -> bool:
        """Evaluate a temperature-triggered rule. Returns True if it ran."""
        if not rule.get("is_active", True):
            return False
        trigger = rule.get("trigger", {})
        device = self._registry.get_device(trigger.get("device_id"))
        if not device:
            return False
        if not self.check_conditions(rule.get("conditions", [])):
            return False

        if trigger.get("type") == "device_temperature_reached":
            current = device.get("current_temperature")
            target = device.get("target_temperature")
            if current is None or target is None or current < target:
                return False
            return self.execute_rule(rule)
        if trigger.get("type") == "device_temperature_check":
            return self.execute_rule(rule)
        return False

    def check_all_rules(self):
        """Sweep every temperature-reached rule (driven by the clock)."""
        with self._store.lock:
            for rule in list(self._rules.values()):
                if rule["trigger"].get("type") == "device_temperature_reached":
                    self.process_temperature_check(rule)

    def completion_rule_for(self, device_id: str) -> dict | None:
        """The active temperature-reached rule that switches device_id off, if any."""
        for rule in self._rules.values():
            trigger = rule.get("trigger", {})
            if (
                rule.get("is_active", True)
                and trigger.get("type") == "device_temperature_reached"
                and trigger.get("device_id") == device_id
            ):
                return rule
        return None

    # ------------------------------------------------------------------
    # Device linkage
    # ------------------------------------------------------------------

    def simulate_linkage(self, device_id: str, action: str):
        """Water heater off → linked smart towel dryers start towel drying."""
        device = self._registry.get_device(device_id)
        if not device or device.get("type") != "water_heater" or action != "turn_off":
            return

        for dryer in self._registry.linked_devices(device_id):
            if dryer.get("type") != "towel_dryer" or not dryer.get("smart_automation"):
                continue
            if self._covered_by_rule(device_id, dryer["id"]):
                logger.debug("Linkage %s → %s handled by a rule", device_id, dryer["id"])
                continue
            call_later(
                self.linkage_delay,
                lambda dryer_id=dryer["id"]: self._start_towel_dry(dryer_id),
                name=f"linkage-{dryer['id']}",
            )

    def _start_towel_dry(self, dryer_id: str):
        with self._store.lock:
            dryer = self._registry.get_device(dryer_id)
            if not dryer:
                return
            self._registry.update_device(
                dryer_id,
                {"is_on": True, "mode": "towel_dry", "target_temperature": TOWEL_DRY_TARGET},
            )
            self._notifications.add(
                {
                    "type": "info",
                    "title": "Towel dryer switched on",
                    "message": f"{dryer.get('name')} started towel drying automatically",
                    "icon": dryer.get("icon", "🧺"),
                    "device_id": dryer_id,
                }
            )

    def _covered_by_rule(self, heater_id: str, dryer_id: str) -> bool:
        for rule in self._rules.values():
            trigger = rule.get("trigger", {})
            if not rule.get("is_active", True):
                continue
            if (
                trigger.get("type") == "device_state_change"
                and trigger.get("device_id") == heater_id
                and trigger.get("property") == "is_on"
                and _same_value(trigger.get("value"), False)
                and any(a.get("device_id") == dryer_id for a in rule.get("actions", []))
            ):
                return True
        return False

    # ------------------------------------------------------------------
    # Implicit rules for paired appliances
    # ------------------------------------------------------------------

    def setup_device_automation(self, device: dict) -> list[dict]:
        """Create the built-in rules for water heaters and towel dryers."""
        created = []
        if device.get("type") == "water_heater":
            for dryer in self._registry.by_room(device.get("room_id")):
                if dryer.get("type") == "towel_dryer":
                    if not self._covered_by_rule(device["id"], dryer["id"]):
                        created.append(self.add_rule(self._pair_rule(device, dryer)))
                    break
        elif device.get("type") == "towel_dryer":
            created.append(self.add_rule(self._towel_dry_complete_rule(device)))
            created.append(self.add_rule(self._room_heating_rule(device)))
            for heater in self._registry.by_room(device.get("room_id")):
                if heater.get("type") == "water_heater" and not self._covered_by_rule(
                    heater["id"], device["id"]
                ):
                    created.append(self.add_rule(self._pair_rule(heater, device)))
                    break
        return created

    @staticmethod
    def _pair_rule(heater: dict, dryer: dict) -> dict:
        return {
            "name": "Water heater → towel dryer",
            "description": "When the water heater switches off, start the towel dryer in towel-dry mode",
            "trigger": {
                "type": "device_state_change",
                "device_id": heater["id"],
                "property": "is_on",
                "value": False,
            },
            "conditions": [
                {"device_id": dryer["id"], "property": "is_online", "operator": "equals", "value": True}
            ],
            "actions": [
                {"type": "device_control", "device_id": dryer["id"], "property": "is_on", "value": True},
                {"type": "device_control", "device_id": dryer["id"], "property": "mode", "value": "towel_dry"},
                {
                    "type": "device_control",
                    "device_id": dryer["id"],
                    "property": "target_temperature",
                    "value": TOWEL_DRY_TARGET,
                },
            ],
        }

    @staticmethod
    def _towel_dry_complete_rule(dryer: dict) -> dict:
        return {
            "name": "Towel dryer → off when dry",
            "description": "Switch the towel dryer off once it reaches its target in towel-dry mode",
            "trigger": {"type": "device_temperature_reached", "device_id": dryer["id"]},
            "conditions": [
                {"device_id": dryer["id"], "property": "mode", "operator": "equals", "value": "towel_dry"},
                {"device_id": dryer["id"], "property": "is_on", "operator": "equals", "value": True},
            ],
            "actions": [
                {"type": "device_control", "device_id": dryer["id"], "property": "is_on", "value": False},
                {
                    "type": "notification",
                    "title": "Towel drying complete",
                    "message": "The towel dryer reached its target temperature and switched off",
                    "icon": "🔥",
                },
            ],
        }

    @staticmethod
    def _room_heating_rule(dryer: dict) -> dict:
        return {
            "name": "Towel dryer → keep room warm",
            "description": "Hold the bathroom temperature while in room-heating mode",
            "trigger": {
                "type": "device_temperature_check",
                "device_id": dryer["id"],
                "interval": DEFAULT_CHECK_INTERVAL,
            },
            "conditions": [
                {"device_id": dryer["id"], "property": "mode", "operator": "equals", "value": "room_heating"}
            ],
            "actions": [
                {"type": "temperature_control", "device_id": dryer["id"], "logic": "maintain_temperature"}
            ],
        }

    def _automation_enabled(self) -> bool:
        settings = self._store.get("settings") or {}
        return settings.get("automation", {}).get("enabled", True)
