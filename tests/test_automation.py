"""Tests for the automation engine: triggers, conditions, actions, cascades."""

from __future__ import annotations

import time
from datetime import datetime

import pytest

from core.automation import MAX_CASCADE_DEPTH


def _executed(home) -> int:
    return sum(1 for n in home.notifications.list() if n["title"] == "Automation executed")


def _titles(home) -> list[str]:
    return [n["title"] for n in home.notifications.list()]


def _on_rule(source_id, target_id, value=True, target_value=True, **extra) -> dict:
    return {
        "name": f"{source_id} → {target_id}",
        "trigger": {
            "type": "device_state_change",
            "device_id": source_id,
            "property": "is_on",
            "value": value,
        },
        "actions": [
            {"type": "device_control", "device_id": target_id, "property": "is_on", "value": target_value}
        ],
        **extra,
    }


def _rule_of_type(home, device_id, trigger_type) -> dict:
    for rule in home.engine.list_rules():
        if rule["trigger"]["type"] == trigger_type and rule["trigger"]["device_id"] == device_id:
            return rule
    raise AssertionError(f"no {trigger_type} rule for {device_id}")


@pytest.fixture
def lights(home):
    return [home.registry.add_device({"type": "light", "name": f"L{i}"})["id"] for i in range(3)]


# ---------------------------------------------------------------------------
# State-change triggers
# ---------------------------------------------------------------------------


class TestStateChange:
    def test_fires_once_per_real_transition(self, home, lights):
        a, b, _ = lights
        home.engine.add_rule(_on_rule(a, b))

        home.registry.update_device(a, {"is_on": True})
        home.registry.update_device(a, {"is_on": True})
        home.registry.update_device(a, {"brightness": 10})

        assert home.registry.get_device(b)["is_on"] is True
        assert _executed(home) == 1

    def test_fires_again_after_going_back(self, home, lights):
        a, b, _ = lights
        home.engine.add_rule(_on_rule(a, b))
        home.registry.update_device(a, {"is_on": True})
        home.registry.update_device(a, {"is_on": False})
        home.registry.update_device(a, {"is_on": True})
        assert _executed(home) == 2

    def test_int_does_not_match_bool(self, home, lights):
        a, b, _ = lights
        home.engine.add_rule(_on_rule(a, b))
        home.registry.update_device(a, {"is_on": 1})
        assert home.registry.get_device(b)["is_on"] is False
        assert _executed(home) == 0

    def test_inactive_rule_ignored(self, home, lights):
        a, b, _ = lights
        home.engine.add_rule(_on_rule(a, b, is_active=False))
        home.registry.update_device(a, {"is_on": True})
        assert home.registry.get_device(b)["is_on"] is False

    def test_automation_disabled_in_settings(self, home, lights):
        a, b, _ = lights
        home.engine.add_rule(_on_rule(a, b))
        settings = home.store.get("settings")
        home.store.update("settings", {"automation": {**settings["automation"], "enabled": False}})

        home.registry.update_device(a, {"is_on": True})
        assert home.registry.get_device(b)["is_on"] is False
        assert _executed(home) == 0

    def test_conditions_gate_execution(self, home, lights):
        a, b, c = lights
        rule = _on_rule(a, b)
        rule["conditions"] = [{"device_id": c, "property": "is_on", "operator": "equals", "value": True}]
        home.engine.add_rule(rule)

        home.registry.update_device(a, {"is_on": True})
        assert home.registry.get_device(b)["is_on"] is False

        home.registry.update_device(c, {"is_on": True})
        home.registry.update_device(a, {"is_on": False})
        home.registry.update_device(a, {"is_on": True})
        assert home.registry.get_device(b)["is_on"] is True


class TestConditions:
    def test_operators(self, home, lights):
        a = lights[0]
        home.registry.update_device(a, {"brightness": 50})
        check = home.engine.check_conditions

        assert check([{"device_id": a, "property": "brightness", "operator": "greater_than", "value": 40}])
        assert not check([{"device_id": a, "property": "brightness", "operator": "less_than", "value": 40}])
        assert check([{"device_id": a, "property": "brightness", "operator": "not_equals", "value": 40}])
        assert check([{"device_id": a, "property": "brightness", "value": 50}])
        assert check([])

    def test_all_must_hold(self, home, lights):
        a = lights[0]
        conditions = [
            {"device_id": a, "property": "brightness", "operator": "equals", "value": 80},
            {"device_id": a, "property": "is_on", "operator": "equals", "value": True},
        ]
        assert not home.engine.check_conditions(conditions)

    def test_missing_device_fails(self, home):
        assert not home.engine.check_conditions([{"device_id": "ghost", "property": "is_on", "value": False}])

    def test_unknown_operator_falls_back_to_equality(self, home, lights, caplog):
        a = lights[0]
        assert home.engine.check_conditions(
            [{"device_id": a, "property": "brightness", "operator": "roughly", "value": 80}]
        )
        assert "Unknown operator 'roughly'" in caplog.text

    def test_incomparable_values_fail(self, home, lights):
        a = lights[0]
        assert not home.engine.check_conditions(
            [{"device_id": a, "property": "color", "operator": "greater_than", "value": 3}]
        )


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class TestActions:
    def test_notification_action_then_summary(self, home, lights):
        a = lights[0]
        rule = _on_rule(a, a)
        rule["actions"] = [{"type": "notification", "title": "Hello", "message": "world"}]
        home.engine.add_rule(rule)
        home.registry.update_device(a, {"is_on": True})
        # Newest first: the summary follows the rule's own notification
        assert _titles(home)[:2] == ["Automation executed", "Hello"]

    def test_unknown_action_skipped(self, home, lights, caplog):
        a, b, _ = lights
        rule = _on_rule(a, b)
        rule["actions"].insert(0, {"type": "teleport"})
        home.engine.add_rule(rule)
        home.registry.update_device(a, {"is_on": True})
        assert home.registry.get_device(b)["is_on"] is True
        assert "Unknown action type 'teleport'" in caplog.text

    def test_action_on_missing_device_is_noop(self, home, lights):
        a = lights[0]
        home.engine.add_rule(_on_rule(a, "ghost"))
        home.registry.update_device(a, {"is_on": True})
        assert _executed(home) == 1


# ---------------------------------------------------------------------------
# Recursion bounds
# ---------------------------------------------------------------------------


class TestRecursion:
    def test_cycle_terminates(self, home, lights):
        a, b, _ = lights
        home.engine.add_rule(_on_rule(a, b, value=True, target_value=True))
        home.engine.add_rule(_on_rule(b, a, value=True, target_value=False))
        home.engine.add_rule(_on_rule(a, b, value=False, target_value=False))
        home.engine.add_rule(_on_rule(b, a, value=False, target_value=True))

        home.registry.update_device(a, {"is_on": True})

        # The last rule's write would re-enter the first, which is still running
        assert home.registry.get_device(a)["is_on"] is True
        assert home.registry.get_device(b)["is_on"] is False
        assert _executed(home) == 4

    def test_depth_cap(self, home):
        chain = [home.registry.add_device({"type": "light"})["id"] for _ in range(MAX_CASCADE_DEPTH + 4)]
        for source, target in zip(chain, chain[1:]):
            home.engine.add_rule(_on_rule(source, target))

        home.registry.update_device(chain[0], {"is_on": True})

        states = [home.registry.get_device(d)["is_on"] for d in chain]
        assert states[: MAX_CASCADE_DEPTH + 1] == [True] * (MAX_CASCADE_DEPTH + 1)
        assert not any(states[MAX_CASCADE_DEPTH + 1 :])


# ---------------------------------------------------------------------------
# Heater / towel dryer cascade
# ---------------------------------------------------------------------------


class TestCascade:
    def test_built_in_rules_created(self, home, heater_and_dryer):
        heater_id, dryer_id = heater_and_dryer
        types = sorted(r["trigger"]["type"] for r in home.engine.list_rules())
        assert types == [
            "device_state_change",
            "device_temperature_check",
            "device_temperature_reached",
        ]
        assert home.registry.get_device(heater_id)["linked_devices"] == [dryer_id]

    def test_heater_off_starts_dryer_with_one_notification(self, home, heater_and_dryer):
        heater_id, dryer_id = heater_and_dryer
        home.registry.update_device(heater_id, {"is_on": True})
        before = len(home.notifications.list())

        home.registry.update_device(heater_id, {"is_on": False})

        dryer = home.registry.get_device(dryer_id)
        assert dryer["is_on"] is True
        assert dryer["mode"] == "towel_dry"
        assert dryer["target_temperature"] == 45.0
        assert len(home.notifications.list()) - before == 1

    def test_offline_dryer_not_started(self, home, heater_and_dryer):
        heater_id, dryer_id = heater_and_dryer
        home.registry.update_device(dryer_id, {"is_online": False})
        home.registry.update_device(heater_id, {"is_on": True})
        home.registry.update_device(heater_id, {"is_on": False})
        assert home.registry.get_device(dryer_id)["is_on"] is False

    def test_linkage_without_rule(self, home):
        heater = home.add_device(
            {"type": "water_heater", "room_id": "bathroom"}, with_automation=False
        )
        dryer = home.add_device({"type": "towel_dryer", "room_id": "bathroom"}, with_automation=False)
        assert home.engine.list_rules() == []

        home.registry.update_device(heater["id"], {"is_on": True})
        before = len(home.notifications.list())
        home.registry.update_device(heater["id"], {"is_on": False})

        dryer = home.registry.get_device(dryer["id"])
        assert dryer["is_on"] is True
        assert dryer["mode"] == "towel_dry"
        assert len(home.notifications.list()) - before == 1
        assert _titles(home)[0] == "Towel dryer switched on"

    def test_linkage_respects_smart_automation(self, home):
        heater = home.add_device({"type": "water_heater", "room_id": "bathroom"}, with_automation=False)
        dryer = home.add_device(
            {"type": "towel_dryer", "room_id": "bathroom", "smart_automation": False},
            with_automation=False,
        )
        home.registry.update_device(heater["id"], {"is_on": True})
        home.registry.update_device(heater["id"], {"is_on": False})
        assert home.registry.get_device(dryer["id"])["is_on"] is False

    def test_towel_dry_completes_at_target(self, home, heater_and_dryer):
        _, dryer_id = heater_and_dryer
        home.registry.update_device(dryer_id, {"is_on": True, "current_temperature": 44.9})
        home.engine.check_all_rules()
        assert home.registry.get_device(dryer_id)["is_on"] is True

        home.registry.update_device(dryer_id, {"current_temperature": 45.0})
        home.engine.check_all_rules()
        home.engine.check_all_rules()

        assert home.registry.get_device(dryer_id)["is_on"] is False
        assert _titles(home).count("Towel drying complete") == 1


# ---------------------------------------------------------------------------
# Temperature control
# ---------------------------------------------------------------------------


class TestHysteresis:
    @pytest.fixture
    def dryer(self, home):
        device = home.add_device({"type": "towel_dryer", "room_id": "living", "mode": "room_heating"})
        return device["id"]

    def _tick(self, home, dryer, room_temperature):
        home.registry.update_device(dryer, {"current_room_temperature": room_temperature})
        rule = _rule_of_type(home, dryer, "device_temperature_check")
        home.engine.process_temperature_check(rule)
        return home.registry.get_device(dryer)

    def test_band(self, home, dryer):
        device = self._tick(home, dryer, 22.0)
        assert device["is_on"] is True
        assert device["last_auto_action"] == "auto_turn_on_heating"

        assert self._tick(home, dryer, 24.5)["is_on"] is True
        device = self._tick(home, dryer, 25.2)
        assert device["is_on"] is False
        assert device["last_auto_action"] == "auto_turn_off_heating"

        assert self._tick(home, dryer, 24.5)["is_on"] is False
        assert self._tick(home, dryer, 22.9)["is_on"] is True

    def test_not_in_room_heating_mode(self, home, dryer):
        home.registry.update_device(dryer, {"mode": "towel_dry"})
        assert self._tick(home, dryer, 18.0)["is_on"] is False


class TestNightEco:
    @pytest.fixture
    def heater(self, home):
        device = home.add_device({"type": "water_heater", "room_id": "living"})
        home.registry.update_device(device["id"], {"is_on": True, "target_temperature": 65.0})
        home.engine.add_rule(
            {
                "name": "Heater schedule",
                "trigger": {"type": "device_temperature_check", "device_id": device["id"]},
                "actions": [{"type": "temperature_control", "device_id": device["id"], "logic": "night_eco"}],
            }
        )
        return device["id"]

    def _run(self, home, heater):
        home.engine.process_temperature_check(_rule_of_type(home, heater, "device_temperature_check"))
        return home.registry.get_device(heater)

    def test_night_then_morning(self, home, clock, heater):
        clock.value = datetime(2026, 10, 18, 23, 0)
        device = self._run(home, heater)
        assert device["mode"] == "eco"
        assert device["target_temperature"] == 55.0

        clock.value = datetime(2026, 10, 19, 7, 0)
        device = self._run(home, heater)
        assert device["mode"] == "auto"
        assert device["target_temperature"] == 60.0

    def test_daytime_untouched(self, home, heater):
        device = self._run(home, heater)
        assert device["mode"] == "auto"
        assert device["target_temperature"] == 65.0


# ---------------------------------------------------------------------------
# Rule management
# ---------------------------------------------------------------------------


class TestRuleManagement:
    def test_unknown_trigger_rejected(self, home):
        with pytest.raises(ValueError):
            home.engine.add_rule({"name": "x", "trigger": {"type": "sunrise"}})

    def test_update_and_delete(self, home, lights):
        a, b, _ = lights
        rule = home.engine.add_rule(_on_rule(a, b))
        updated = home.engine.update_rule(rule["id"], {"is_active": False})
        assert updated["is_active"] is False
        assert home.engine.get_registered(rule["id"])["is_active"] is False

        assert home.engine.delete_rule(rule["id"]) is True
        assert home.engine.get_registered(rule["id"]) is None
        assert home.engine.delete_rule(rule["id"]) is False
        assert home.engine.update_rule(rule["id"], {"name": "x"}) is None

    def test_check_rule_task_lifecycle(self, home, lights):
        a = lights[0]
        rule = home.engine.add_rule(
            {"name": "poll", "trigger": {"type": "device_temperature_check", "device_id": a, "interval": 60}}
        )
        assert rule["trigger"]["interval"] == 60
        assert home.engine.has_periodic_task(rule["id"])

        home.engine.start()
        assert home.engine._tasks[rule["id"]].is_running

        home.engine.unregister_rule(rule["id"])
        assert not home.engine.has_periodic_task(rule["id"])

    def test_replaced_task_tick_is_ignored(self, home, lights, monkeypatch):
        a = lights[0]
        rule = home.engine.add_rule(
            {"name": "poll", "trigger": {"type": "device_temperature_check", "device_id": a, "interval": 60}}
        )
        checked = []
        monkeypatch.setattr(home.engine, "process_temperature_check", lambda r: checked.append(r["name"]))
        stale = home.engine._generations[rule["id"]]

        home.engine.update_rule(rule["id"], {"name": "renamed"})
        home.engine._run_periodic_check(rule["id"], stale)
        assert checked == []

        home.engine._run_periodic_check(rule["id"], home.engine._generations[rule["id"]])
        assert checked == ["renamed"]

    def test_update_does_not_wait_for_blocked_tick(self, home, lights, monkeypatch):
        a = lights[0]
        monkeypatch.setattr(home.engine, "process_temperature_check", lambda r: None)
        home.engine.start()
        rule = home.engine.add_rule(
            {"name": "poll", "trigger": {"type": "device_temperature_check", "device_id": a, "interval": 0.05}}
        )
        with home.store.lock:
            # Let the first tick start and block on the lock held here
            time.sleep(0.2)
            started = time.monotonic()
            home.engine.update_rule(rule["id"], {"name": "renamed"})
            assert time.monotonic() - started < 0.5

    def test_load_rules_registers_persisted(self, home, lights):
        a, b, _ = lights
        rule = home.engine.add_rule(_on_rule(a, b))
        home.engine.unregister_rule(rule["id"])
        assert home.engine.load_rules() == 1
        assert home.engine.get_registered(rule["id"]) is not None
