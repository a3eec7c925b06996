"""Unit tests for the device catalog, thermal model and thermostat."""

from __future__ import annotations

import pytest

from devices import catalog
from devices.thermal import HEATING_RATE, ROOM_COOLING_STEP, ROOM_HEATING_STEP, step_temperature
from devices.thermostat import HysteresisThermostat


class TestCatalog:
    def test_defaults_are_copies(self):
        first = catalog.defaults_for("towel_dryer")
        first["modes"].append("sauna")
        assert "sauna" not in catalog.defaults_for("towel_dryer")["modes"]

    def test_unknown_type(self):
        assert not catalog.is_known_type("toaster")
        assert catalog.defaults_for("toaster") == {}

    @pytest.mark.parametrize(
        "device, expected",
        [
            ({"type": "water_heater", "mode": "auto"}, 2.5),
            ({"type": "water_heater", "mode": "eco"}, 2.5 * 0.7),
            ({"type": "water_heater", "mode": "boost"}, 2.5 * 1.3),
            ({"type": "towel_dryer", "mode": "room_heating"}, 0.8 * 1.2),
            ({"type": "speaker"}, 0.1),
        ],
    )
    def test_hourly_consumption(self, device, expected):
        assert catalog.hourly_consumption(device) == pytest.approx(expected)


class TestThermal:
    def test_water_heater_rate(self):
        patch = step_temperature({"type": "water_heater", "is_on": True, "current_temperature": 30.0, "target_temperature": 60.0})
        assert patch == {"current_temperature": round((30.0 + HEATING_RATE["water_heater"]) * 10) / 10}

    def test_never_overshoots(self):
        patch = step_temperature({"type": "towel_dryer", "is_on": True, "current_temperature": 44.95, "target_temperature": 45.0})
        assert patch["current_temperature"] == 45.0

    def test_offline_device_does_not_heat(self):
        patch = step_temperature(
            {"type": "water_heater", "is_on": True, "is_online": False, "current_temperature": 22.0, "target_temperature": 60.0}
        )
        assert patch["current_temperature"] == 22.0

    @pytest.mark.parametrize("target", [None, "hot", True])
    def test_unusable_setpoint_holds_temperature(self, target):
        patch = step_temperature({"type": "water_heater", "is_on": True, "current_temperature": 40.0, "target_temperature": target})
        assert patch == {"current_temperature": 40.0}

    def test_cooling_stops_at_ambient(self):
        patch = step_temperature({"type": "water_heater", "is_on": False, "current_temperature": 22.05}, ambient=22.0)
        assert patch["current_temperature"] == 22.0

    def test_room_heating(self):
        dryer = {
            "type": "towel_dryer",
            "is_on": True,
            "mode": "room_heating",
            "current_temperature": 40.0,
            "target_temperature": 45.0,
            "current_room_temperature": 23.9,
            "target_room_temperature": 24.0,
        }
        assert step_temperature(dryer)["current_room_temperature"] == 24.0
        dryer["current_room_temperature"] = 22.0
        assert step_temperature(dryer)["current_room_temperature"] == pytest.approx(22.0 + ROOM_HEATING_STEP)

    def test_room_not_heated_in_towel_dry_mode(self):
        dryer = {"type": "towel_dryer", "is_on": True, "mode": "towel_dry", "current_room_temperature": 22.0}
        assert step_temperature(dryer)["current_room_temperature"] == 22.0

    def test_room_cools_when_off(self):
        dryer = {"type": "towel_dryer", "is_on": False, "current_room_temperature": 23.0}
        assert step_temperature(dryer)["current_room_temperature"] == pytest.approx(23.0 - ROOM_COOLING_STEP)

    def test_does_not_mutate(self):
        device = {"type": "water_heater", "is_on": True, "current_temperature": 30.0, "target_temperature": 60.0}
        step_temperature(device)
        assert device["current_temperature"] == 30.0


class TestThermostat:
    @pytest.mark.parametrize(
        "current, is_on, expected",
        [
            (22.9, False, True),
            (22.9, True, None),
            (23.0, False, None),
            (24.0, True, None),
            (25.0, True, None),
            (25.2, True, False),
            (25.2, False, None),
        ],
    )
    def test_band(self, current, is_on, expected):
        assert HysteresisThermostat(tolerance=1.0).decide(current, 24.0, is_on) is expected

    def test_prefers_room_sensor(self):
        device = {
            "current_temperature": 45.0,
            "target_temperature": 45.0,
            "current_room_temperature": 21.0,
            "target_room_temperature": 24.0,
        }
        assert HysteresisThermostat.readings(device) == (21.0, 24.0)
        assert HysteresisThermostat().evaluate(device) is True

    def test_falls_back_to_device_sensor(self):
        device = {"current_temperature": 50.0, "target_temperature": 60.0, "is_on": False}
        assert HysteresisThermostat.readings(device) == (50.0, 60.0)

    def test_no_readings(self):
        assert HysteresisThermostat().evaluate({"id": "x"}) is None
