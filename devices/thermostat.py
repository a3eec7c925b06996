"""Hysteresis thermostat used by temperature-control automations.

Bang-bang control with a dead band around the setpoint:
- Below (target - tolerance): demand heat → switch on
- Above (target + tolerance): satisfied → switch off
- Inside the band: keep the current state

The dead band is what stops a heater from chattering on and off while the
measured temperature hovers near the setpoint.

A towel dryer with a room sensor is regulated on room temperature; any
other appliance on its own element temperature.
"""

import logging

logger = logging.getLogger("homesim.devices")


class HysteresisThermostat:
    """On/off controller with a symmetric dead band."""

    DEFAULT_TOLERANCE = 1.0

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE):
        self.tolerance = tolerance

    def decide(self, current: float, target: float, is_on: bool) -> bool | None:
        """Return the desired on-state, or None when no change is needed."""
        if current < target - self.tolerance:
            return True if not is_on else None
        if current > target + self.tolerance:
            return False if is_on else None
        return None

    @staticmethod
    def readings(device: dict) -> tuple[float | None, float | None]:
        """(current, target) for a device, preferring the room sensor."""
        current = device.get("current_room_temperature")
        if current is None:
            current = device.get("current_temperature")
        target = device.get("target_room_temperature")
        if target is None:
            target = device.get("target_temperature")
        return current, target

    def evaluate(self, device: dict) -> bool | None:
        """Desired on-state for device, or None (no change / no readings)."""
        current, target = self.readings(device)
        if current is None or target is None:
            logger.debug("%s: no temperature readings, skipping", device.get("id"))
            return None
        decision = self.decide(current, target, bool(device.get("is_on")))
        if decision is not None:
            logger.info(
                "%s: %.1f°C vs target %.1f°C (±%.1f) → %s",
                device.get("id"),
                current,
                target,
                self.tolerance,
                "ON" if decision else "OFF",
            )
        return decision
