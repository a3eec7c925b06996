"""Thermal model for heating appliances.

Models the physical behaviour the automation engine reacts to:
- While on (and online), the element temperature climbs toward the
  setpoint at a fixed rate per tick and never overshoots it
- While off, it relaxes toward ambient at a slower rate
- A towel dryer in room-heating mode also warms the room toward its own
  room setpoint, and the room cools back to ambient when it is off

Rates are per tick of the temperature step (5s by default), expressed as
degrees per minute divided by 12 ticks per minute.
"""

from .catalog import AMBIENT_TEMPERATURE

# °C per tick while heating
HEATING_RATE = {
    "water_heater": 2.0 / 12,
    "towel_dryer": 1.5 / 12,
}
# °C per tick while cooling toward ambient
COOLING_RATE = 0.5 / 12

ROOM_HEATING_STEP = 0.2
ROOM_COOLING_STEP = 0.1
DISPLAY_STEP = 0.1
DEFAULT_ROOM_TARGET = 24.0


def _round(value: float) -> float:
    return round(value * 10) / 10


def _reading(value) -> float | None:
    """A usable temperature value, or None for missing or non-numeric data."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _cool(value: float, ambient: float) -> float:
    """One cooling tick, at least one display step (0.1) so rounding never stalls it."""
    cooled = max(value - COOLING_RATE, ambient)
    if _round(cooled) == _round(value):
        cooled = max(_round(value) - DISPLAY_STEP, ambient)
    return cooled


def step_temperature(device: dict, ambient: float = AMBIENT_TEMPERATURE) -> dict:
    """Compute the temperature fields after one tick.

    Returns a patch dict suitable for DeviceRegistry.update_device.
    Does not mutate device.
    """
    current = _reading(device.get("current_temperature"))
    if current is None:
        current = ambient
    # No usable setpoint means nothing to heat toward
    target = _reading(device.get("target_temperature"))
    if target is None:
        target = current
    room = _reading(device.get("current_room_temperature"))
    if room is None:
        room = ambient
    is_towel_dryer = device.get("type") == "towel_dryer"

    if device.get("is_on") and device.get("is_online", True):
        rate = HEATING_RATE.get(device.get("type"), HEATING_RATE["towel_dryer"])
        if current < target:
            current = min(current + rate, target)

        if is_towel_dryer and device.get("mode") == "room_heating":
            room_target = _reading(device.get("target_room_temperature")) or DEFAULT_ROOM_TARGET
            if room < room_target:
                room = min(room + ROOM_HEATING_STEP, room_target)
    else:
        if current > ambient:
            current = _cool(current, ambient)

        if is_towel_dryer and room > ambient:
            room = max(room - ROOM_COOLING_STEP, ambient)

    patch = {"current_temperature": _round(current)}
    if is_towel_dryer:
        patch["current_room_temperature"] = _round(room)
    return patch
