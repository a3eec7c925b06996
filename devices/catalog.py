"""Device catalog — per-type defaults and power figures.

Each simulated device is a plain dict in the store. The catalog supplies
the type-specific fields a freshly added device starts with, so callers
only need to pass what differs (name, room, ...).
"""

import copy

AMBIENT_TEMPERATURE = 22.0

# Base device types and their starting state
DEVICE_TYPES: dict[str, dict] = {
    "light": {
        "icon": "💡",
        "capabilities": ["toggle", "brightness", "color"],
        "is_on": False,
        "brightness": 80,
        "color": "warm_white",
    },
    "ac": {
        "icon": "❄️",
        "capabilities": ["toggle", "temperature", "mode"],
        "is_on": False,
        "temperature": 25,
        "mode": "auto",
        "modes": ["auto", "cool", "heat", "fan"],
    },
    "tv": {
        "icon": "📺",
        "capabilities": ["toggle", "volume", "channel"],
        "is_on": False,
    },
    "socket": {
        "icon": "🔌",
        "capabilities": ["toggle", "power_monitoring"],
        "is_on": False,
    },
    "speaker": {
        "icon": "🔊",
        "capabilities": ["toggle", "volume", "source"],
        "is_on": False,
    },
    "camera": {
        "icon": "📷",
        "capabilities": ["toggle", "recording", "motion"],
        "is_on": True,
    },
    "lock": {
        "icon": "🔒",
        "capabilities": ["toggle", "auto_lock"],
        "is_on": True,
    },
    "sensor": {
        "icon": "🌡️",
        "capabilities": ["monitoring"],
        "is_on": True,
    },
    "water_heater": {
        "icon": "🚿",
        "capabilities": ["toggle", "temperature", "timer", "energy_monitoring"],
        "is_on": False,
        "current_temperature": 25.0,
        "target_temperature": 60.0,
        "min_temperature": 30.0,
        "max_temperature": 75.0,
        "heating_power": 2500,
        "remaining_time": 0,
        "energy_consumption": 0.0,
        "mode": "auto",
        "modes": ["auto", "eco", "boost"],
    },
    "towel_dryer": {
        "icon": "🧺",
        "capabilities": ["toggle", "temperature", "mode", "timer"],
        "is_on": False,
        "current_temperature": AMBIENT_TEMPERATURE,
        "target_temperature": 45.0,
        "min_temperature": 25.0,
        "max_temperature": 60.0,
        "heating_power": 800,
        "remaining_time": 0,
        "energy_consumption": 0.0,
        "mode": "towel_dry",
        "modes": ["towel_dry", "room_heating"],
        "room_temperature_sensor": True,
        "current_room_temperature": AMBIENT_TEMPERATURE,
        "target_room_temperature": 24.0,
        "smart_automation": True,
    },
}

# Typical daily draw in kWh, used for synthetic analytics
BASE_CONSUMPTION = {
    "light": 0.1,
    "ac": 2.5,
    "tv": 0.3,
    "socket": 0.5,
    "speaker": 0.1,
    "camera": 0.05,
    "lock": 0.01,
    "sensor": 0.005,
    "water_heater": 2.5,
    "towel_dryer": 0.8,
}

# Instantaneous draw in kW while on
HOURLY_POWER = {
    "water_heater": 2.5,
    "towel_dryer": 0.8,
    "ac": 1.5,
    "light": 0.01,
    "tv": 0.15,
    "socket": 0.1,
}

HEATING_DEVICE_TYPES = ("water_heater", "towel_dryer")


def is_known_type(device_type: str) -> bool:
    return device_type in DEVICE_TYPES


def defaults_for(device_type: str) -> dict:
    """Starting state for a device type (deep copy, safe to mutate)."""
    return copy.deepcopy(DEVICE_TYPES.get(device_type, {}))


def base_consumption(device_type: str) -> float:
    return BASE_CONSUMPTION.get(device_type, 0.1)


def hourly_consumption(device: dict) -> float:
    """kW drawn by a running device, adjusted for its mode."""
    power = HOURLY_POWER.get(device.get("type"), 0.1)
    mode = device.get("mode")
    if device.get("type") == "water_heater":
        if mode == "eco":
            power *= 0.7
        elif mode == "boost":
            power *= 1.3
    elif device.get("type") == "towel_dryer" and mode == "room_heating":
        power *= 1.2
    return power
