"""Pydantic models for the HomeSim Management API.

Defines request/response schemas for devices, scenes, automation rules,
notifications and energy reports. Device, scene and rule records are
plain dicts in the store; response models allow extra fields so
type-specific device state passes through untouched.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

READ_ONLY_DEVICE_FIELDS = frozenset(
    {"id", "type", "home_id", "created_at", "last_updated", "linked_devices"}
)
NULLABLE_DEVICE_FIELDS = frozenset({"room_id"})

DeviceType = Literal[
    "light",
    "ac",
    "tv",
    "socket",
    "speaker",
    "camera",
    "lock",
    "sensor",
    "water_heater",
    "towel_dryer",
]

# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


class DeviceCreate(BaseModel):
    """New device. Fields beyond these (brightness, mode, ...) are kept as-is."""

    model_config = ConfigDict(extra="allow")

    type: DeviceType
    name: str | None = Field(default=None, max_length=128)
    room_id: str | None = None
    home_id: str | None = None
    icon: str | None = None
    is_favorite: bool = False


class DeviceUpdate(BaseModel):
    """Partial device patch. Only fields present in the request are applied.

    Identity and bookkeeping fields are owned by the registry and cannot be
    patched. Explicit nulls are refused, except room_id (null unassigns).
    """

    model_config = ConfigDict(extra="allow")

    name: str | None = Field(default=None, max_length=128)
    room_id: str | None = None
    is_on: bool | None = None
    is_online: bool | None = None
    is_favorite: bool | None = None
    brightness: int | None = Field(default=None, ge=0, le=100)
    target_temperature: float | None = None
    mode: str | None = None
    remaining_time: int | None = Field(default=None, ge=0)
    smart_automation: bool | None = None

    @model_validator(mode="before")
    @classmethod
    def _check_patch(cls, data):
        if isinstance(data, dict):
            read_only = sorted(k for k in data if k in READ_ONLY_DEVICE_FIELDS)
            if read_only:
                raise ValueError(f"Read-only field(s): {', '.join(read_only)}")
            nulls = sorted(k for k, v in data.items() if v is None and k not in NULLABLE_DEVICE_FIELDS)
            if nulls:
                raise ValueError(f"Field(s) cannot be null: {', '.join(nulls)}")
        return data


class DeviceResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    name: str
    room_id: str | None = None
    home_id: str | None = None
    is_on: bool = False
    is_online: bool = True
    is_favorite: bool = False
    linked_devices: list[str] = Field(default_factory=list)
    created_at: str | None = None
    last_updated: str | None = None


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------


class SceneAction(BaseModel):
    device_id: str
    type: Literal["toggle", "brightness", "temperature", "color", "mode"]
    value: Any = None


class SceneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    icon: str | None = None
    description: str = ""
    actions: list[SceneAction] = Field(default_factory=list)
    is_active: bool = True


class SceneUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    icon: str | None = None
    description: str | None = None
    actions: list[SceneAction] | None = None
    is_active: bool | None = None


class SceneResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    actions: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    last_run: str | None = None
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Automation rules
# ---------------------------------------------------------------------------


class RuleTrigger(BaseModel):
    type: Literal["device_state_change", "device_temperature_reached", "device_temperature_check"]
    device_id: str
    property: str | None = None
    value: Any = None
    interval: float | None = Field(default=None, gt=0, description="Seconds between checks")


class RuleCondition(BaseModel):
    device_id: str
    property: str
    operator: Literal["equals", "not_equals", "greater_than", "less_than"] = "equals"
    value: Any = None


class RuleAction(BaseModel):
    type: Literal["device_control", "temperature_control", "notification"]
    device_id: str | None = None
    property: str | None = None
    value: Any = None
    logic: Literal["maintain_temperature", "night_eco"] | None = None
    title: str | None = None
    message: str | None = None
    icon: str | None = None


class RuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    trigger: RuleTrigger
    conditions: list[RuleCondition] = Field(default_factory=list)
    actions: list[RuleAction] = Field(default_factory=list)
    is_active: bool = True


class RuleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = None
    trigger: RuleTrigger | None = None
    conditions: list[RuleCondition] | None = None
    actions: list[RuleAction] | None = None
    is_active: bool | None = None


class RuleResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    trigger: dict[str, Any]
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    actions: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool = True
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    title: str
    message: str
    icon: str | None = None
    timestamp: str
    is_read: bool = False
    device_id: str | None = None


# ---------------------------------------------------------------------------
# Energy
# ---------------------------------------------------------------------------


class DeviceEnergy(BaseModel):
    device_id: str
    name: str | None = None
    consumption: float
    cost: float
    percentage: float


class EnergyReport(BaseModel):
    period: str
    date: str | None = None
    total: float
    devices: dict[str, float] = Field(default_factory=dict)
    daily: list[dict[str, Any]] = Field(default_factory=list)
    device_details: list[DeviceEnergy] = Field(default_factory=list)
    total_cost: float = 0.0
    average_hourly: float = 0.0


class Suggestion(BaseModel):
    id: str
    type: str
    title: str
    message: str
    action: str
    priority: Literal["low", "medium", "high"]
    device_id: str | None = None
