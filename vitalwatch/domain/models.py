"""
Domain models for ward vitals monitoring.

These models represent the core clinical concepts and are framework-agnostic.
They use Pydantic for validation but could be swapped to dataclasses if needed.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Rooms and patients come from a remote registry that uses numeric ids on the
# feed and string ids in some registry screens.
Identifier = int | str


class Tier(str, Enum):
    """Severity tier of a room's current vital-sign state."""

    EMPTY = "empty"
    NORMAL = "normal"
    WARNING = "warning"
    URGENT = "urgent"

    # Connectivity substates, not comparable to the numeric tiers
    DISCONNECTED = "disconnected"
    NO_SIGNAL = "no_signal"

    @property
    def is_alarm_bearing(self) -> bool:
        return self in ALARM_BEARING_TIERS

    @property
    def is_connectivity(self) -> bool:
        return self in (Tier.DISCONNECTED, Tier.NO_SIGNAL)


ALARM_BEARING_TIERS = frozenset({Tier.URGENT, Tier.NO_SIGNAL})

# Tiers that count a room as "needing attention" on the dashboard
ATTENTION_TIERS = frozenset({Tier.WARNING, Tier.URGENT, Tier.NO_SIGNAL, Tier.DISCONNECTED})


class SensorState(str, Enum):
    """Connectivity state reported by a bedside sensor."""

    TIMEOUT = "timeout"
    DISCONNECTED = "disconnected"


class ConnectionStatus(str, Enum):
    """Connectivity of the vitals feed itself."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class AlarmAction(str, Enum):
    """Side effect requested by the alarm controller for a tier transition."""

    START = "start"
    STOP = "stop"
    NONE = "none"


class HeartRateThresholds(BaseModel):
    """Per-patient heart-rate bounds in beats per minute."""

    model_config = ConfigDict(frozen=True)

    min_heart_rate: float = Field(gt=0.0, description="Lowest acceptable heart rate")
    max_heart_rate: float = Field(gt=0.0, description="Highest acceptable heart rate")

    @model_validator(mode="after")
    def min_below_max(self) -> "HeartRateThresholds":
        if self.min_heart_rate >= self.max_heart_rate:
            raise ValueError("min_heart_rate must be lower than max_heart_rate")
        return self


class Patient(BaseModel):
    """Registry snapshot of a patient."""

    model_config = ConfigDict(frozen=True)

    id: Identifier
    name: str
    thresholds: HeartRateThresholds | None = None
    diagnosis: str | None = None


class Room(BaseModel):
    """Registry snapshot of a room and its current occupant."""

    model_config = ConfigDict(frozen=True)

    id: Identifier
    patient_id: Identifier | None = None
    active: bool = True
    sector: str | None = None
    floor: int | None = None
    number: str | None = None

    @property
    def is_occupied(self) -> bool:
        return self.patient_id is not None


class VitalSample(BaseModel):
    """A single heart-rate reading for a room."""

    model_config = ConfigDict(frozen=True)

    room_id: Identifier
    patient_id: Identifier | None = None
    heart_rate: float | None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class SensorStatusEvent(BaseModel):
    """Out-of-band loss of signal from a room's sensor."""

    model_config = ConfigDict(frozen=True)

    room_id: Identifier
    state: SensorState
    mac_address: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


FeedEvent = VitalSample | SensorStatusEvent


class FeedStatusChange(BaseModel):
    """The feed connection went up or down."""

    model_config = ConfigDict(frozen=True)

    status: ConnectionStatus
    detail: str | None = None
    changed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# Everything the feed client publishes on the event bus
FeedMessage = VitalSample | SensorStatusEvent | FeedStatusChange


class ClassificationRecord(BaseModel):
    """Latest classification of one room. Replaced on every new event."""

    model_config = ConfigDict(frozen=True)

    room_id: Identifier
    tier: Tier
    numeric_value: float | None = None
    reason: str
    patient_id: Identifier | None = None
    classified_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RoomView(BaseModel):
    """What the dashboard renders for a room."""

    model_config = ConfigDict(frozen=True)

    room_id: Identifier
    tier: Tier
    display_bpm: float | None
    label: str
    color: str
    icon: str
    alarm_active: bool
    reason: str


class AlertEvent(BaseModel):
    """A tier escalation worth showing in the alert list."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    room_id: Identifier
    patient_id: Identifier | None
    tier: Tier
    message: str
    heart_rate: float | None = None
    raised_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    viewed: bool = False


class DashboardSummary(BaseModel):
    """Counters shown at the top of the ward dashboard."""

    total_rooms: int = Field(ge=0)
    occupied_rooms: int = Field(ge=0)
    attention_rooms: int = Field(ge=0)
    sounding_alarms: int = Field(ge=0)
    feed_status: ConnectionStatus
