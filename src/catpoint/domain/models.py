"""
Catpoint Core Models

Sensor and repository snapshot models. Uses Pydantic for validation and
serialization.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .enums import AlarmStatus, ArmingStatus, SensorType


# =============================================================================
# Sensor
# =============================================================================

class Sensor(BaseModel):
    """A door, window or motion sensor.

    Identity is ``sensor_id``: two Sensor objects with the same id are the
    same sensor regardless of name or activation flag, so sets and dict
    keys never hold duplicates.
    """
    sensor_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    name: str = Field(..., min_length=1)
    sensor_type: SensorType
    active: bool = False

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Sensor name must not be blank')
        return v

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Sensor):
            return NotImplemented
        return self.sensor_id == other.sensor_id

    def __hash__(self) -> int:
        return hash(self.sensor_id)

    def __lt__(self, other: "Sensor") -> bool:
        # Display order: name first, id breaks ties
        return (self.name, self.sensor_id) < (other.name, other.sensor_id)


# =============================================================================
# Repository Snapshot
# =============================================================================

class RepositorySnapshot(BaseModel):
    """Everything the repository persists, as one JSON document."""
    alarm_status: AlarmStatus = AlarmStatus.NO_ALARM
    arming_status: ArmingStatus = ArmingStatus.DISARMED
    sensors: list[Sensor] = Field(default_factory=list)


# =============================================================================
# Security Event
# =============================================================================

class SecurityEvent(BaseModel):
    """One entry of the event log kept for the control API."""
    kind: str  # alarm_status | cat_detected | sensors_changed
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
