"""
Catpoint Core Enums

Alarm status, arming status and sensor type. These values are persisted
by the repository and returned by the control API, so the string values
are frozen.
"""

from enum import Enum


# =============================================================================
# Alarm Status
# =============================================================================

class AlarmStatus(str, Enum):
    """Alarm escalation level.

    Only SecurityService writes it.
    """
    NO_ALARM = "no_alarm"
    PENDING_ALARM = "pending_alarm"
    ALARM = "alarm"

    @property
    def description(self) -> str:
        return _ALARM_DESCRIPTIONS[self]


_ALARM_DESCRIPTIONS = {
    AlarmStatus.NO_ALARM: "Cool and Good",
    AlarmStatus.PENDING_ALARM: "I'm in Danger...",
    AlarmStatus.ALARM: "Awooga!",
}


# =============================================================================
# Arming Status
# =============================================================================

class ArmingStatus(str, Enum):
    """Whether the system is monitoring, and in which mode."""
    DISARMED = "disarmed"
    ARMED_HOME = "armed_home"
    ARMED_AWAY = "armed_away"

    @property
    def is_armed(self) -> bool:
        return self != ArmingStatus.DISARMED

    @property
    def description(self) -> str:
        return _ARMING_DESCRIPTIONS[self]


_ARMING_DESCRIPTIONS = {
    ArmingStatus.DISARMED: "Disarmed",
    ArmingStatus.ARMED_HOME: "Armed - At Home",
    ArmingStatus.ARMED_AWAY: "Armed - Away",
}


# =============================================================================
# Sensor Type
# =============================================================================

class SensorType(str, Enum):
    """Physical sensor kind. Not used by the transition rules."""
    DOOR = "door"
    WINDOW = "window"
    MOTION = "motion"
