"""Catpoint Domain Models"""

from .enums import (
    AlarmStatus,
    ArmingStatus,
    SensorType,
)

from .models import (
    Sensor,
    RepositorySnapshot,
    SecurityEvent,
)

from .errors import (
    SecurityError,
    InvalidArgumentError,
    CollaboratorFailure,
    RepositoryError,
    ClassifierError,
)

__all__ = [
    # Enums
    'AlarmStatus',
    'ArmingStatus',
    'SensorType',

    # Models
    'Sensor',
    'RepositorySnapshot',
    'SecurityEvent',

    # Errors
    'SecurityError',
    'InvalidArgumentError',
    'CollaboratorFailure',
    'RepositoryError',
    'ClassifierError',
]
