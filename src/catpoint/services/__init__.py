"""Catpoint Services"""

from .repository import (
    SecurityRepository,
    InMemorySecurityRepository,
    JsonFileSecurityRepository,
)
from .status_listener import (
    StatusListener,
    EventLog,
)
from .security_service import (
    SecurityService,
    SecurityServiceConfig,
)

__all__ = [
    # Repository
    'SecurityRepository',
    'InMemorySecurityRepository',
    'JsonFileSecurityRepository',
    # Listeners
    'StatusListener',
    'EventLog',
    # Security Service
    'SecurityService',
    'SecurityServiceConfig',
]
