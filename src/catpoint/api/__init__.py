"""Catpoint control API"""

from .security_api import security_router, set_security_service, get_security_service
from .app import create_app, build_app, build_service

__all__ = [
    'security_router',
    'set_security_service',
    'get_security_service',
    'create_app',
    'build_app',
    'build_service',
]
