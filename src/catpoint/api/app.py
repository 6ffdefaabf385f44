"""
Catpoint FastAPI application

create_app() wires an existing SecurityService; build_app() builds one
from Settings and is the uvicorn factory used by catpoint.server.
"""

from typing import Optional, Tuple

import structlog
from fastapi import FastAPI

from .. import __version__
from ..config import Settings, get_settings
from ..domain.errors import CollaboratorFailure, InvalidArgumentError
from ..hardware.cat_classifier import create_classifier
from ..logging_config import configure_logging
from ..services.repository import (
    InMemorySecurityRepository,
    JsonFileSecurityRepository,
    SecurityRepository,
)
from ..services.security_service import SecurityService, SecurityServiceConfig
from ..services.status_listener import EventLog
from .security_api import (
    collaborator_failure_handler,
    invalid_argument_handler,
    security_router,
    set_security_service,
)

logger = structlog.get_logger()


def build_service(settings: Settings) -> Tuple[SecurityService, EventLog]:
    """Create repository, classifier, service and event log from settings."""
    repository: SecurityRepository
    if settings.repository_path:
        repository = JsonFileSecurityRepository(settings.repository_path)
    else:
        repository = InMemorySecurityRepository()

    classifier = create_classifier(
        settings.classifier,
        model_name=settings.yolo_model,
        device=settings.yolo_device,
    )

    service = SecurityService(
        repository,
        classifier,
        SecurityServiceConfig(cat_confidence_threshold=settings.cat_confidence_threshold),
    )
    event_log = EventLog(max_events=settings.event_log_size)
    service.add_status_listener(event_log)

    logger.info(
        "Security service ready",
        repository=type(repository).__name__,
        classifier=settings.classifier,
        alarm_status=service.get_alarm_status().value,
        arming_status=service.get_arming_status().value,
    )
    return service, event_log


def create_app(service: SecurityService, event_log: Optional[EventLog] = None) -> FastAPI:
    app = FastAPI(
        title="Catpoint Edge",
        description="Home security alarm control API",
        version=__version__,
    )

    set_security_service(service, event_log)
    app.state.security_service = service

    app.add_exception_handler(InvalidArgumentError, invalid_argument_handler)
    app.add_exception_handler(CollaboratorFailure, collaborator_failure_handler)
    app.include_router(security_router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app


def build_app() -> FastAPI:
    """uvicorn factory: configure logging, build the service, return the app."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    service, event_log = build_service(settings)
    return create_app(service, event_log)
