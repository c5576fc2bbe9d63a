"""
Application factory.

create_app() wires the access pipeline onto app.state and mounts the
routers. Collaborators can be injected (tests pass an in-memory session
factory and an identity provider); otherwise they come from the
environment via get_settings() and get_session_factory().
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pto_access.api.envelope import register_exception_handlers
from pto_access.api.routes import admin_permissions, events, health, me
from pto_access.auth.token_verifier import IdentityProvider
from pto_access.config.permission_templates import get_permission_templates_loader
from pto_access.config.settings import AccessSettings, get_settings
from pto_access.database.session import get_session_factory
from pto_access.platform.access import AccessControl, RequestIdMiddleware
from pto_access.repositories.datastore import SqlAlchemyDatastore
from pto_access.repositories.events import EventRepository

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[AccessSettings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    identity_provider: Optional[IdentityProvider] = None,
    seed_templates: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    datastore = SqlAlchemyDatastore(session_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting PTO Connect API", extra={"api_version": settings.api_version})
        if seed_templates:
            try:
                inserted = datastore.seed_templates(get_permission_templates_loader().get_templates())
                logger.info("Permission templates ready", extra={"inserted": inserted})
            except SQLAlchemyError as e:
                # Requests still fail closed with UNKNOWN_PERMISSION or UPSTREAM_UNAVAILABLE
                logger.error("Permission template seeding failed", extra={"error": str(e)})
        yield
        logger.info("Shutting down PTO Connect API", extra={"cache": app.state.access_control.cache.stats()})

    app = FastAPI(
        title="PTO Connect API",
        description="Multi-tenant request context and permission resolution",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.api_version = settings.api_version
    app.state.access_control = AccessControl.build(settings, datastore, identity_provider)
    app.state.event_repository = EventRepository(session_factory)

    app.middleware("http")(RequestIdMiddleware())
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(events.router)
    app.include_router(admin_permissions.router)
    app.include_router(me.router)

    return app
