"""Application factory for the FastAPI app.

Centralizes app construction (metadata, lifespan, middleware, handlers,
routers) so tests can build a fresh app with their own overrides.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from romc_api.adapters.kv.factory import close_kv_store
from romc_api.api.routes import (
    admin_router,
    company_router,
    cron_router,
    csrf_router,
    health_router,
    public_api_router,
)
from romc_api.core.config import settings
from romc_api.core.exception_handlers import setup_exception_handlers
from romc_api.core.logging import configure_logging
from romc_api.core.middleware import request_id_middleware
from romc_api.core.openapi import apply_openapi_customizations
from romc_api.db.session import create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    create_tables()
    logger.info("app.startup", extra={"cache_backend": settings.cache.backend})
    try:
        yield
    finally:
        await close_kv_store()
        logger.info("app.shutdown")


def create_app(*, manage_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        manage_lifespan: Create tables on startup and close the key-value
            store on shutdown. Tests that inject their own engine and store
            turn this off.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="RoMC API",
        description=(
            "Guard and audit layer of the RoMC company-intelligence service: "
            "tiered rate limiting, CSRF protection, cooldowns on claims and "
            "corrections, feature flags, API keys and a hash-chained admin "
            "audit log."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=lifespan if manage_lifespan else None,
    )

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(csrf_router)
    app.include_router(company_router)
    app.include_router(admin_router)
    app.include_router(cron_router)
    app.include_router(public_api_router)

    # OpenAPI customizations (security schemes, tags, exemptions)
    apply_openapi_customizations(app)

    return app
