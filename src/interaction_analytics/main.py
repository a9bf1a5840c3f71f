"""FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from interaction_analytics.api.evaluations import router as evaluations_router
from interaction_analytics.api.health import router as health_router
from interaction_analytics.api.ingest import router as ingest_router
from interaction_analytics.api.stats import router as stats_router
from interaction_analytics.config import Settings, get_settings
from interaction_analytics.db import init_db_with_retry
from interaction_analytics.logging_config import configure_logging
from interaction_analytics.services import Services

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build components, create tables and run the scheduler for the app's lifetime."""
    settings: Settings = app.state.settings
    owns_services = app.state.services is None
    if owns_services:
        app.state.services = Services.from_settings(settings)
    services: Services = app.state.services

    await init_db_with_retry(services.engine, attempts=settings.DB_CONNECT_ATTEMPTS)
    if settings.EVAL_SCHEDULER_ENABLED:
        await services.scheduler.start()

    try:
        yield
    finally:
        if owns_services:
            await services.close()
            app.state.services = None
        else:
            await services.scheduler.stop()
            await services.dispatcher.drain()
        logger.info("Shutdown complete")


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings to use; defaults to ``get_settings()``
        services: Pre-built components; built in the lifespan when omitted
    """
    settings = settings or (services.settings if services else get_settings())
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Ingestion, quality classification and rollups for assistant interactions",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(ingest_router)
    app.include_router(stats_router)
    app.include_router(evaluations_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic application info."""
        return {
            "name": settings.APP_NAME,
            "version": VERSION,
            "docs": "/docs",
        }

    return app
