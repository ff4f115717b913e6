"""FastAPI application."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI

from nutrivision import __version__
from nutrivision.api.analyze import router as analysis_router
from nutrivision.config import Settings
from nutrivision.infrastructure.factory import Services, build_services
from nutrivision.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the application.

    Args:
        services: Pre-built services (tests). When omitted, the lifespan
            handler builds them from the environment and closes them on
            shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if services is not None:
            yield
            return

        settings = Settings.from_env()
        configure_logging(settings.log_level, settings.log_format)
        async with build_services(settings) as built:
            app.state.services = built
            logger.info("lifespan.ready", version=__version__)
            yield
            logger.info("lifespan.shutdown")

    app = FastAPI(title="NutriVision", version=__version__, lifespan=lifespan)
    if services is not None:
        app.state.services = services

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(analysis_router)
    return app
