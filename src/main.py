"""
FastAPI application factory.

The authorization core ships no routes of its own; host applications mount
their routers on the app returned here and guard them with
``src.api.deps.require_permission``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from src.api.errors import register_exception_handlers
from src.config import Settings, get_settings
from src.database import close_db, get_engine, init_db
from src.kernel.cache import get_permission_cache
from src.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, create_tables: bool = True) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan handler.

        Runs startup and shutdown tasks.
        """
        configure_logging(
            log_level=settings.log_level,
            environment=settings.environment,
            debug=settings.debug,
        )

        logger.info("Starting %s v%s", settings.project_name, settings.version)
        if create_tables:
            await init_db(get_engine(settings))
            logger.info("Database initialized")

        yield

        logger.info("Shutting down...")
        get_permission_cache().clear()
        await close_db()
        logger.info("Database connections closed")

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    return app
