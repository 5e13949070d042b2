"""FastAPI application for the synchronization engine admin API.

This module creates and configures the FastAPI application with the
REST API for publications, sync status, reports and notifications.

Usage:
    uvicorn annuairesync.server.app:app_factory --factory --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from annuairesync import __version__
from annuairesync.core.config import SyncConfig
from annuairesync.core.log import setup_logging
from annuairesync.engine.database import Database
from annuairesync.server.api.router import router as api_router

logger = logging.getLogger(__name__)


def create_app(db: Database, config: SyncConfig | None = None) -> FastAPI:
    """Create FastAPI application with custom database and configuration.

    This is primarily used for testing with isolated databases.

    Args:
        db: Database instance.
        config: Engine configuration (default: built-in defaults).

    Returns:
        Configured FastAPI application.
    """
    config = config or SyncConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        # Startup
        logger.info("=" * 60)
        logger.info("Directory sync admin API starting")
        logger.info("=" * 60)
        logger.info("  Operator: %s", config.operator_id)
        logger.info("  Database: %s", db.path)
        logger.info("  Registry: %s", config.registry_url or "batch only")
        logger.info("  Auth:     %s", "bearer token" if config.admin_token else "disabled")
        logger.info("=" * 60)

        yield

        # Shutdown
        logger.info("Directory sync admin API shutting down")

    application = FastAPI(
        title="annuaire-sync",
        description="Directory synchronization engine admin API",
        version=__version__,
        lifespan=lifespan,
    )

    application.state.db = db
    application.state.config = config

    application.include_router(api_router)

    return application


def app_factory() -> FastAPI:
    """Factory function for uvicorn --factory mode."""
    config = SyncConfig.from_env()
    setup_logging(config.log_path)
    return create_app(db=Database(config.db_path), config=config)
