"""
FastAPI application factory for realtime_hub.

This module handles FastAPI app creation and router registration.
"""

from fastapi import FastAPI

from .. import __version__
from ..api.realtime import realtime_router
from ..realtime.connection_manager import ConnectionManager
from ..structured_logging.enhanced_logging_config import get_logger
from .lifespan import lifespan

logger = get_logger(__name__)


def create_app(connection_manager: ConnectionManager | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        connection_manager: Pre-built manager to serve; built from config on startup if omitted

    Returns:
        FastAPI: The configured FastAPI application instance
    """
    app = FastAPI(
        title="Realtime Hub API",
        description="Real-time connection registry and room-based event broadcasting",
        version=__version__,
        lifespan=lifespan,
    )
    if connection_manager is not None:
        app.state.connection_manager = connection_manager

    app.include_router(realtime_router)

    logger.info("FastAPI application created")
    return app
