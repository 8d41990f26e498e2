"""Application lifecycle management for realtime_hub."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..config import get_config
from ..realtime.connection_manager import ConnectionManager
from ..realtime.transport import WebSocketTransport
from ..structured_logging.enhanced_logging_config import get_logger, setup_logging

logger = get_logger("realtime_hub.lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the connection manager on startup unless one was already placed on
    app.state (tests do this), starts its background work and shuts it down
    on exit.
    """
    config = get_config()
    setup_logging(config.to_logging_dict())
    logger.info("Starting realtime hub")

    manager = getattr(app.state, "connection_manager", None)
    if manager is None:
        manager = ConnectionManager(config=config.realtime, transport=WebSocketTransport())
        app.state.connection_manager = manager

    await manager.start()
    try:
        yield
    finally:
        logger.info("Shutting down realtime hub")
        await manager.shutdown()
