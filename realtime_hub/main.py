"""
Realtime Hub - application entry point.

Run with ``python -m realtime_hub.main`` or point uvicorn at
``realtime_hub.main:app``.
"""

from .app.factory import create_app
from .config import get_config
from .structured_logging.enhanced_logging_config import get_logger, setup_logging

config = get_config()
setup_logging(config.to_logging_dict())

logger = get_logger(__name__)
logger.info("Logging setup completed", environment=config.logging.environment)

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "realtime_hub.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=False,
        access_log=True,
        use_colors=False,
    )
