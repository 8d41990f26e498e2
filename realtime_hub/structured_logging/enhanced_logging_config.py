"""
structlog-based logging configuration for the realtime hub.

This is the main entry point for the logging system. Every module obtains its
logger through get_logger(); configure_structlog() decides how entries are
processed and rendered.
"""

import json
import logging
import sys
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars
from structlog.stdlib import BoundLogger, LoggerFactory

from .logging_processors import add_service_name, sanitize_sensitive_data

# Infrastructure code may use structlog.get_logger() directly; everything
# else must go through get_logger() below.
logger = structlog.get_logger(__name__)


class _LoggingState:  # pylint: disable=too-few-public-methods  # Reason: State container, avoids global statements
    """State container for logging initialization."""

    initialized: bool = False
    signature: str | None = None


_logging_state = _LoggingState()


def configure_structlog(log_level: str = "INFO", log_format: str = "console") -> None:
    """
    Configure structlog and the stdlib root handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: "json" for machine-readable lines, "console" for humans
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    base_processors: list[Any] = [
        # Security first - sanitize sensitive data
        sanitize_sensitive_data,
        merge_contextvars,
        add_service_name,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer: Any
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    root_logger = logging.getLogger()
    root_logger.handlers = []
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    structlog.configure(
        processors=base_processors + [renderer],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=False,
    )


def setup_logging(config: dict[str, Any], *, force_reconfigure: bool = False) -> None:
    """
    Set up logging from the "logging" section of a configuration dict.

    Repeated calls are no-ops unless force_reconfigure is set, so both the app
    factory and test fixtures can call this safely.

    Args:
        config: Configuration dictionary with an optional "logging" section
        force_reconfigure: When True, reconfigure even if already initialized
    """
    config_signature = json.dumps(config, sort_keys=True, default=str)

    if _logging_state.initialized and not force_reconfigure:
        get_logger(__name__).debug(
            "setup_logging skipped; logging system already initialized",
            config_signature=_logging_state.signature,
        )
        return

    logging_config = config.get("logging", {})
    log_level = logging_config.get("level", "INFO")
    log_format = logging_config.get("format", "console")

    configure_structlog(log_level, log_format)

    get_logger(__name__).info(
        "Logging system initialized",
        environment=logging_config.get("environment", "local"),
        log_level=log_level,
        log_format=log_format,
    )

    _logging_state.initialized = True
    _logging_state.signature = config_signature


def get_logger(name: str) -> Any:  # Returns BoundLogger but typed as Any for flexibility
    """
    Get a structlog logger with the specified name.

    This is the public API for obtaining loggers. All application code should
    use this function rather than calling structlog.get_logger() directly.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)
