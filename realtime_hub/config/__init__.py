"""
Configuration module for the realtime hub.

Usage:
    from realtime_hub.config import get_config

    config = get_config()
    logger.info("Liveness configuration", timeout=config.realtime.connection_timeout)
"""

import sys
import threading
from functools import lru_cache
from os import getenv

from .models import AppConfig, LoggingConfig, RealtimeConfig, ServerConfig

__all__ = ["get_config", "reset_config", "AppConfig", "LoggingConfig", "RealtimeConfig", "ServerConfig"]

_config_lock = threading.Lock()


def _is_test_mode() -> bool:
    """Detect pytest so each test sees the environment it just set up."""
    if "pytest" in sys.modules:
        return True
    return bool(getenv("PYTEST_CURRENT_TEST"))


@lru_cache(maxsize=1)
def _get_config_cached() -> AppConfig:
    """Production config loader with caching."""
    with _config_lock:
        return AppConfig()


def get_config() -> AppConfig:
    """
    Get application configuration (singleton in production, fresh in tests).

    Returns:
        AppConfig: The application configuration

    Raises:
        ValidationError: If configuration is invalid
    """
    if _is_test_mode():
        return AppConfig()
    return _get_config_cached()


def reset_config() -> None:
    """Clear the configuration cache so the next get_config() reloads."""
    with _config_lock:
        _get_config_cached.cache_clear()
