"""
Unit tests for structured logging helpers.

Tests the sanitizing processor, service tagging, connection context binding
and idempotent setup.
"""

from unittest.mock import patch

from structlog.contextvars import unbind_contextvars

from realtime_hub.structured_logging import enhanced_logging_config
from realtime_hub.structured_logging.enhanced_logging_config import get_logger, setup_logging
from realtime_hub.structured_logging.logging_context import (
    bind_connection_context,
    clear_connection_context,
    get_current_context,
)
from realtime_hub.structured_logging.logging_processors import add_service_name, sanitize_sensitive_data


def test_sanitize_redacts_sensitive_fields():
    """Test credentials are redacted at any depth."""
    event = {
        "event": "Connection registered",
        "password": "hunter2",
        "token": "abc",
        "headers": {"authorization": "Bearer xyz", "user_agent": "pytest"},
        "connection_id": "c1",
    }

    result = sanitize_sensitive_data(None, "info", event)

    assert result["password"] == "[REDACTED]"
    assert result["token"] == "[REDACTED]"
    assert result["headers"]["authorization"] == "[REDACTED]"
    assert result["headers"]["user_agent"] == "pytest"
    assert result["connection_id"] == "c1"


def test_sanitize_keeps_safe_fields():
    result = sanitize_sensitive_data(None, "debug", {"cache_key": "realtime_event:1", "api_key": "secret"})
    assert result["cache_key"] == "realtime_event:1"
    assert result["api_key"] == "[REDACTED]"


def test_add_service_name():
    assert add_service_name(None, "info", {})["service"] == "realtime_hub"
    assert add_service_name(None, "info", {"service": "other"})["service"] == "other"


def test_bind_and_clear_connection_context():
    """Test connection ids are bound for the current context and removed again."""
    bind_connection_context("c1", user_id="u1", role=None, room="orders")
    try:
        context = get_current_context()
        assert context["connection_id"] == "c1"
        assert context["user_id"] == "u1"
        assert context["room"] == "orders"
        assert "role" not in context
    finally:
        clear_connection_context()
        unbind_contextvars("room")

    assert "connection_id" not in get_current_context()


def test_setup_logging_is_idempotent():
    """Test repeated setup only configures once unless forced."""
    with patch.object(enhanced_logging_config, "configure_structlog") as configure:
        enhanced_logging_config._logging_state.initialized = False
        setup_logging({"logging": {"level": "DEBUG", "format": "json"}})
        setup_logging({"logging": {"level": "INFO", "format": "console"}})
        setup_logging({"logging": {"level": "INFO", "format": "console"}}, force_reconfigure=True)

    assert configure.call_count == 2
    configure.assert_any_call("DEBUG", "json")


def test_get_logger_returns_bound_logger():
    logger = get_logger("realtime_hub.tests")
    logger.info("Test log entry", connection_id="c1")
