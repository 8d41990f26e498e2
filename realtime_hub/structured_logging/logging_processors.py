"""
Logging processors for structlog event processing.

This module provides processors for sanitizing sensitive data and tagging
log entries with the service name.
"""

import re
from typing import Any

SERVICE_NAME = "realtime_hub"

# Field names matching any of these are redacted before rendering
_SENSITIVE_PATTERNS = [
    r"\bpassword\b",
    r"\btoken\b",
    r"\bsecret\b",
    r"_key\b",
    r"^key$",
    r"\bcredential\b",
    r"\bauth\b",
    r"\bjwt\b",
    r"\bauthorization\b",
]

# Never redacted even if they match a pattern above
_SAFE_FIELDS = {
    "cache_key",
    "evicted_key",
    "room_key",
}


def sanitize_sensitive_data(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Remove sensitive data from log entries.

    Connections are registered after authentication, so upstream callers may
    hand us handshake headers or tokens in log context. Those are replaced
    with "[REDACTED]" at any nesting depth.

    Args:
        _logger: Logger instance (unused)
        _name: Logger name (unused)
        event_dict: Event dictionary to sanitize

    Returns:
        Sanitized event dictionary
    """

    def sanitize_dict(d: dict[str, Any]) -> dict[str, Any]:
        sanitized: dict[str, Any] = {}
        for key, value in d.items():
            if isinstance(value, dict):
                sanitized[key] = sanitize_dict(value)
                continue
            key_lower = str(key).lower()
            if key_lower in _SAFE_FIELDS:
                sanitized[key] = value
            elif any(re.search(pattern, key_lower) for pattern in _SENSITIVE_PATTERNS):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = value
        return sanitized

    return sanitize_dict(event_dict)


def add_service_name(_logger: Any, _name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Tag every entry with the service name so aggregated logs can be filtered."""
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict
