"""
Exception hierarchy for the realtime hub.

Only DuplicateConnection, ConnectionLimitExceeded and MalformedEvent ever
reach callers. DeliveryFailure is raised and caught inside the dispatcher so
that a single broken channel is recorded without aborting a broadcast.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class ErrorContext:
    """
    Contextual information for error handling.

    Provides structured context for error reporting and debugging.
    """

    connection_id: str | None = None
    user_id: str | None = None
    room: str | None = None
    event_type: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        return {
            "connection_id": self.connection_id,
            "user_id": self.user_id,
            "room": self.room,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }


class RealtimeHubError(Exception):
    """
    Base exception for all realtime hub errors.

    Provides structured error handling with context and metadata. Errors log
    themselves once on construction at the class's log_level.
    """

    log_level = "error"

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the error.

        Args:
            message: Technical error message
            context: Error context information
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()
        self.details = details or {}
        self.timestamp = datetime.now(UTC)

        self._log_error()

    def _log_error(self) -> None:
        """Log the error with structured context."""
        log_method = getattr(logger, self.log_level, logger.error)
        log_method(
            "Realtime hub error occurred",
            error_type=self.__class__.__name__,
            message=self.message,
            context=self.context.to_dict(),
            details=self.details,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context.to_dict(),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class DuplicateConnection(RealtimeHubError):
    """A connection id was registered while already present."""

    log_level = "warning"

    def __init__(self, connection_id: str, context: ErrorContext | None = None, **kwargs):
        context = context or ErrorContext(connection_id=connection_id)
        super().__init__(f"Connection {connection_id} is already registered", context, **kwargs)
        self.connection_id = connection_id


class ConnectionLimitExceeded(RealtimeHubError):
    """Registering would exceed the configured maximum number of connections."""

    log_level = "warning"

    def __init__(self, max_connections: int, context: ErrorContext | None = None, **kwargs):
        super().__init__(f"Connection limit of {max_connections} reached", context, **kwargs)
        self.max_connections = max_connections
        self.details["max_connections"] = max_connections


class MalformedEvent(RealtimeHubError):
    """An event is missing required fields. Indicates an upstream programming error."""

    def __init__(self, message: str, context: ErrorContext | None = None, field_name: str | None = None, **kwargs):
        super().__init__(message, context, **kwargs)
        self.field_name = field_name
        if field_name:
            self.details["field"] = field_name


class DeliveryFailure(RealtimeHubError):
    """A single send could not reach its transport handle."""

    log_level = "warning"

    def __init__(
        self,
        connection_id: str,
        reason: str,
        context: ErrorContext | None = None,
        **kwargs,
    ):
        context = context or ErrorContext(connection_id=connection_id)
        super().__init__(f"Delivery to {connection_id} failed: {reason}", context, **kwargs)
        self.connection_id = connection_id
        self.reason = reason
        self.details["reason"] = reason
