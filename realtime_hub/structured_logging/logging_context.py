"""
Context management utilities for structured logging.

Transport callbacks bind the connection they are serving so that every log
entry emitted while handling it carries the connection and user ids.
"""

from typing import Any

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars


def bind_connection_context(
    connection_id: str,
    user_id: str | None = None,
    role: str | None = None,
    **kwargs: Any,
) -> None:
    """
    Bind connection context to the current logging context.

    Args:
        connection_id: Transport-assigned connection ID
        user_id: Owning user ID if known
        role: Connection role if known
        **kwargs: Additional context variables
    """
    context_vars = {
        "connection_id": connection_id,
        "user_id": user_id,
        "role": role,
        **kwargs,
    }
    bind_contextvars(**{k: v for k, v in context_vars.items() if v is not None})


def clear_connection_context() -> None:
    """Remove the connection keys bound by bind_connection_context."""
    unbind_contextvars("connection_id", "user_id", "role")


def get_current_context() -> dict[str, Any]:
    """Get the current logging context."""
    return structlog.contextvars.get_contextvars()
