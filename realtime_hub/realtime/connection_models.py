"""
Data models for connection management.

This module defines the values the connection registry hands out. They are
frozen: the registry replaces an entry rather than mutating it, so snapshots
held by callers never change underneath them.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class ConnectionState(StrEnum):
    """
    Liveness of a connection.

    ACTIVE and STALE are computed from last_activity on every sweep, never
    stored. REMOVED is terminal and only observable as absence from the
    registry.
    """

    ACTIVE = "active"
    STALE = "stale"
    REMOVED = "removed"


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, UTC).isoformat()


@dataclass(frozen=True)
class Connection:
    """One live logical channel to a single client."""

    connection_id: str
    user_id: str
    role: str
    connected_at: float
    last_activity: float

    def idle_seconds(self, now: float) -> float:
        """Seconds since the last heartbeat or successful send."""
        return now - self.last_activity

    def to_dict(self) -> dict[str, Any]:
        """Diagnostic view with ISO-8601 timestamps."""
        return {
            "connection_id": self.connection_id,
            "user_id": self.user_id,
            "role": self.role,
            "connected_at": _iso(self.connected_at),
            "last_activity": _iso(self.last_activity),
        }
