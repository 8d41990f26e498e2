"""
Event envelope for realtime messages.

RealtimeEvent is the immutable value handed to the dispatcher and, once
serialized, to the transport. Its wire form is:

- id: str, generated, for diagnostics only
- type: str, the event discriminator (e.g. "order.updated")
- payload: dict, the serialized domain event
- timestamp: ISO 8601 UTC
- target_user_id / target_room: optional delivery scope
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..events.event_serialization import serialize_event
from ..events.event_types import BaseEvent
from ..exceptions import ErrorContext, MalformedEvent


def generate_event_id() -> str:
    """Return a fresh diagnostic event id."""
    return f"event_{uuid.uuid4().hex}"


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RealtimeEvent:
    """
    An event broadcast to connections.

    Absence of both target_user_id and target_room means "all connections".
    """

    type: str
    payload: BaseEvent
    id: str = field(default_factory=generate_event_id)
    timestamp: datetime = field(default_factory=_utc_now)
    target_user_id: str | None = None
    target_room: str | None = None

    def validate(self) -> None:
        """
        Check required fields.

        Raises:
            MalformedEvent: If type or payload is missing
        """
        if not isinstance(self.type, str) or not self.type:
            raise MalformedEvent(
                "Event is missing its type",
                ErrorContext(metadata={"event_id": self.id}),
                field_name="type",
            )
        if not isinstance(self.payload, BaseEvent):
            raise MalformedEvent(
                "Event payload must be a domain event",
                ErrorContext(event_type=self.type, metadata={"event_id": self.id}),
                field_name="payload",
            )

    def to_dict(self) -> dict[str, Any]:
        """Wire form of the event."""
        return {
            "id": self.id,
            "type": str(self.type),
            "payload": serialize_event(self.payload),
            "timestamp": self.timestamp.isoformat(),
            "target_user_id": self.target_user_id,
            "target_room": self.target_room,
        }

    def to_json(self) -> str:
        """Serialized wire form, as passed to the transport."""
        return json.dumps(self.to_dict())


def build_event(
    payload: BaseEvent,
    *,
    target_user_id: str | None = None,
    target_room: str | None = None,
) -> RealtimeEvent:
    """
    Build a RealtimeEvent whose type is taken from the domain event.

    Args:
        payload: Domain event carrying the event type and data
        target_user_id: Optional user to scope delivery to
        target_room: Optional room to scope delivery to

    Returns:
        A validated RealtimeEvent

    Raises:
        MalformedEvent: If payload is not a domain event or has no event_type
    """
    if not isinstance(payload, BaseEvent):
        raise MalformedEvent("Event payload must be a domain event", field_name="payload")
    event = RealtimeEvent(
        type=payload.event_type,
        payload=payload,
        target_user_id=target_user_id,
        target_room=target_room,
    )
    event.validate()
    return event
