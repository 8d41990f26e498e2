"""
Event serialization for realtime delivery.

Converts domain events to JSON-compatible dicts. Handles UUID, datetime,
enum and nested structures.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from enum import Enum
from typing import Any, cast
from uuid import UUID

from .event_types import BaseEvent


def _convert_value_for_json(value: Any) -> Any:
    """Convert a value to JSON-serializable form."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _convert_value_for_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_convert_value_for_json(v) for v in value]
    return value


def serialize_event(event: BaseEvent) -> dict[str, Any]:
    """
    Serialize a domain event to a JSON-compatible dict.

    Args:
        event: Domain event to serialize

    Returns:
        Dict of every event field, event_type and timestamp included

    Raises:
        ValueError: If event is not a BaseEvent
    """
    if not isinstance(event, BaseEvent):
        raise ValueError("Event must inherit from BaseEvent")

    return cast(dict[str, Any], _convert_value_for_json(asdict(event)))
