"""
Events module for the realtime hub.

Business logic publishes typed domain events on the EventBus; the realtime
EventSourceAdapter subscribes and turns them into broadcasts.
"""

from .event_bus import EventBus
from .event_serialization import serialize_event
from .event_types import (
    BaseEvent,
    InventoryAlert,
    InventoryUpdated,
    OrderCancelled,
    OrderCreated,
    OrderUpdated,
    PaymentFailed,
    PaymentProcessed,
    RealtimeEventType,
    SystemAlert,
    SystemMaintenance,
    UserConnected,
    UserDisconnected,
    UserRegistered,
)

__all__ = [
    "EventBus",
    "serialize_event",
    "BaseEvent",
    "RealtimeEventType",
    "OrderCreated",
    "OrderUpdated",
    "OrderCancelled",
    "InventoryUpdated",
    "InventoryAlert",
    "UserRegistered",
    "UserConnected",
    "UserDisconnected",
    "PaymentProcessed",
    "PaymentFailed",
    "SystemMaintenance",
    "SystemAlert",
]
