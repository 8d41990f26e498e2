"""
Domain event types published by business logic.

Each known event type has its own dataclass carrying that event's payload
schema. RealtimeEventType enumerates the wire discriminators; every concrete
event sets event_type to one of them.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class RealtimeEventType(StrEnum):
    """Discriminators for every event the hub knows how to broadcast."""

    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_CANCELLED = "order.cancelled"
    INVENTORY_UPDATED = "inventory.updated"
    INVENTORY_ALERT = "inventory.alert"
    USER_REGISTERED = "user.registered"
    USER_CONNECTED = "user.connected"
    USER_DISCONNECTED = "user.disconnected"
    PAYMENT_PROCESSED = "payment.processed"
    PAYMENT_FAILED = "payment.failed"
    SYSTEM_MAINTENANCE = "system.maintenance"
    SYSTEM_ALERT = "system.alert"


def _default_timestamp() -> datetime:
    """Factory function for default timestamp."""
    return datetime.now(UTC)


@dataclass
class BaseEvent:
    """
    Base class for all domain events.

    Subclasses set event_type in __post_init__; it is excluded from __init__
    so a publisher cannot mislabel an event.
    """

    timestamp: datetime = field(default_factory=_default_timestamp, init=False)
    event_type: str = field(default="", init=False)


@dataclass
class OrderCreated(BaseEvent):
    """A customer placed an order."""

    order_id: str
    customer_id: str
    total_amount: float

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.ORDER_CREATED


@dataclass
class OrderUpdated(BaseEvent):
    """An order changed status."""

    order_id: str
    status: str
    message: str | None = None

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.ORDER_UPDATED


@dataclass
class OrderCancelled(BaseEvent):
    """An order was cancelled; the owning customer is notified as well."""

    order_id: str
    customer_id: str
    reason: str

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.ORDER_CANCELLED


@dataclass
class InventoryUpdated(BaseEvent):
    """Stock level for a product changed."""

    product_id: str
    quantity: int
    previous_quantity: int | None = None

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.INVENTORY_UPDATED


@dataclass
class InventoryAlert(BaseEvent):
    """Stock for a product fell below its threshold."""

    product_id: str
    current_stock: int
    threshold: int
    message: str = field(default="", init=False)

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.INVENTORY_ALERT
        self.message = f"Product stock is below threshold ({self.current_stock}/{self.threshold})"


@dataclass
class UserRegistered(BaseEvent):
    """A new user account was created."""

    user_id: str
    email: str

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.USER_REGISTERED


@dataclass
class UserConnected(BaseEvent):
    """A user opened a realtime connection."""

    user_id: str
    connection_id: str
    role: str

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.USER_CONNECTED


@dataclass
class UserDisconnected(BaseEvent):
    """A user's realtime connection was removed, by disconnect or eviction."""

    user_id: str
    connection_id: str
    role: str

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.USER_DISCONNECTED


@dataclass
class PaymentProcessed(BaseEvent):
    """A payment for an order was processed."""

    order_id: str
    payment_id: str
    status: str
    amount: float

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.PAYMENT_PROCESSED


@dataclass
class PaymentFailed(BaseEvent):
    """A payment for an order failed; the owning customer is notified as well."""

    order_id: str
    customer_id: str
    reason: str

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.PAYMENT_FAILED


@dataclass
class SystemMaintenance(BaseEvent):
    """Scheduled maintenance announcement, sent to every connection."""

    message: str
    scheduled_time: datetime | None = None

    def __post_init__(self) -> None:
        self.event_type = RealtimeEventType.SYSTEM_MAINTENANCE


@dataclass
class SystemAlert(BaseEvent):
    """Operational alert for staff."""

    level: str
    message: str

    def __post_init__(self) -> None:
        if self.level not in ("info", "warning", "error"):
            raise ValueError(f"Alert level must be info, warning or error, got '{self.level}'")
        self.event_type = RealtimeEventType.SYSTEM_ALERT
