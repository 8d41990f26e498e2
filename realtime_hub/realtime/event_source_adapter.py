"""
Translation from domain events to broadcasts.

The EventSourceAdapter subscribes to the EventBus for every known domain event
type and, on receipt, wraps the event in a RealtimeEvent and hands it to the
Dispatcher according to a fixed route table. Publishers never observe a
broadcast failure: errors are logged here and dropped.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..events.event_types import (
    BaseEvent,
    InventoryAlert,
    InventoryUpdated,
    OrderCancelled,
    OrderCreated,
    OrderUpdated,
    PaymentFailed,
    PaymentProcessed,
    SystemAlert,
    SystemMaintenance,
    UserConnected,
    UserDisconnected,
    UserRegistered,
)
from ..structured_logging.enhanced_logging_config import get_logger
from .envelope import build_event

if TYPE_CHECKING:
    from ..events.event_bus import EventBus
    from .dispatcher import Dispatcher

logger = get_logger(__name__)

ADMINS_ROOM = "admins"
MANAGERS_ROOM = "managers"


@dataclass(frozen=True)
class EventRoute:
    """
    Where one domain event type is delivered.

    notify_owner sends to every connection of the event's customer_id as well.
    """

    rooms: tuple[str, ...] = ()
    broadcast_all: bool = False
    notify_owner: bool = False


DEFAULT_ROUTES: dict[type[BaseEvent], EventRoute] = {
    OrderCreated: EventRoute(rooms=(ADMINS_ROOM,)),
    OrderUpdated: EventRoute(rooms=(ADMINS_ROOM,)),
    OrderCancelled: EventRoute(rooms=(ADMINS_ROOM,), notify_owner=True),
    InventoryUpdated: EventRoute(rooms=(ADMINS_ROOM,)),
    InventoryAlert: EventRoute(rooms=(ADMINS_ROOM, MANAGERS_ROOM)),
    UserRegistered: EventRoute(rooms=(ADMINS_ROOM,)),
    PaymentProcessed: EventRoute(rooms=(ADMINS_ROOM,)),
    PaymentFailed: EventRoute(rooms=(ADMINS_ROOM,), notify_owner=True),
    SystemMaintenance: EventRoute(broadcast_all=True),
    SystemAlert: EventRoute(rooms=(ADMINS_ROOM,)),
    UserConnected: EventRoute(rooms=(ADMINS_ROOM,)),
    UserDisconnected: EventRoute(rooms=(ADMINS_ROOM,)),
}


class EventSourceAdapter:
    """Subscribes to the event bus and turns domain events into broadcasts."""

    def __init__(
        self,
        event_bus: EventBus,
        dispatcher: Dispatcher,
        routes: Mapping[type[BaseEvent], EventRoute] | None = None,
    ) -> None:
        self.event_bus = event_bus
        self.dispatcher = dispatcher
        self.routes = dict(DEFAULT_ROUTES if routes is None else routes)
        self._stats = {"received": 0, "routed": 0, "errors": 0, "unrouted": 0}
        self._subscribed = False
        self.subscribe()

    def subscribe(self) -> None:
        """Subscribe to every routed event type. Safe to call more than once."""
        if self._subscribed:
            return
        for event_class in self.routes:
            self.event_bus.subscribe(event_class, self.handle_event)
        self._subscribed = True
        logger.info("Event source adapter subscribed", event_types=sorted(cls.__name__ for cls in self.routes))

    def close(self) -> None:
        """Unsubscribe from the event bus. Safe to call more than once."""
        if not self._subscribed:
            return
        for event_class in self.routes:
            self.event_bus.unsubscribe(event_class, self.handle_event)
        self._subscribed = False
        logger.info("Event source adapter unsubscribed")

    async def handle_event(self, domain_event: BaseEvent) -> None:
        """
        Broadcast one domain event along its route.

        Each leg of the route is attempted even if an earlier one fails.
        Nothing is raised back to the publisher.
        """
        self._stats["received"] += 1
        route = self.routes.get(type(domain_event))
        if route is None:
            self._stats["unrouted"] += 1
            logger.warning("No route for domain event", event_class=type(domain_event).__name__)
            return

        for room in route.rooms:
            await self._deliver_leg(domain_event, target_room=room)
        if route.broadcast_all:
            await self._deliver_leg(domain_event)
        if route.notify_owner:
            customer_id = getattr(domain_event, "customer_id", None)
            if customer_id:
                await self._deliver_leg(domain_event, target_user_id=str(customer_id))
            else:
                logger.warning("Domain event has no customer to notify", event_type=domain_event.event_type)
        self._stats["routed"] += 1

    async def _deliver_leg(
        self,
        domain_event: BaseEvent,
        target_room: str | None = None,
        target_user_id: str | None = None,
    ) -> None:
        try:
            event = build_event(domain_event, target_room=target_room, target_user_id=target_user_id)
            stats = await self.dispatcher.dispatch(event)
            logger.debug(
                "Domain event broadcast",
                event_type=event.type,
                event_id=event.id,
                target_room=target_room,
                target_user_id=target_user_id,
                delivered=stats.get("successful_deliveries", 0),
                failed=stats.get("failed_deliveries", 0),
            )
        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: Publishers must never see broadcast failures
            self._stats["errors"] += 1
            logger.error(
                "Error broadcasting domain event",
                event_type=getattr(domain_event, "event_type", None),
                target_room=target_room,
                target_user_id=target_user_id,
                error=str(e),
                exc_info=True,
            )

    def get_stats(self) -> dict[str, Any]:
        return {**self._stats, "subscribed": self._subscribed}
