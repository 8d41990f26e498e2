"""
Event dispatch for the realtime hub.

The Dispatcher resolves recipients from the registry and room directory,
serializes an event once per broadcast and hands it to the transport for each
recipient concurrently. Failed sends are recorded and counted; they never
propagate to the caller and never unregister a connection.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from ..exceptions import DeliveryFailure, ErrorContext
from ..structured_logging.enhanced_logging_config import get_logger
from .envelope import RealtimeEvent

if TYPE_CHECKING:
    from ..caching.lru_cache import LRUCache
    from .connection_models import Connection
    from .connection_registry import ConnectionRegistry
    from .transport import Transport

logger = get_logger(__name__)

EVENT_CACHE_PREFIX = "realtime_event:"


class Dispatcher:
    """
    Delivers RealtimeEvents to one connection, a user, a room, a role or everyone.

    Sends to the same connection are serialized with a per-connection
    asyncio.Lock, so one recipient observes events in dispatch order. Sends to
    different connections run concurrently.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: Transport,
        send_timeout: float = 5.0,
        event_cache: LRUCache[str, dict[str, Any]] | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            registry: Connection registry used to resolve recipients
            transport: Send primitive for serialized events
            send_timeout: Seconds a single send may take before it counts as failed
            event_cache: Optional short-lived cache of dispatched events, for diagnostics
        """
        self.registry = registry
        self.transport = transport
        self.send_timeout = send_timeout
        self.event_cache = event_cache
        self._send_locks: dict[str, asyncio.Lock] = {}
        self._stats = {
            "events_dispatched": 0,
            "attempted": 0,
            "delivered": 0,
            "failed": 0,
            "timeouts": 0,
            "skipped_unregistered": 0,
        }
        registry.add_unregister_listener(self._forget_connection)

    def _forget_connection(self, connection: Connection) -> None:
        self._send_locks.pop(connection.connection_id, None)

    def _record_event(self, event: RealtimeEvent) -> None:
        """Validate the event and keep a diagnostic copy of it."""
        event.validate()
        self._stats["events_dispatched"] += 1
        if self.event_cache is None:
            return
        try:
            self.event_cache.put(f"{EVENT_CACHE_PREFIX}{event.id}", event.to_dict())
        except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: Diagnostic cache is best-effort
            logger.warning("Failed to cache dispatched event", event_id=event.id, error=str(e))

    async def _transport_send(self, connection_id: str, message: str, event: RealtimeEvent) -> None:
        """
        Call the transport once, bounded by send_timeout.

        Raises:
            DeliveryFailure: If the transport raises, times out or reports failure
        """
        context = ErrorContext(connection_id=connection_id, event_type=event.type, metadata={"event_id": event.id})
        try:
            result = self.transport.send(connection_id, message)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=self.send_timeout)
        except TimeoutError as e:
            self._stats["timeouts"] += 1
            raise DeliveryFailure(connection_id, f"send timed out after {self.send_timeout}s", context) from e
        except Exception as e:
            raise DeliveryFailure(connection_id, str(e) or e.__class__.__name__, context) from e
        if result is False:
            raise DeliveryFailure(connection_id, "transport reported failure", context)

    async def _deliver(self, connection_id: str, message: str, event: RealtimeEvent) -> bool | None:
        """True if delivered, False if the send failed, None if the recipient was no longer registered."""
        if connection_id not in self.registry:
            self._stats["skipped_unregistered"] += 1
            logger.debug("Skipping send to unregistered connection", connection_id=connection_id, event_id=event.id)
            return None

        lock = self._send_locks.setdefault(connection_id, asyncio.Lock())
        async with lock:
            self._stats["attempted"] += 1
            try:
                await self._transport_send(connection_id, message, event)
            except DeliveryFailure:
                self._stats["failed"] += 1
                return False

        if not self.registry.touch(connection_id):
            # Unregistered while the send was in flight
            self._send_locks.pop(connection_id, None)
        self._stats["delivered"] += 1
        return True

    async def send_to(self, connection_id: str, event: RealtimeEvent) -> bool:
        """
        Send an event to a single connection.

        Args:
            connection_id: Recipient connection
            event: Event to deliver

        Returns:
            True if the transport accepted the message

        Raises:
            MalformedEvent: If the event is missing required fields
        """
        self._record_event(event)
        return await self._deliver(connection_id, event.to_json(), event) is True

    async def _fan_out(self, targets: Iterable[str], event: RealtimeEvent, **scope: Any) -> dict[str, Any]:
        """Deliver to a recipient list resolved by the caller before any await."""
        target_list = list(targets)
        stats: dict[str, Any] = {
            **scope,
            "event_id": event.id,
            "event_type": event.type,
            "total_targets": len(target_list),
            "successful_deliveries": 0,
            "failed_deliveries": 0,
            "skipped_deliveries": 0,
        }
        if not target_list:
            logger.debug("Broadcast has no recipients", event_type=event.type, **scope)
            return stats

        message = event.to_json()
        results = await asyncio.gather(
            *[self._deliver(cid, message, event) for cid in target_list],
            return_exceptions=True,
        )
        for cid, result in zip(target_list, results, strict=True):
            if result is True:
                stats["successful_deliveries"] += 1
            elif result is None:
                stats["skipped_deliveries"] += 1
            else:
                if isinstance(result, BaseException):
                    logger.error("Unexpected error delivering event", connection_id=cid, error=str(result))
                stats["failed_deliveries"] += 1

        logger.debug("Broadcast delivery stats", **stats)
        return stats

    async def broadcast_to_connection(self, user_id: str, event: RealtimeEvent) -> dict[str, Any]:
        """Send an event to every connection owned by a user."""
        self._record_event(event)
        targets = [c.connection_id for c in self.registry.connections_for_user(user_id)]
        return await self._fan_out(targets, event, user_id=user_id)

    async def broadcast_to_room(self, room: str, event: RealtimeEvent) -> dict[str, Any]:
        """
        Send an event to every member of a room.

        Membership is read once, when the call starts; joins and leaves that
        happen during delivery do not change the recipient list. A room that
        does not exist has no members.
        """
        self._record_event(event)
        targets = sorted(self.registry.rooms.members_of(room))
        return await self._fan_out(targets, event, room=room)

    async def broadcast_to_role(self, role: str, event: RealtimeEvent) -> dict[str, Any]:
        """Send an event to every connection registered with a role."""
        self._record_event(event)
        targets = [c.connection_id for c in self.registry.connections_for_role(role)]
        return await self._fan_out(targets, event, role=role)

    async def broadcast_to_all(self, event: RealtimeEvent) -> dict[str, Any]:
        """Send an event to every registered connection."""
        self._record_event(event)
        targets = [c.connection_id for c in self.registry.list_active()]
        return await self._fan_out(targets, event, scope="all")

    async def dispatch(self, event: RealtimeEvent) -> dict[str, Any]:
        """Route an event by its own target_user_id or target_room, or to everyone."""
        if event.target_user_id is not None:
            return await self.broadcast_to_connection(event.target_user_id, event)
        if event.target_room is not None:
            return await self.broadcast_to_room(event.target_room, event)
        return await self.broadcast_to_all(event)

    def get_delivery_stats(self) -> dict[str, Any]:
        """Cumulative delivery counters."""
        stats: dict[str, Any] = dict(self._stats)
        stats["tracked_connections"] = len(self._send_locks)
        stats["cached_events"] = self.event_cache.size() if self.event_cache is not None else 0
        return stats

    def get_cached_event(self, event_id: str) -> dict[str, Any] | None:
        """Recently dispatched event by id, if it is still in the diagnostic cache."""
        if self.event_cache is None:
            return None
        return self.event_cache.get(f"{EVENT_CACHE_PREFIX}{event_id}")
