"""
Connection manager for realtime_hub.

This module composes the realtime components (registry, rooms, dispatcher,
liveness monitor and event source adapter) into one object that owns their
lifecycle and exposes the inbound transport operations and diagnostics.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from ..caching.lru_cache import LRUCache
from ..config.models import RealtimeConfig
from ..events.event_bus import EventBus
from ..events.event_types import BaseEvent, UserConnected, UserDisconnected
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_models import Connection
from .connection_registry import ConnectionRegistry
from .dispatcher import Dispatcher
from .envelope import RealtimeEvent
from .event_source_adapter import EventSourceAdapter
from .liveness_monitor import LivenessMonitor
from .room_directory import RoomDirectory
from .transport import InMemoryTransport, Transport, WebSocketTransport

logger = get_logger(__name__)


class ConnectionManager:
    """
    Facade over the realtime components.

    Inbound transport code calls register, touch and unregister; business code
    publishes domain events on event_bus; diagnostics read
    get_connection_stats and get_active_connections.
    """

    def __init__(
        self,
        config: RealtimeConfig | None = None,
        transport: Transport | None = None,
        event_bus: EventBus | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the connection manager.

        Args:
            config: Realtime settings; defaults are read from the environment
            transport: Send primitive; an InMemoryTransport if omitted
            event_bus: Bus the adapter subscribes to; a new one if omitted
            clock: Epoch-seconds time source shared by registry and monitor
        """
        self.config = config or RealtimeConfig()
        self.transport: Transport = transport if transport is not None else InMemoryTransport()
        self.event_bus = event_bus if event_bus is not None else EventBus()

        self.rooms = RoomDirectory()
        self.registry = ConnectionRegistry(
            self.rooms,
            max_connections=self.config.max_connections,
            role_rooms=self.config.role_rooms,
            clock=clock,
        )
        self.event_cache: LRUCache[str, dict[str, Any]] = LRUCache(
            max_size=self.config.event_cache_max_size,
            ttl_seconds=self.config.event_cache_ttl,
        )
        self.dispatcher = Dispatcher(
            self.registry,
            self.transport,
            send_timeout=self.config.send_timeout,
            event_cache=self.event_cache,
        )
        self.liveness_monitor = LivenessMonitor(
            self.registry,
            connection_timeout=self.config.connection_timeout,
            sweep_interval=self.config.effective_sweep_interval,
        )
        self.adapter = EventSourceAdapter(self.event_bus, self.dispatcher)
        self._started = False

        if isinstance(self.transport, WebSocketTransport):
            self.registry.add_unregister_listener(self.transport.connection_removed)
        self.registry.add_unregister_listener(self._publish_disconnected)

        logger.info(
            "ConnectionManager initialized",
            max_connections=self.config.max_connections,
            heartbeat_interval=self.config.heartbeat_interval,
            connection_timeout=self.config.connection_timeout,
        )

    async def start(self) -> None:
        """
        Begin periodic liveness sweeps and bind the event bus to the running loop.

        Also valid after shutdown(): the adapter subscribes again and the bus
        restarts processing on the next publish.
        """
        if self._started:
            return
        self.event_bus.set_main_loop(asyncio.get_running_loop())
        self.adapter.subscribe()
        self.liveness_monitor.start()
        self._started = True
        logger.info("ConnectionManager started")

    async def shutdown(self) -> None:
        """Stop background work, drop all connections and clear diagnostics."""
        self._started = False
        await self.liveness_monitor.stop()
        self.adapter.close()
        await self.event_bus.shutdown()
        for connection in self.registry.list_active():
            self.registry.unregister(connection.connection_id)
        self.event_cache.clear()
        logger.info("ConnectionManager shut down")

    def _publish_disconnected(self, connection: Connection) -> None:
        # Only while started, so shutdown's unregisters never revive the bus
        if self._started:
            self.event_bus.publish(
                UserDisconnected(
                    user_id=connection.user_id,
                    connection_id=connection.connection_id,
                    role=connection.role,
                )
            )

    # Inbound transport operations

    def register(self, connection_id: str, user_id: str, role: str) -> Connection:
        connection = self.registry.register(connection_id, user_id, role)
        if self._started:
            self.event_bus.publish(UserConnected(user_id=user_id, connection_id=connection_id, role=role))
        return connection

    def unregister(self, connection_id: str) -> bool:
        return self.registry.unregister(connection_id)

    def touch(self, connection_id: str) -> bool:
        return self.registry.touch(connection_id)

    def add_to_room(self, room: str, connection_id: str) -> bool:
        return self.registry.join_room(room, connection_id)

    def remove_from_room(self, room: str, connection_id: str) -> bool:
        return self.rooms.remove_from_room(room, connection_id)

    def is_user_online(self, user_id: str) -> bool:
        return self.registry.is_user_online(user_id)

    # Outbound operations

    def publish(self, domain_event: BaseEvent) -> None:
        """Publish a domain event for the adapter to route."""
        self.event_bus.publish(domain_event)

    async def send_to(self, connection_id: str, event: RealtimeEvent) -> bool:
        return await self.dispatcher.send_to(connection_id, event)

    async def broadcast_to_connection(self, user_id: str, event: RealtimeEvent) -> dict[str, Any]:
        return await self.dispatcher.broadcast_to_connection(user_id, event)

    async def broadcast_to_room(self, room: str, event: RealtimeEvent) -> dict[str, Any]:
        return await self.dispatcher.broadcast_to_room(room, event)

    async def broadcast_to_role(self, role: str, event: RealtimeEvent) -> dict[str, Any]:
        return await self.dispatcher.broadcast_to_role(role, event)

    async def broadcast_to_all(self, event: RealtimeEvent) -> dict[str, Any]:
        return await self.dispatcher.broadcast_to_all(event)

    # Diagnostics

    def get_connection_stats(self) -> dict[str, Any]:
        """Snapshot of connection counts, rooms and delivery counters."""
        return {
            "total_connections": len(self.registry),
            "max_connections": self.registry.max_connections,
            "connections_by_role": self.registry.stats_by_role(),
            "rooms": self.rooms.room_sizes(),
            "delivery": self.dispatcher.get_delivery_stats(),
            "liveness": self.liveness_monitor.get_stats(),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def get_active_connections(self) -> list[dict[str, Any]]:
        """Diagnostic view of every registered connection with its rooms."""
        return [
            {**connection.to_dict(), "rooms": self.rooms.rooms_for(connection.connection_id)}
            for connection in self.registry.list_active()
        ]
