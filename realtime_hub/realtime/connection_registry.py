"""
Connection registry for the realtime hub.

The registry is the only owner of the connection_id -> Connection mapping.
It also coordinates room membership so that no room ever lists a connection
the registry has forgotten: joins are checked against the registry, and
unregistering cascades to every room before the registry lock is released.
Lock order is always registry, then rooms.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import replace

from ..exceptions import ConnectionLimitExceeded, DuplicateConnection, ErrorContext
from ..structured_logging.enhanced_logging_config import get_logger
from .connection_models import Connection
from .room_directory import RoomDirectory

logger = get_logger(__name__)

UnregisterListener = Callable[[Connection], None]


class ConnectionRegistry:
    """
    Owns the set of live logical connections and their metadata.

    All methods are safe to call concurrently from threads and from the event
    loop; none of them block on I/O.
    """

    def __init__(
        self,
        rooms: RoomDirectory,
        max_connections: int = 1000,
        role_rooms: Mapping[str, str] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the registry.

        Args:
            rooms: Room directory that membership cascades to
            max_connections: Upper bound on registered connections
            role_rooms: Role -> room joined automatically on register
            clock: Epoch-seconds time source, injectable for tests
        """
        self._rooms = rooms
        self.max_connections = max_connections
        self.role_rooms = dict(role_rooms or {})
        self._clock = clock
        self._connections: dict[str, Connection] = {}
        self._lock = threading.RLock()
        self._unregister_listeners: list[UnregisterListener] = []

    @property
    def rooms(self) -> RoomDirectory:
        """The room directory this registry keeps consistent."""
        return self._rooms

    def now(self) -> float:
        """Current time according to the registry's clock."""
        return self._clock()

    def add_unregister_listener(self, listener: UnregisterListener) -> None:
        """Call listener with the removed Connection after every unregister."""
        self._unregister_listeners.append(listener)

    def register(self, connection_id: str, user_id: str, role: str) -> Connection:
        """
        Register a new connection.

        Args:
            connection_id: Transport-assigned id, fresh per transport session
            user_id: Authenticated principal owning the connection
            role: Coarse authorization tag used for room auto-membership

        Returns:
            The registered Connection

        Raises:
            DuplicateConnection: If connection_id is already registered
            ConnectionLimitExceeded: If max_connections are already registered
        """
        with self._lock:
            if connection_id in self._connections:
                raise DuplicateConnection(connection_id, ErrorContext(connection_id=connection_id, user_id=user_id))
            if len(self._connections) >= self.max_connections:
                raise ConnectionLimitExceeded(
                    self.max_connections, ErrorContext(connection_id=connection_id, user_id=user_id)
                )

            now = self._clock()
            connection = Connection(
                connection_id=connection_id,
                user_id=user_id,
                role=role,
                connected_at=now,
                last_activity=now,
            )
            self._connections[connection_id] = connection

            auto_room = self.role_rooms.get(role)
            if auto_room:
                self._rooms.add_to_room(auto_room, connection_id)

        logger.info(
            "Connection registered",
            connection_id=connection_id,
            user_id=user_id,
            role=role,
            auto_room=auto_room,
            total_connections=len(self),
        )
        return connection

    def unregister(self, connection_id: str) -> bool:
        """
        Remove a connection and its room memberships.

        Idempotent: disconnects can race with eviction, so an unknown id is
        a no-op.

        Returns:
            True if the connection was registered
        """
        return self._remove(connection_id)

    def unregister_if_idle(self, connection_id: str, connection_timeout: float, now: float | None = None) -> bool:
        """
        Remove a connection only if it has been idle longer than connection_timeout.

        Idleness is re-read under the registry lock, so activity recorded
        after the caller chose to evict wins.

        Returns:
            True if the connection was removed
        """
        return self._remove(connection_id, connection_timeout=connection_timeout, now=now)

    def _remove(self, connection_id: str, connection_timeout: float | None = None, now: float | None = None) -> bool:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                logger.debug("Unregister for unknown connection ignored", connection_id=connection_id)
                return False
            if connection_timeout is not None:
                now = self._clock() if now is None else now
                if connection.idle_seconds(now) <= connection_timeout:
                    logger.debug("Connection active again, not evicted", connection_id=connection_id)
                    return False
            del self._connections[connection_id]
            rooms_left = self._rooms.remove_connection_from_all_rooms(connection_id)

        for listener in list(self._unregister_listeners):
            try:
                listener(connection)
            except Exception as e:  # pylint: disable=broad-exception-caught  # Reason: Listener failures must not undo an unregister
                logger.error(
                    "Unregister listener failed",
                    connection_id=connection_id,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e),
                )

        logger.info(
            "Connection unregistered",
            connection_id=connection_id,
            user_id=connection.user_id,
            rooms_left=rooms_left,
        )
        return True

    def touch(self, connection_id: str) -> bool:
        """
        Record activity on a connection. No-op if it no longer exists.

        Returns:
            True if the connection was registered
        """
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return False
            self._connections[connection_id] = replace(connection, last_activity=self._clock())
        return True

    def join_room(self, room: str, connection_id: str) -> bool:
        """
        Add a registered connection to a room.

        Unregistered ids are refused so a room can never hold an orphan.

        Returns:
            True if the connection is a member of the room afterwards
        """
        with self._lock:
            if connection_id not in self._connections:
                logger.debug("Room join refused for unregistered connection", room=room, connection_id=connection_id)
                return False
            self._rooms.add_to_room(room, connection_id)
        return True

    def get(self, connection_id: str) -> Connection | None:
        """Current snapshot of one connection."""
        with self._lock:
            return self._connections.get(connection_id)

    def list_active(self) -> tuple[Connection, ...]:
        """
        Snapshot of every registered connection.

        The tuple can be iterated any number of times while the registry keeps
        changing; it never reflects later mutations.
        """
        with self._lock:
            return tuple(self._connections.values())

    def connections_for_user(self, user_id: str) -> list[Connection]:
        """Every connection owned by a user (one per browser tab, for example)."""
        with self._lock:
            return [c for c in self._connections.values() if c.user_id == user_id]

    def connections_for_role(self, role: str) -> list[Connection]:
        """Every connection registered with a role."""
        with self._lock:
            return [c for c in self._connections.values() if c.role == role]

    def is_user_online(self, user_id: str) -> bool:
        """True if the user has at least one registered connection."""
        with self._lock:
            return any(c.user_id == user_id for c in self._connections.values())

    def stats_by_role(self) -> dict[str, int]:
        """Count of registered connections per role."""
        with self._lock:
            return dict(Counter(c.role for c in self._connections.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections
