"""
Room membership for the realtime hub.

A room is a named set of connection ids used to scope broadcasts. Rooms come
into existence with their first member and are pruned when they empty.
"""

from __future__ import annotations

import threading

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class RoomDirectory:
    """
    Sole owner of the room name -> connection ids mapping.

    Every operation runs under one lock and every read returns a snapshot, so
    callers never hold the lock while iterating members.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, set[str]] = {}
        self._lock = threading.RLock()

    def add_to_room(self, room: str, connection_id: str) -> bool:
        """
        Add a connection to a room, creating the room if needed.

        Returns:
            True if the connection was newly added, False if already a member
        """
        with self._lock:
            members = self._rooms.setdefault(room, set())
            if connection_id in members:
                return False
            members.add(connection_id)
        logger.debug("Connection added to room", room=room, connection_id=connection_id)
        return True

    def remove_from_room(self, room: str, connection_id: str) -> bool:
        """
        Remove a connection from a room. Removing an absent id is a no-op.

        Returns:
            True if the connection was a member
        """
        with self._lock:
            members = self._rooms.get(room)
            if not members or connection_id not in members:
                return False
            members.discard(connection_id)
            if not members:
                del self._rooms[room]
        logger.debug("Connection removed from room", room=room, connection_id=connection_id)
        return True

    def remove_connection_from_all_rooms(self, connection_id: str) -> list[str]:
        """
        Remove a connection from every room in one locked pass.

        Returns:
            Names of the rooms the connection left
        """
        left: list[str] = []
        with self._lock:
            for room, members in list(self._rooms.items()):
                if connection_id in members:
                    members.discard(connection_id)
                    left.append(room)
                    if not members:
                        del self._rooms[room]
        if left:
            logger.debug("Connection removed from all rooms", connection_id=connection_id, rooms=left)
        return left

    def members_of(self, room: str) -> frozenset[str]:
        """Snapshot of a room's members; an unknown room has none."""
        with self._lock:
            return frozenset(self._rooms.get(room, ()))

    def rooms_for(self, connection_id: str) -> list[str]:
        """Names of the rooms a connection belongs to."""
        with self._lock:
            return sorted(room for room, members in self._rooms.items() if connection_id in members)

    def room_sizes(self) -> dict[str, int]:
        """Member count per room."""
        with self._lock:
            return {room: len(members) for room, members in self._rooms.items()}

    def __contains__(self, room: object) -> bool:
        with self._lock:
            return room in self._rooms
