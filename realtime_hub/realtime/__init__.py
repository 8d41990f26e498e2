"""
Realtime connection management and event fan-out.

ConnectionManager is the entry point; the components it composes are
importable on their own for callers that need finer control.
"""

from .connection_manager import ConnectionManager
from .connection_models import Connection, ConnectionState
from .connection_registry import ConnectionRegistry
from .dispatcher import Dispatcher
from .envelope import RealtimeEvent, build_event
from .event_source_adapter import EventRoute, EventSourceAdapter
from .liveness_monitor import LivenessMonitor
from .room_directory import RoomDirectory
from .transport import InMemoryTransport, Transport, WebSocketTransport

__all__ = [
    "ConnectionManager",
    "Connection",
    "ConnectionState",
    "ConnectionRegistry",
    "Dispatcher",
    "RealtimeEvent",
    "build_event",
    "EventRoute",
    "EventSourceAdapter",
    "LivenessMonitor",
    "RoomDirectory",
    "InMemoryTransport",
    "Transport",
    "WebSocketTransport",
]
