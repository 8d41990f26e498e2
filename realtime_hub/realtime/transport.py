"""
Outbound transport collaborators.

The dispatcher never talks to sockets directly. It is handed a Transport whose
send(connection_id, message) delivers one serialized event and reports whether
it got through. Both sync and async implementations are accepted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from ..structured_logging.enhanced_logging_config import get_logger

if TYPE_CHECKING:
    from .connection_models import Connection

logger = get_logger(__name__)

# Close code 1001 is "going away"
CLOSE_GOING_AWAY = 1001


@runtime_checkable
class Transport(Protocol):
    """Send primitive supplied by the transport layer."""

    def send(self, connection_id: str, message: str) -> bool | Awaitable[bool]:
        """Deliver message to connection_id; False or an exception means failure."""
        ...  # pylint: disable=unnecessary-ellipsis  # Reason: Protocol method body


class InMemoryTransport:
    """
    Transport that records every message instead of sending it.

    Used by tests and by local runs without real sockets. Individual
    connections can be made to fail to exercise delivery failure handling.
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self._failing: dict[str, Exception | None] = {}

    def fail_for(self, connection_id: str, error: Exception | None = None) -> None:
        """
        Make sends to connection_id fail.

        Args:
            connection_id: Connection whose sends should fail
            error: Raised from send if given, otherwise send returns False
        """
        self._failing[connection_id] = error

    def recover(self, connection_id: str) -> None:
        self._failing.pop(connection_id, None)

    async def send(self, connection_id: str, message: str) -> bool:
        if connection_id in self._failing:
            error = self._failing[connection_id]
            if error is not None:
                raise error
            return False
        self.sent.append((connection_id, message))
        return True

    def messages_for(self, connection_id: str) -> list[str]:
        """Messages delivered to one connection, in send order."""
        return [message for cid, message in self.sent if cid == connection_id]


class WebSocketTransport:
    """
    Transport backed by accepted FastAPI WebSockets.

    The WebSocket handler attaches a socket when a connection is registered
    and detaches it on disconnect; sends to unknown ids fail. A connection
    removed from the registry while its socket is still attached (liveness
    eviction, shutdown) has that socket closed with 1001 "going away".
    """

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._close_tasks: set[asyncio.Task[None]] = set()

    def attach(self, connection_id: str, websocket: WebSocket) -> None:
        """Make a socket reachable; must be called from the serving event loop."""
        self._loop = asyncio.get_running_loop()
        self._sockets[connection_id] = websocket

    def detach(self, connection_id: str) -> WebSocket | None:
        return self._sockets.pop(connection_id, None)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sockets

    def connection_removed(self, connection: Connection) -> None:
        """
        Registry unregister listener.

        Detaches the connection's socket and schedules its close on the
        serving loop. Safe to call from any thread.
        """
        websocket = self.detach(connection.connection_id)
        if websocket is None:
            return
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.warning("No event loop to close WebSocket on", connection_id=connection.connection_id)
            return
        logger.info("Closing WebSocket of removed connection", connection_id=connection.connection_id)
        loop.call_soon_threadsafe(self._schedule_close, connection.connection_id, websocket)

    def _schedule_close(self, connection_id: str, websocket: WebSocket) -> None:
        task = asyncio.get_running_loop().create_task(self._close(connection_id, websocket))
        self._close_tasks.add(task)
        task.add_done_callback(self._close_tasks.discard)

    async def _close(self, connection_id: str, websocket: WebSocket) -> None:
        if websocket.application_state != WebSocketState.CONNECTED:
            return
        try:
            await websocket.close(code=CLOSE_GOING_AWAY)
        except RuntimeError as e:
            # Starlette raises if the close raced with the client's own disconnect
            logger.debug("WebSocket already closed", connection_id=connection_id, error=str(e))

    async def send(self, connection_id: str, message: str) -> bool:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            logger.debug("No WebSocket attached for connection", connection_id=connection_id)
            return False
        if websocket.application_state != WebSocketState.CONNECTED:
            logger.debug(
                "WebSocket not connected, skipping send",
                connection_id=connection_id,
                state=websocket.application_state.name,
            )
            return False
        await websocket.send_text(message)
        return True
