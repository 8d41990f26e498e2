"""
WebSocket receive loop for realtime_hub.

The socket handed in here is already accepted and its user already
authenticated. The handler only drives the connection manager's inbound
operations: register on entry, touch on heartbeat, room join/leave on request
and unregister on disconnect.
"""

from __future__ import annotations

import json
import uuid
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket, WebSocketDisconnect

from ..exceptions import ConnectionLimitExceeded, DuplicateConnection
from ..structured_logging.enhanced_logging_config import get_logger
from ..structured_logging.logging_context import bind_connection_context, clear_connection_context
from .transport import CLOSE_GOING_AWAY, WebSocketTransport

if TYPE_CHECKING:
    from .connection_manager import ConnectionManager

logger = get_logger(__name__)

HEARTBEAT_TYPES = frozenset({"heartbeat", "ping"})

# Close code 1013 is "try again later"; 1008 is "policy violation"
CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_POLICY_VIOLATION = 1008


def generate_connection_id() -> str:
    return f"conn_{uuid.uuid4().hex}"


def parse_client_message(data: str) -> dict[str, Any]:
    """
    Parse one inbound text frame.

    A bare "ping" is accepted as a heartbeat. Anything else must be a JSON
    object with a "type" key.

    Raises:
        ValueError: If the frame is not a JSON object with a type
    """
    if data.strip() == "ping":
        return {"type": "ping"}
    message = json.loads(data)
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        raise ValueError("Message must be a JSON object with a string 'type'")
    return message


def _error_frame(message: str, **details: Any) -> dict[str, Any]:
    return {"type": "error", "message": message, **details}


async def _end_removed_session(websocket: WebSocket) -> bool:
    """Tell a client its connection was removed (evicted, for example) and close the socket."""
    logger.info("Closing session of connection no longer registered")
    await websocket.send_json(_error_frame("Connection is no longer registered"))
    await websocket.close(code=CLOSE_GOING_AWAY)
    return False


async def handle_client_message(
    websocket: WebSocket,
    connection_id: str,
    message: dict[str, Any],
    connection_manager: ConnectionManager,
) -> bool:
    """
    Act on one parsed client message.

    Returns:
        False if the session has ended and the receive loop must stop
    """
    message_type = message["type"]

    if message_type in HEARTBEAT_TYPES:
        if not connection_manager.touch(connection_id):
            return await _end_removed_session(websocket)
        await websocket.send_json({"type": "pong"})
        return True

    if message_type in ("join_room", "leave_room"):
        room = message.get("room")
        if not isinstance(room, str) or not room:
            await websocket.send_json(_error_frame("Room name is required", request=message_type))
            return True
        if message_type == "join_room":
            if not connection_manager.add_to_room(room, connection_id):
                return await _end_removed_session(websocket)
            await websocket.send_json({"type": "joined_room", "room": room})
        else:
            connection_manager.remove_from_room(room, connection_id)
            await websocket.send_json({"type": "left_room", "room": room})
        logger.info("Client changed room membership", action=message_type, room=room)
        return True

    logger.debug("Ignoring unsupported client message", message_type=message_type)
    await websocket.send_json(_error_frame(f"Unsupported message type: {message_type}"))
    return True


async def _handle_message_loop(
    websocket: WebSocket,
    connection_id: str,
    connection_manager: ConnectionManager,
) -> None:
    while True:
        try:
            data = await websocket.receive_text()
        except WebSocketDisconnect as e:
            logger.info("WebSocket disconnected", code=e.code)
            break

        try:
            message = parse_client_message(data)
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            logger.warning("Invalid client message", error=str(e))
            await websocket.send_json(_error_frame("Invalid message format"))
            continue

        if not await handle_client_message(websocket, connection_id, message, connection_manager):
            break


async def handle_websocket_connection(
    websocket: WebSocket,
    user_id: str,
    role: str,
    connection_manager: ConnectionManager,
    connection_id: str | None = None,
) -> None:
    """
    Serve one accepted, authenticated WebSocket until it disconnects.

    Args:
        websocket: Accepted WebSocket
        user_id: Authenticated principal
        role: Role of the principal
        connection_manager: ConnectionManager instance (injected from endpoint)
        connection_id: Transport session id; generated if omitted
    """
    connection_id = connection_id or generate_connection_id()

    try:
        connection_manager.register(connection_id, user_id, role)
    except ConnectionLimitExceeded as e:
        await websocket.send_json(_error_frame(e.message))
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER)
        return
    except DuplicateConnection as e:
        await websocket.send_json(_error_frame(e.message))
        await websocket.close(code=CLOSE_POLICY_VIOLATION)
        return

    transport = connection_manager.transport
    if isinstance(transport, WebSocketTransport):
        transport.attach(connection_id, websocket)

    bind_connection_context(connection_id, user_id=user_id, role=role)
    try:
        await websocket.send_json(
            {
                "type": "connected",
                "connection_id": connection_id,
                "heartbeat_interval": connection_manager.config.heartbeat_interval,
                "rooms": connection_manager.rooms.rooms_for(connection_id),
            }
        )
        await _handle_message_loop(websocket, connection_id, connection_manager)
    except (WebSocketDisconnect, RuntimeError) as e:
        # Starlette raises these when the socket is written to after it closed
        logger.warning("WebSocket connection lost", error=str(e))
    finally:
        if isinstance(transport, WebSocketTransport):
            transport.detach(connection_id)
        connection_manager.unregister(connection_id)
        clear_connection_context()
