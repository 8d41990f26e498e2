"""
Realtime API endpoints for realtime_hub.

Read-only diagnostics over the connection manager plus the WebSocket
endpoint that feeds accepted sockets into it.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request, WebSocket
from pydantic import BaseModel

from ..realtime.connection_manager import ConnectionManager
from ..realtime.websocket_handler import handle_websocket_connection
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

realtime_router = APIRouter(prefix="/realtime", tags=["realtime"])


class ConnectionStatsResponse(BaseModel):
    """Response model for connection statistics."""

    total_connections: int
    max_connections: int
    connections_by_role: dict[str, int]
    rooms: dict[str, int]
    delivery: dict[str, Any]
    liveness: dict[str, Any]
    timestamp: str


class ActiveConnectionResponse(BaseModel):
    """One registered connection."""

    connection_id: str
    user_id: str
    role: str
    connected_at: str
    last_activity: str
    rooms: list[str]


class ActiveConnectionsResponse(BaseModel):
    """Response model for the active connection list."""

    connections: list[ActiveConnectionResponse]
    count: int


def _resolve_connection_manager(app_state: Any) -> ConnectionManager:
    manager = getattr(app_state, "connection_manager", None)
    if manager is None:
        logger.error("Connection manager requested before startup")
        raise HTTPException(status_code=503, detail="Connection manager is not configured")
    return manager


@realtime_router.get("/stats", response_model=ConnectionStatsResponse)
async def get_connection_stats(request: Request) -> ConnectionStatsResponse:
    """Get connection counts, room sizes and delivery counters."""
    manager = _resolve_connection_manager(request.app.state)
    return ConnectionStatsResponse(**manager.get_connection_stats())


@realtime_router.get("/connections", response_model=ActiveConnectionsResponse)
async def get_active_connections(request: Request) -> ActiveConnectionsResponse:
    """List every registered connection."""
    manager = _resolve_connection_manager(request.app.state)
    connections = [ActiveConnectionResponse(**c) for c in manager.get_active_connections()]
    return ActiveConnectionsResponse(connections=connections, count=len(connections))


@realtime_router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    user_id: str = Query(..., min_length=1),
    role: str = Query("customer", min_length=1),
) -> None:
    """
    WebSocket endpoint for realtime updates.

    Identity arrives already verified by the authenticating proxy in front of
    this service, as the user_id and role query parameters.
    """
    manager = getattr(websocket.app.state, "connection_manager", None)
    await websocket.accept()
    if manager is None:
        logger.error("WebSocket opened before connection manager startup")
        await websocket.close(code=1013)
        return
    await handle_websocket_connection(websocket, user_id, role, manager)
