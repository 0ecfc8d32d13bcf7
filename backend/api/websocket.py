# backend/api/websocket.py

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core import state
from services.connection_manager import Connection

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket, room: Optional[str] = None, role: Optional[str] = None
):
    """
    WebSocket endpoint for controllers and displays.

    Lifecycle:
    ==========
    1. Client connects with ``room`` and ``role`` query parameters
    2. Connection is attached to that room and receives a snapshot immediately
    3. Client may ``join`` another room / role or ``leave`` at any time
    4. Controllers send timer commands; every member gets the new snapshot
    5. On disconnect the connection is detached; the room itself is untouched

    See ``TimerServer`` for the message catalogue.
    """
    await websocket.accept()

    server = state.timer_server
    connection = Connection(websocket)
    await server.open_connection(connection, room, role)

    try:
        while True:
            data = await websocket.receive_text()
            await server.handle_message(connection, data)

    except WebSocketDisconnect:
        logger.debug("WebSocket %s disconnected", connection.id)
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection.id, e)
    finally:
        server.close_connection(connection)
