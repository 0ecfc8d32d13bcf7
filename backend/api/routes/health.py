# backend/api/routes/health.py

from fastapi import APIRouter

from core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, connection counts, and room counts.

    Returns:
        dict: Status, connection count, room count, active room count
    """
    server = state.timer_server
    return {
        "status": "healthy",
        "connections": len(server.connections.connections),
        "rooms": len(server.registry.rooms),
        "active_rooms_with_members": len(server.connections.rooms),
    }
