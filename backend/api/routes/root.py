# backend/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the service and where to connect.
    """
    return {
        "message": "Shared Countdown Timer",
        "version": "1.0",
        "architecture": "server-authoritative deadline + snapshot heartbeat",
        "features": ["rooms", "control_display_roles", "clock_sync_snapshots"],
        "endpoints": {
            "websocket": "/ws?room=<code>&role=<control|display>",
            "rooms": "/rooms",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
