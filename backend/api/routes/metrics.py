# backend/api/routes/metrics.py
from fastapi import APIRouter
from datetime import datetime, timezone

from core import state

router = APIRouter()

@router.get("/metrics")
async def get_metrics():
    """
    Traffic counters for the timer server.

    Dropped messages never produce a reply on the socket, so this is where
    malformed, unknown and unauthorized traffic becomes visible.

    Example Response:
        {
            "uptime_hours": 1.5,
            "messages_received": 420,
            "commands_applied": 37,
            "messages_dropped": 2,
            "snapshots_sent": 51234,
            "snapshots_per_second": 9.49,
            "concurrent_connections": 6,
            "total_rooms": 2,
            "active_rooms_with_members": 1
        }
    """
    server = state.timer_server
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()

    if uptime_seconds > 0:
        snapshots_per_second = server.broadcaster.snapshots_sent / uptime_seconds
    else:
        snapshots_per_second = 0

    return {
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,

        # Inbound
        "messages_received": server.messages_received,
        "commands_applied": server.commands_applied,
        "messages_dropped": server.messages_dropped,

        # Outbound
        "snapshots_sent": server.broadcaster.snapshots_sent,
        "snapshots_per_second": round(snapshots_per_second, 2),

        # Capacity
        "concurrent_connections": len(server.connections.connections),
        "total_rooms": len(server.registry.rooms),
        "active_rooms_with_members": len(server.connections.rooms),
    }
