# backend/api/routes/rooms.py

from fastapi import APIRouter, HTTPException

from core import state
from models.models import RoomInfo, RoomsResponse
from services.broadcaster import build_snapshot
from services.room_registry import normalize_room_id
from services.timer import finalize_if_elapsed

router = APIRouter()

# ============================================================================
# ROOM READ ENDPOINTS
# ============================================================================

@router.get("/rooms", response_model=RoomsResponse)
async def list_rooms():
    """
    List every room this process currently hosts.

    Returns room status with live member counts split by role.
    """
    server = state.timer_server
    rooms = []
    for room in server.registry.list_rooms():
        counts = server.connections.role_counts(room.room_id)
        rooms.append(
            RoomInfo(
                room_id=room.room_id,
                status=room.status.value,
                member_count=server.connections.member_count(room.room_id),
                controllers=counts["control"],
                displays=counts["display"],
                updated_at=room.state.updated_at,
            )
        )
    return RoomsResponse(rooms=rooms)


@router.get("/rooms/{room_id}")
async def get_room(room_id: str):
    """
    Current snapshot payload of a room, same shape as the websocket snapshot.

    Reading a room never creates it and never mutates it (an elapsed running
    room is reported as finished without being written back).

    Raises:
        HTTPException: 404 if room not found
    """
    server = state.timer_server
    room = server.registry.get(room_id)
    if not room:
        raise HTTPException(status_code=404, detail=f"Room {normalize_room_id(room_id)} not found")

    t = server.clock.now_ms()
    snapshot = build_snapshot(finalize_if_elapsed(room.state, t), t)
    return snapshot.payload.model_dump(by_alias=True)
