# backend/models/models.py
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Wire messages are camelCase JSON; Python code uses snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# INBOUND (client -> server)
# ============================================================================

class ClientMessage(WireModel):
    type: str
    payload: Optional[Dict[str, Any]] = None


class JoinPayload(WireModel):
    room_id: Optional[str] = None
    role: Optional[str] = None


class StartPayload(WireModel):
    duration_ms: Optional[int] = None


class SetDurationPayload(WireModel):
    duration_ms: int


class AdjustTimePayload(WireModel):
    delta_ms: int


# ============================================================================
# OUTBOUND (server -> client)
# ============================================================================

class SnapshotPayload(WireModel):
    room_id: str
    status: str
    duration_ms: int
    deadline_ms: Optional[int] = None
    remaining_ms: int
    yellow_at_ms: int
    red_at_ms: int
    server_now: int
    updated_at: int
    # Back-compat mirrors, derived at serialization time only
    elapsed_ms: int
    t0: Optional[int] = None


class SnapshotMessage(WireModel):
    type: Literal["snapshot"] = "snapshot"
    payload: SnapshotPayload


# ============================================================================
# REST
# ============================================================================

class RoomInfo(BaseModel):
    room_id: str
    status: str
    member_count: int
    controllers: int
    displays: int
    updated_at: int


class RoomsResponse(BaseModel):
    rooms: List[RoomInfo]
