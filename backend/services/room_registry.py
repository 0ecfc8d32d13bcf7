# backend/services/room_registry.py

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

from core.config import settings
from services.timer import RoomState, RoomStatus, new_room_state

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def normalize_room_id(value: object, default: Optional[str] = None) -> str:
    """
    Canonical room code: uppercase alphanumerics, truncated to the max length.

    Anything that normalizes to an empty string maps to the default room.
    """
    raw = "" if value is None else str(value)
    room_id = _NON_ALNUM.sub("", raw.upper())[: settings.ROOM_ID_MAX_LENGTH]
    return room_id or (default or settings.DEFAULT_ROOM_ID)


# ============================================================================
# ROOM
# ============================================================================

class Room:
    """
    A room's authoritative state plus its per-tick snapshot cache.

    ``state`` is replaced wholesale on every transition; nothing mutates
    a ``RoomState`` in place.
    """

    def __init__(self, state: RoomState) -> None:
        self.state = state
        self.last_message: Optional[str] = None
        self.last_message_at: Optional[int] = None

    @property
    def room_id(self) -> str:
        return self.state.room_id

    @property
    def status(self) -> RoomStatus:
        return self.state.status

    def replace(self, new_state: RoomState) -> bool:
        """Install ``new_state``; returns True when it differs from the current one."""
        if new_state is self.state:
            return False
        self.state = new_state
        self.last_message = None
        self.last_message_at = None
        return True


# ============================================================================
# ROOM REGISTRY
# ============================================================================

class RoomRegistry:
    """
    Owns every room hosted by this process.

    Rooms are created on first reference and only removed by ``sweep`` once
    nobody is in them and they have not changed for ``ttl_ms``. Nothing is
    persisted; an evicted room is simply gone.

    Attributes:
        rooms: Dictionary mapping normalized room code -> Room
    """

    def __init__(self, ttl_ms: Optional[int] = None) -> None:
        self.rooms: Dict[str, Room] = {}
        self.ttl_ms = settings.ROOM_TTL_MS if ttl_ms is None else ttl_ms

    def get_or_create(self, room_id: str, t: int) -> Room:
        room_id = normalize_room_id(room_id)
        room = self.rooms.get(room_id)
        if room is None:
            room = Room(new_room_state(room_id, t))
            self.rooms[room_id] = room
            logger.info("✓ Created room %s (total: %d)", room_id, len(self.rooms))
        return room

    def get(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(normalize_room_id(room_id))

    def list_rooms(self) -> List[Room]:
        return list(self.rooms.values())

    def sweep(self, t: int, occupied: Iterable[str]) -> List[str]:
        """
        Evict rooms that are empty and idle for longer than the TTL.

        Args:
            t: As-of instant (epoch ms)
            occupied: Room codes with at least one attached connection

        Returns:
            The evicted room codes
        """
        occupied_ids = set(occupied)
        evicted = [
            room_id
            for room_id, room in self.rooms.items()
            if room_id not in occupied_ids and t - room.state.updated_at > self.ttl_ms
        ]
        for room_id in evicted:
            del self.rooms[room_id]

        if evicted:
            logger.info("✗ Evicted %d idle room(s): %s", len(evicted), ", ".join(evicted))
        return evicted
