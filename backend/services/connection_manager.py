# backend/services/connection_manager.py

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Set
import logging
import uuid

logger = logging.getLogger(__name__)


class Role(str, Enum):
    CONTROL = "control"
    DISPLAY = "display"


def normalize_role(value: object, default: Role = Role.DISPLAY) -> Role:
    """Anything that is not exactly "control" (case-insensitive) is a display."""
    if value is None:
        return default
    return Role.CONTROL if str(value).strip().lower() == "control" else Role.DISPLAY


# ============================================================================
# CONNECTION
# ============================================================================

class Connection:
    """
    One open transport (normally a FastAPI ``WebSocket``).

    Hashes by identity so it can live in sets. ``room_id`` and ``role`` are
    owned by the ConnectionManager; don't assign them from outside.
    """

    def __init__(self, websocket: Any, connection_id: Optional[str] = None) -> None:
        self.websocket = websocket
        self.id = connection_id or uuid.uuid4().hex[:8]
        self.role: Role = Role.DISPLAY
        self.room_id: Optional[str] = None

    @property
    def is_control(self) -> bool:
        return self.role is Role.CONTROL

    async def send_text(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close(self, code: int = 1011) -> None:
        """Close the transport so its receive loop ends too. Errors on an already dead socket are ignored."""
        try:
            await self.websocket.close(code=code)
        except Exception as e:
            logger.debug("Close of %s failed: %s", self.id, e)

    def __repr__(self) -> str:
        return f"<Connection {self.id} role={self.role.value} room={self.room_id}>"


# ============================================================================
# CONNECTION MEMBERSHIP MANAGER
# ============================================================================

class ConnectionManager:
    """
    Tracks which open connections are in which room, and in which role.

    Data Structures:
        rooms: Maps room_id -> Set of connections in that room
               Example: {"DEMO": {conn1, conn2}}

        connections: Every open connection -> the room it is in (or None)
                     Example: {conn1: "DEMO", conn3: None}

    A connection is in at most one room. Switching rooms is a single
    synchronous step (detach + attach + update both maps), so nothing
    can observe a connection in two rooms or in a half-updated state.
    """

    def __init__(self) -> None:
        # Map: room_id -> Set[connections]
        self.rooms: Dict[str, Set[Connection]] = {}

        # Map: connection -> room_id it is attached to
        self.connections: Dict[Connection, Optional[str]] = {}

    def connect(self, connection: Connection) -> None:
        """Register a freshly opened transport. It starts in no room."""
        self.connections[connection] = None
        logger.info("✓ Connection %s opened. Total: %d", connection.id, len(self.connections))

    def join(self, connection: Connection, room_id: str, role: Optional[Role] = None) -> str:
        """
        Move ``connection`` into ``room_id`` (already normalized), optionally
        changing its role. Joining the room it is already in only updates the role.
        """
        if connection not in self.connections:
            # Connection already closed
            return room_id

        if role is not None:
            connection.role = role

        previous = self.connections.get(connection)
        if previous == room_id:
            return room_id

        self._detach(connection)
        self.rooms.setdefault(room_id, set()).add(connection)
        self.connections[connection] = room_id
        connection.room_id = room_id

        logger.info(
            "→ %s joined %s as %s (%d members)",
            connection.id,
            room_id,
            connection.role.value,
            len(self.rooms[room_id]),
        )
        return room_id

    def leave(self, connection: Connection) -> Optional[str]:
        """Detach from the current room but keep the transport registered."""
        if connection not in self.connections:
            return None
        room_id = self._detach(connection)
        if room_id:
            logger.info("← %s left %s", connection.id, room_id)
        return room_id

    def disconnect(self, connection: Connection) -> None:
        """
        Forget a closed transport. Safe to call any number of times.

        Room state is not touched; the room simply loses a member.
        """
        if connection not in self.connections:
            return
        self._detach(connection)
        del self.connections[connection]
        logger.info("✗ Connection %s closed. Total: %d", connection.id, len(self.connections))

    def _detach(self, connection: Connection) -> Optional[str]:
        room_id = self.connections.get(connection)
        if room_id is not None:
            members = self.rooms.get(room_id)
            if members is not None:
                members.discard(connection)
                # Clean up empty rooms from the index
                if not members:
                    del self.rooms[room_id]
        if connection in self.connections:
            self.connections[connection] = None
        connection.room_id = None
        return room_id

    def members(self, room_id: str) -> List[Connection]:
        """Copy of the room's members, safe to iterate while sending."""
        return list(self.rooms.get(room_id, ()))

    def member_count(self, room_id: str) -> int:
        return len(self.rooms.get(room_id, ()))

    def occupied_rooms(self) -> List[str]:
        return list(self.rooms.keys())

    def role_counts(self, room_id: str) -> Dict[str, int]:
        counts = {Role.CONTROL.value: 0, Role.DISPLAY.value: 0}
        for connection in self.rooms.get(room_id, ()):
            counts[connection.role.value] += 1
        return counts
