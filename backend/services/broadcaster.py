# backend/services/broadcaster.py

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Optional

from core.clock import Clock, SystemClock
from models.models import SnapshotMessage, SnapshotPayload
from services.connection_manager import Connection, ConnectionManager
from services.room_registry import Room, RoomRegistry
from services.timer import (
    RED_AT_MS,
    YELLOW_AT_MS,
    RoomState,
    RoomStatus,
    elapsed,
    finalize_if_elapsed,
    remaining,
    started_at,
)

logger = logging.getLogger(__name__)


# ============================================================================
# WIRE SERIALIZATION
# ============================================================================

def build_snapshot(state: RoomState, server_now: int) -> SnapshotMessage:
    """
    Wire form of a room as of ``server_now``.

    ``remainingMs`` is evaluated at ``server_now``. ``elapsedMs`` and ``t0``
    are the legacy start/elapsed view, derived here and nowhere else.
    """
    return SnapshotMessage(
        payload=SnapshotPayload(
            room_id=state.room_id,
            status=state.status.value,
            duration_ms=state.duration_ms,
            deadline_ms=state.deadline_ms if state.status is RoomStatus.RUNNING else None,
            remaining_ms=remaining(state, server_now),
            yellow_at_ms=YELLOW_AT_MS,
            red_at_ms=RED_AT_MS,
            server_now=server_now,
            updated_at=state.updated_at,
            elapsed_ms=elapsed(state, server_now),
            t0=started_at(state),
        )
    )


def serialize_snapshot(state: RoomState, server_now: int) -> str:
    return build_snapshot(state, server_now).model_dump_json(by_alias=True)


# ============================================================================
# SNAPSHOT BROADCASTER
# ============================================================================

class SnapshotBroadcaster:
    """
    Pushes room snapshots to connections.

    Two triggers:
        - Event driven: ``broadcast`` after a command changed a room, and
          ``send_snapshot`` for a single requester (connect, join, requestSnapshot)
        - Heartbeat: ``heartbeat_tick`` re-sends every active room with a fresh
          ``serverNow`` so displays stay converged between commands

    Every path finalizes an elapsed room first, so a snapshot never shows a
    running room with no time left.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        connections: ConnectionManager,
        clock: Optional[Clock] = None,
    ) -> None:
        self.registry = registry
        self.connections = connections
        self.clock = clock or SystemClock()
        self.snapshots_sent = 0

    def _message_for(self, room: Room, t: int) -> str:
        room.replace(finalize_if_elapsed(room.state, t))

        # Build once per room per tick timestamp
        if room.last_message is not None and room.last_message_at == t:
            return room.last_message

        message = serialize_snapshot(room.state, t)
        room.last_message = message
        room.last_message_at = t
        return message

    async def _send(self, connection: Connection, message: str) -> bool:
        try:
            await connection.send_text(message)
        except Exception as e:
            logger.warning("Send to %s failed, closing: %s", connection.id, e)
            # A detached socket that stays open would never hear from any room again
            self.connections.disconnect(connection)
            await connection.close()
            return False
        self.snapshots_sent += 1
        return True

    async def _fan_out(self, members: Iterable[Connection], message: str) -> int:
        results = await asyncio.gather(*(self._send(conn, message) for conn in members))
        return sum(1 for ok in results if ok)

    async def send_snapshot(self, connection: Connection, room_id: str) -> bool:
        """Send the room's current snapshot to one connection only."""
        room = self.registry.get(room_id)
        if room is None:
            return False
        message = self._message_for(room, self.clock.now_ms())
        return await self._send(connection, message)

    async def broadcast(self, room_id: str) -> int:
        """
        Send the room's current snapshot to every member.

        Returns:
            Number of connections the snapshot was delivered to
        """
        room = self.registry.get(room_id)
        if room is None:
            return 0
        members = self.connections.members(room.room_id)
        if not members:
            return 0
        message = self._message_for(room, self.clock.now_ms())
        return await self._fan_out(members, message)

    async def heartbeat_tick(self, t: Optional[int] = None) -> int:
        """
        One heartbeat: refresh every occupied, non-idle room.

        Returns:
            Number of rooms that received a snapshot this tick
        """
        t = self.clock.now_ms() if t is None else t
        sends = []
        for room_id in self.connections.occupied_rooms():
            room = self.registry.get(room_id)
            if room is None or room.status is RoomStatus.IDLE:
                continue
            message = self._message_for(room, t)
            sends.append(self._fan_out(self.connections.members(room_id), message))

        if sends:
            await asyncio.gather(*sends)
        return len(sends)
