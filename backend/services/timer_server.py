# backend/services/timer_server.py

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional

from pydantic import ValidationError

from core.clock import Clock, SystemClock
from core.config import settings
from models.models import AdjustTimePayload, ClientMessage, JoinPayload, SetDurationPayload, StartPayload
from services.broadcaster import SnapshotBroadcaster
from services.connection_manager import Connection, ConnectionManager, normalize_role
from services.room_registry import RoomRegistry, normalize_room_id
from services.timer import MUTATING_COMMANDS, apply_command

logger = logging.getLogger(__name__)


class TimerServer:
    """
    The one component that owns rooms, memberships and the broadcaster.

    Protocol:
    =========

    Client -> Server:
        {"type": "join", "payload": {"roomId": "ABC", "role": "control"}}
        {"type": "leave"}
        {"type": "start", "payload": {"durationMs": 180000}}     (durationMs optional)
        {"type": "pause"} / {"type": "resume"} / {"type": "reset"} / {"type": "finish"}
        {"type": "setDuration", "payload": {"durationMs": 120000}}
        {"type": "adjustTime", "payload": {"deltaMs": -30000}}
        {"type": "requestSnapshot"}
        {"type": "setThresholds", ...}                            (accepted, ignored)

    Server -> Client:
        {"type": "snapshot", "payload": {...}}

    Anything malformed, unknown or sent by a display for a mutating command
    is dropped: nothing changes and nothing is sent back. Drops are logged
    and counted so they still show up in /metrics.

    Every mutation is synchronous; the only awaits are sends that happen
    after the new state is installed, so one event loop needs no locks.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        registry: Optional[RoomRegistry] = None,
        connections: Optional[ConnectionManager] = None,
    ) -> None:
        self.clock = clock or SystemClock()
        self.registry = registry or RoomRegistry()
        self.connections = connections or ConnectionManager()
        self.broadcaster = SnapshotBroadcaster(self.registry, self.connections, self.clock)

        # Metrics
        self.messages_received = 0
        self.commands_applied = 0
        self.messages_dropped = 0

        self._tasks: List[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def open_connection(
        self, connection: Connection, room: Optional[str] = None, role: Optional[str] = None
    ) -> str:
        """Register a new transport, bind it to its initial room and send it a snapshot."""
        self.connections.connect(connection)
        room_id = self.attach(connection, room, role)
        await self.broadcaster.send_snapshot(connection, room_id)
        return room_id

    def attach(self, connection: Connection, room: Optional[str], role: Optional[str]) -> str:
        room_id = normalize_room_id(room)
        self.registry.get_or_create(room_id, self.clock.now_ms())
        return self.connections.join(
            connection, room_id, normalize_role(role, default=connection.role)
        )

    def close_connection(self, connection: Connection) -> None:
        self.connections.disconnect(connection)

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def _drop(self, connection: Connection, reason: str, kind: Any = None) -> bool:
        self.messages_dropped += 1
        logger.info("Dropped message from %s (type=%s): %s", connection.id, kind, reason)
        return False

    async def handle_message(self, connection: Connection, raw: str) -> bool:
        """
        Parse, authorize and apply one inbound message.

        Returns:
            True if the message was accepted, False if it was dropped
        """
        self.messages_received += 1

        try:
            message = ClientMessage.model_validate(json.loads(raw))
        except json.JSONDecodeError:
            return self._drop(connection, "invalid JSON")
        except ValidationError:
            return self._drop(connection, "malformed envelope")

        kind = message.type

        if kind == "join":
            try:
                join = JoinPayload.model_validate(message.payload or {})
            except ValidationError:
                return self._drop(connection, "malformed payload", kind)
            room_id = self.attach(connection, join.room_id, join.role)
            await self.broadcaster.send_snapshot(connection, room_id)
            return True

        if kind == "leave":
            self.connections.leave(connection)
            return True

        # From here on, everything applies to the connection's current room
        room_id = connection.room_id
        if room_id is None:
            return self._drop(connection, "not in a room", kind)

        if kind == "requestSnapshot":
            await self.broadcaster.send_snapshot(connection, room_id)
            return True

        if kind not in MUTATING_COMMANDS:
            return self._drop(connection, "unknown type", kind)

        if not connection.is_control:
            return self._drop(connection, "not authorized", kind)

        if kind == "setThresholds":
            # Thresholds are fixed server-side; kept so old controllers don't break
            logger.debug("Ignoring setThresholds from %s", connection.id)
            return True

        try:
            value = self._command_value(kind, message.payload)
        except ValidationError:
            return self._drop(connection, "malformed payload", kind)

        if self.apply(room_id, kind, value):
            await self.broadcaster.broadcast(room_id)
        return True

    @staticmethod
    def _command_value(kind: str, payload: Optional[dict]) -> Optional[int]:
        payload = payload or {}
        if kind == "start":
            return StartPayload.model_validate(payload).duration_ms
        if kind == "setDuration":
            return SetDurationPayload.model_validate(payload).duration_ms
        if kind == "adjustTime":
            return AdjustTimePayload.model_validate(payload).delta_ms
        return None

    def apply(self, room_id: str, command: str, value: Optional[int] = None) -> bool:
        """
        Apply a command to a room as of a single clock reading.

        Returns:
            True if the room's state changed (finalization included)
        """
        t = self.clock.now_ms()
        room = self.registry.get_or_create(room_id, t)
        changed = room.replace(apply_command(room.state, command, t, value))
        if changed:
            self.commands_applied += 1
            logger.info(
                "⏱ %s %s -> %s (remaining=%dms)",
                room.room_id,
                command,
                room.status.value,
                room.state.remaining_ms,
            )
        return changed

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    def sweep(self) -> List[str]:
        return self.registry.sweep(self.clock.now_ms(), self.connections.occupied_rooms())

    async def run_heartbeat(self, interval_ms: Optional[int] = None) -> None:
        interval = (interval_ms or settings.HEARTBEAT_INTERVAL_MS) / 1000
        logger.info("✓ Snapshot heartbeat every %.0f ms", interval * 1000)
        while True:
            try:
                await self.broadcaster.heartbeat_tick()
            except Exception:
                logger.exception("Heartbeat tick failed")
            await asyncio.sleep(interval)

    async def run_sweeper(self, interval_ms: Optional[int] = None) -> None:
        interval = (interval_ms or settings.SWEEP_INTERVAL_MS) / 1000
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Room sweep failed")

    def start_background_tasks(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.run_heartbeat()),
            asyncio.create_task(self.run_sweeper()),
        ]

    async def stop_background_tasks(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
