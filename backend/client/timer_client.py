# backend/client/timer_client.py

from __future__ import annotations

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from client.channel import DEFAULT_BACKOFF_S, ChannelStatus, ReconnectingChannel
from client.sync_estimator import SyncEstimator

logger = logging.getLogger(__name__)


class TimerClient:
    """
    A control or display participant: one channel feeding one estimator.

    Usage:
        client = TimerClient("ws://localhost:3000/ws", room="DEMO", role="control")
        client.connect()
        await client.start(180_000)
        client.render()   # {"text": "02:59", "phase": "green", ...}
    """

    def __init__(
        self,
        base_url: str,
        room: Optional[str] = None,
        role: str = "display",
        monotonic: Callable[[], float] = time.monotonic,
        backoff_s: float = DEFAULT_BACKOFF_S,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
    ) -> None:
        self.room = room
        self.role = role
        self.estimator = SyncEstimator(monotonic=monotonic, room_id=room)
        self.channel = ReconnectingChannel(
            base_url,
            on_message=self.estimator.handle_message,
            on_status=self._on_status,
            backoff_s=backoff_s,
            connect=connect,
        )

    def _on_status(self, status: ChannelStatus) -> None:
        if status is ChannelStatus.RECONNECTING:
            logger.info("Reconnecting to room %s…", self.room)

    @property
    def status(self) -> ChannelStatus:
        return self.channel.status

    def connect(self) -> int:
        return self.channel.open(self.room, self.role)

    async def close(self) -> None:
        await self.channel.close()

    async def join(self, room: str, role: Optional[str] = None) -> None:
        """
        Switch room (and optionally role) without dropping the transport.

        Falls back to a fresh connection when there is no live one.
        """
        self.room = room.upper()
        if role:
            self.role = role
        self.estimator.expect_room(self.room)

        if self.channel.connected:
            self.channel.retarget(self.room, self.role)
            await self.channel.send("join", {"roomId": self.room, "role": self.role})
        else:
            self.channel.open(self.room, self.role)

    async def leave(self) -> bool:
        return await self.channel.send("leave")

    # ------------------------------------------------------------------
    # Commands (only a control connection's commands take effect)
    # ------------------------------------------------------------------

    async def start(self, duration_ms: Optional[int] = None) -> bool:
        payload: Dict[str, Any] = {}
        if duration_ms is not None:
            payload["durationMs"] = duration_ms
        return await self.channel.send("start", payload)

    async def pause(self) -> bool:
        return await self.channel.send("pause")

    async def resume(self) -> bool:
        return await self.channel.send("resume")

    async def reset(self) -> bool:
        return await self.channel.send("reset")

    async def finish(self) -> bool:
        return await self.channel.send("finish")

    async def set_duration(self, duration_ms: int) -> bool:
        return await self.channel.send("setDuration", {"durationMs": duration_ms})

    async def adjust_time(self, delta_ms: int) -> bool:
        return await self.channel.send("adjustTime", {"deltaMs": delta_ms})

    async def request_snapshot(self) -> bool:
        return await self.channel.send("requestSnapshot")

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def render(self, now_local_ms: Optional[float] = None) -> Dict[str, Any]:
        remaining = self.estimator.live_remaining_ms(now_local_ms)
        return {
            "room": self.room,
            "status": self.estimator.status,
            "connection": self.channel.status.value,
            "remaining_ms": remaining,
            "text": self.estimator.display(now_local_ms),
            "phase": self.estimator.phase(now_local_ms),
        }
