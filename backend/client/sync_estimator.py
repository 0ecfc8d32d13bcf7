# backend/client/sync_estimator.py
"""
Client-side countdown estimation.

A snapshot says "as of serverNow, this much time is left". The client turns
that into a base value once, at receipt, and from then on only subtracts
deltas of its *own* monotonic clock. Server and client wall clocks are never
compared, so clock offset between machines drops out entirely.
"""

from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Callable, Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_YELLOW_AT_MS = 60_000
DEFAULT_RED_AT_MS = 30_000
DEFAULT_DURATION_MS = 180_000

PHASE_GREEN = "green"
PHASE_YELLOW = "yellow"
PHASE_RED = "red"


def compute_phase(
    remaining_ms: float,
    yellow_at_ms: int = DEFAULT_YELLOW_AT_MS,
    red_at_ms: int = DEFAULT_RED_AT_MS,
) -> str:
    """Color phase for a remaining time. Zero and below is red."""
    if remaining_ms <= 0 or remaining_ms <= red_at_ms:
        return PHASE_RED
    if remaining_ms <= yellow_at_ms:
        return PHASE_YELLOW
    return PHASE_GREEN


def format_clock(ms: float) -> str:
    """MM:SS, floored to whole seconds so every screen shows the same digits."""
    seconds = int(max(0, abs(ms)) // 1000)
    minutes, rest = divmod(seconds, 60)
    return f"{minutes:02d}:{rest:02d}"


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


class SyncEstimator:
    """
    Live remaining time between snapshots.

    Args:
        monotonic: Local monotonic clock in seconds (``time.monotonic`` by default)
        room_id: Only accept snapshots for this room when set
    """

    def __init__(
        self,
        monotonic: Callable[[], float] = time.monotonic,
        room_id: Optional[str] = None,
    ) -> None:
        self._monotonic = monotonic
        self.room_id: Optional[str] = None
        self.expect_room(room_id)

        self.status = "idle"
        self.duration_ms: float = DEFAULT_DURATION_MS
        self.yellow_at_ms: int = DEFAULT_YELLOW_AT_MS
        self.red_at_ms: int = DEFAULT_RED_AT_MS

        # Anchor: remaining time at receipt, and the local clock at receipt
        self.base_remaining_ms: float = DEFAULT_DURATION_MS
        self.received_at_ms: float = self._local_ms()
        self.snapshots_applied = 0

    def _local_ms(self) -> float:
        return self._monotonic() * 1000

    def expect_room(self, room_id: Optional[str]) -> None:
        """Ignore snapshots from any other room (e.g. heartbeats still in flight after a join)."""
        self.room_id = room_id.upper() if room_id else None

    def apply_snapshot(self, payload: Dict[str, Any], received_at_ms: Optional[float] = None) -> bool:
        """
        Re-anchor on a snapshot payload.

        ``baseRemaining`` is ``deadlineMs - serverNow`` while running and
        ``remainingMs`` otherwise; the local clock is read here and only here.
        """
        room_id = payload.get("roomId")
        if self.room_id and room_id and str(room_id).upper() != self.room_id:
            return False

        status = payload.get("status")
        if not isinstance(status, str):
            return False

        received = self._local_ms() if received_at_ms is None else received_at_ms
        deadline = _number(payload.get("deadlineMs"))
        server_now = _number(payload.get("serverNow"))
        remaining = _number(payload.get("remainingMs"))

        if status == "running" and deadline is not None and server_now is not None:
            base = deadline - server_now
        else:
            base = remaining if remaining is not None else 0

        self.status = status
        self.base_remaining_ms = max(0.0, base)
        self.received_at_ms = received

        duration = _number(payload.get("durationMs"))
        if duration is not None:
            self.duration_ms = duration
        yellow = _number(payload.get("yellowAtMs"))
        if yellow is not None:
            self.yellow_at_ms = int(yellow)
        red = _number(payload.get("redAtMs"))
        if red is not None:
            self.red_at_ms = int(red)

        self.snapshots_applied += 1
        return True

    def handle_message(self, raw: Union[str, bytes, Dict[str, Any]]) -> bool:
        """Feed one raw server message; anything that is not a snapshot is ignored."""
        if isinstance(raw, dict):
            message = raw
        else:
            try:
                message = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("Non-JSON message ignored")
                return False

        if not isinstance(message, dict) or message.get("type") != "snapshot":
            return False
        payload = message.get("payload")
        if not isinstance(payload, dict):
            return False
        return self.apply_snapshot(payload)

    def live_remaining_ms(self, now_local_ms: Optional[float] = None) -> float:
        if self.status != "running":
            return max(0.0, self.base_remaining_ms)
        now = self._local_ms() if now_local_ms is None else now_local_ms
        return max(0.0, self.base_remaining_ms - (now - self.received_at_ms))

    def phase(self, now_local_ms: Optional[float] = None) -> str:
        return compute_phase(self.live_remaining_ms(now_local_ms), self.yellow_at_ms, self.red_at_ms)

    def display(self, now_local_ms: Optional[float] = None) -> str:
        return format_clock(self.live_remaining_ms(now_local_ms))
