# backend/services/timer.py
"""
Room timer state machine.

Every function here is pure: it takes a ``RoomState`` plus the as-of instant
``t`` (epoch ms) and returns a ``RoomState``. When a command has no effect the
*same* object is returned, so callers detect a mutation with ``new is not old``.

States:
    idle -> running <-> paused
    running -> finished   (only by time passing, see ``finalize_if_elapsed``)
    any -> finished       (explicit ``finish``)
    any -> idle           (explicit ``reset``)
    finished -> running   (positive ``adjustTime`` after time ran out)

While running, ``deadline_ms`` is the only source of truth for time left.
In every other status ``remaining_ms`` is.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from core.config import settings

# ============================================================================
# CONSTANTS
# ============================================================================

# Presentation thresholds sent with every snapshot. Fixed, not per room.
YELLOW_AT_MS = 60_000
RED_AT_MS = 30_000

# A running deadline is never pulled closer than this by adjustTime
MIN_RUNNING_REMAINING_MS = 1000

MUTATING_COMMANDS = frozenset(
    {
        "start",
        "pause",
        "resume",
        "reset",
        "setDuration",
        "adjustTime",
        "finish",
        "setThresholds",
    }
)


class RoomStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"


class RoomState(BaseModel):
    """Authoritative timer state for one room. Immutable; transitions copy it."""

    model_config = ConfigDict(frozen=True)

    room_id: str
    status: RoomStatus = RoomStatus.IDLE
    duration_ms: int
    deadline_ms: Optional[int] = None
    remaining_ms: int
    updated_at: int
    # Set when time ran out (not by an explicit finish); a later +adjustTime re-arms
    expired: bool = False


def new_room_state(room_id: str, t: int, duration_ms: Optional[int] = None) -> RoomState:
    duration = max(settings.MIN_DURATION_MS, duration_ms or settings.DEFAULT_DURATION_MS)
    return RoomState(
        room_id=room_id,
        duration_ms=duration,
        remaining_ms=duration,
        updated_at=t,
    )


def _clamp_duration(duration_ms: int) -> int:
    return max(settings.MIN_DURATION_MS, int(duration_ms))


# ============================================================================
# DERIVED VALUES
# ============================================================================

def remaining(state: RoomState, t: int) -> int:
    """Time left as of ``t``. Never negative."""
    if state.status is RoomStatus.RUNNING and state.deadline_ms is not None:
        return max(0, state.deadline_ms - t)
    return max(0, state.remaining_ms)


def elapsed(state: RoomState, t: int) -> int:
    return max(0, state.duration_ms - remaining(state, t))


def started_at(state: RoomState) -> Optional[int]:
    """Start instant of the current run, only meaningful while running."""
    if state.status is RoomStatus.RUNNING and state.deadline_ms is not None:
        return state.deadline_ms - state.duration_ms
    return None


# ============================================================================
# TRANSITIONS
# ============================================================================

def finalize_if_elapsed(state: RoomState, t: int) -> RoomState:
    """Flip a running room whose deadline has passed to ``finished``."""
    if state.status is not RoomStatus.RUNNING:
        return state
    if remaining(state, t) > 0:
        return state
    return state.model_copy(
        update={
            "status": RoomStatus.FINISHED,
            "deadline_ms": None,
            "remaining_ms": 0,
            "updated_at": t,
            "expired": True,
        }
    )


def start(state: RoomState, t: int, duration_ms: Optional[int] = None) -> RoomState:
    duration = _clamp_duration(state.duration_ms if duration_ms is None else duration_ms)
    return state.model_copy(
        update={
            "status": RoomStatus.RUNNING,
            "duration_ms": duration,
            "remaining_ms": duration,
            "deadline_ms": t + duration,
            "updated_at": t,
            "expired": False,
        }
    )


def pause(state: RoomState, t: int) -> RoomState:
    if state.status is not RoomStatus.RUNNING:
        return state
    return state.model_copy(
        update={
            "status": RoomStatus.PAUSED,
            "remaining_ms": remaining(state, t),
            "deadline_ms": None,
            "updated_at": t,
        }
    )


def resume(state: RoomState, t: int) -> RoomState:
    if state.status is not RoomStatus.PAUSED:
        return state
    rem = max(0, state.remaining_ms)
    return state.model_copy(
        update={
            "status": RoomStatus.RUNNING,
            "remaining_ms": rem,
            "deadline_ms": t + rem,
            "updated_at": t,
        }
    )


def reset(state: RoomState, t: int) -> RoomState:
    return state.model_copy(
        update={
            "status": RoomStatus.IDLE,
            "remaining_ms": max(0, state.duration_ms),
            "deadline_ms": None,
            "updated_at": t,
            "expired": False,
        }
    )


def set_duration(state: RoomState, t: int, duration_ms: int) -> RoomState:
    """Change the duration while keeping the time already spent."""
    new_duration = _clamp_duration(duration_ms)
    old_duration = _clamp_duration(state.duration_ms)
    current = remaining(state, t)
    spent = max(0, old_duration - current)

    if state.status is RoomStatus.RUNNING:
        new_remaining = max(0, new_duration - spent)
        deadline = t + new_remaining
    else:
        new_remaining = max(0, min(current, new_duration))
        deadline = None

    return state.model_copy(
        update={
            "duration_ms": new_duration,
            "remaining_ms": new_remaining,
            "deadline_ms": deadline,
            "updated_at": t,
        }
    )


def adjust_time(state: RoomState, t: int, delta_ms: int) -> RoomState:
    """
    Shift time left by ``delta_ms`` (signed).

    The recorded duration is the high-water mark of remaining time, so an
    addition that overshoots it raises the duration instead of being clamped.
    """
    delta = int(delta_ms)

    if state.status is RoomStatus.RUNNING and state.deadline_ms is not None:
        deadline = max(t + MIN_RUNNING_REMAINING_MS, state.deadline_ms + delta)
        new_remaining = deadline - t
    else:
        deadline = None
        new_remaining = max(0, state.remaining_ms + delta)

    return state.model_copy(
        update={
            "duration_ms": max(state.duration_ms, new_remaining),
            "remaining_ms": new_remaining,
            "deadline_ms": deadline,
            "updated_at": t,
        }
    )


def finish(state: RoomState, t: int) -> RoomState:
    return state.model_copy(
        update={
            "status": RoomStatus.FINISHED,
            "remaining_ms": 0,
            "deadline_ms": None,
            "updated_at": t,
            "expired": False,
        }
    )


def _rearm_after_expiry(state: RoomState, t: int, delta_ms: int) -> RoomState:
    # Time ran out, on an earlier tick or on this command: count down from a fresh zero
    new_remaining = max(MIN_RUNNING_REMAINING_MS, int(delta_ms))
    return state.model_copy(
        update={
            "status": RoomStatus.RUNNING,
            "duration_ms": max(state.duration_ms, new_remaining),
            "remaining_ms": new_remaining,
            "deadline_ms": t + new_remaining,
            "updated_at": t,
            "expired": False,
        }
    )


def apply_command(
    state: RoomState, command: str, t: int, value: Optional[int] = None
) -> RoomState:
    """
    Finalize-on-elapse, then apply ``command`` as of ``t``.

    ``value`` carries the single numeric argument some commands take
    (``durationMs`` for start/setDuration, ``deltaMs`` for adjustTime).
    Unknown commands and ``setThresholds`` leave the (finalized) state alone.
    """
    finalized = finalize_if_elapsed(state, t)

    if command == "start":
        return start(finalized, t, value)
    if command == "pause":
        return pause(finalized, t)
    if command == "resume":
        return resume(finalized, t)
    if command == "reset":
        return reset(finalized, t)
    if command == "setDuration" and value is not None:
        return set_duration(finalized, t, value)
    if command == "adjustTime" and value is not None:
        if finalized.expired and finalized.status is RoomStatus.FINISHED and value > 0:
            return _rearm_after_expiry(finalized, t, value)
        return adjust_time(finalized, t, value)
    if command == "finish":
        return finish(finalized, t)
    return finalized
