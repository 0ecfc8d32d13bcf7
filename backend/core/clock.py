# backend/core/clock.py

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> int: ...


class SystemClock:
    """
    The server's authoritative clock, in integer epoch milliseconds.

    Every state computation takes an explicit as-of instant, so callers read
    the clock once per logical operation and pass the value down.
    """

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class ManualClock:
    """Clock that only moves when told to. Used to drive the timer deterministically."""

    def __init__(self, start_ms: int = 0) -> None:
        self._now = int(start_ms)

    def now_ms(self) -> int:
        return self._now

    def set(self, at_ms: int) -> None:
        self._now = int(at_ms)

    def advance(self, delta_ms: int) -> int:
        self._now += int(delta_ms)
        return self._now
