# backend/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from services.timer_server import TimerServer

# The process-wide timer server (owns rooms, memberships and the broadcaster)
timer_server = TimerServer()

app_start_time: datetime = datetime.now(timezone.utc)
