import pytest

from services import timer
from services.timer import RoomStatus, apply_command, new_room_state, remaining


@pytest.fixture()
def idle():
    return new_room_state("ABC", t=0)


def test_new_room_defaults(idle):
    assert idle.status is RoomStatus.IDLE
    assert idle.duration_ms == 180_000
    assert idle.remaining_ms == 180_000
    assert idle.deadline_ms is None
    assert idle.updated_at == 0


def test_start_sets_deadline(idle):
    running = timer.start(idle, t=5_000, duration_ms=60_000)
    assert running.status is RoomStatus.RUNNING
    assert running.duration_ms == 60_000
    assert running.deadline_ms == 65_000
    assert remaining(running, 35_000) == 30_000


def test_start_without_duration_uses_current(idle):
    running = timer.start(idle, t=0)
    assert running.duration_ms == 180_000
    assert running.deadline_ms == 180_000


def test_start_clamps_tiny_duration(idle):
    running = timer.start(idle, t=0, duration_ms=10)
    assert running.duration_ms == 1000


def test_concrete_scenario(idle):
    running = apply_command(idle, "start", 0, 180_000)
    assert remaining(running, 150_000) == 30_000

    paused = apply_command(running, "pause", 150_000)
    assert paused.status is RoomStatus.PAUSED
    assert paused.remaining_ms == 30_000
    assert paused.deadline_ms is None

    resumed = apply_command(paused, "resume", 151_000)
    assert resumed.status is RoomStatus.RUNNING
    assert resumed.deadline_ms == 181_000

    finished = timer.finalize_if_elapsed(resumed, 181_000)
    assert finished.status is RoomStatus.FINISHED
    assert finished.remaining_ms == 0
    assert finished.deadline_ms is None
    assert finished.updated_at == 181_000


def test_remaining_never_negative(idle):
    running = timer.start(idle, t=0, duration_ms=5_000)
    assert remaining(running, 999_999) == 0
    assert remaining(timer.finalize_if_elapsed(running, 999_999), 999_999) == 0


def test_pause_when_paused_is_noop(idle):
    paused = timer.pause(timer.start(idle, 0, 60_000), 10_000)
    again = apply_command(paused, "pause", 20_000)
    assert again is paused
    assert again.updated_at == 10_000


def test_resume_when_not_paused_is_noop(idle):
    assert apply_command(idle, "resume", 1_000) is idle


def test_pause_resume_round_trip(idle):
    running = apply_command(idle, "start", 0, 180_000)
    paused = apply_command(running, "pause", 2)
    resumed = apply_command(paused, "resume", 4)
    assert abs(remaining(resumed, 4) - 180_000) <= 5


def test_adjust_after_expiry_counts_from_zero(idle):
    running = apply_command(idle, "start", 0, 10_000)
    adjusted = apply_command(running, "adjustTime", 20_000, 30_000)
    assert adjusted.status is RoomStatus.RUNNING
    assert adjusted.remaining_ms == 30_000
    assert remaining(adjusted, 20_000) == 30_000
    assert adjusted.deadline_ms == 50_000


def test_adjust_after_explicit_finish_stays_finished(idle):
    finished = apply_command(apply_command(idle, "start", 0, 10_000), "finish", 1_000)
    adjusted = apply_command(finished, "adjustTime", 2_000, 30_000)
    assert adjusted.status is RoomStatus.FINISHED
    assert adjusted.remaining_ms == 30_000


def test_adjust_after_earlier_finalize_rearms(idle):
    running = apply_command(idle, "start", 0, 10_000)
    expired = timer.finalize_if_elapsed(running, 10_100)
    assert expired.status is RoomStatus.FINISHED
    assert expired.expired

    adjusted = apply_command(expired, "adjustTime", 25_000, 30_000)
    assert adjusted.status is RoomStatus.RUNNING
    assert adjusted.deadline_ms == 55_000
    assert not adjusted.expired


def test_negative_adjust_after_expiry_stays_finished(idle):
    expired = timer.finalize_if_elapsed(apply_command(idle, "start", 0, 10_000), 10_000)
    adjusted = apply_command(expired, "adjustTime", 12_000, -5_000)
    assert adjusted.status is RoomStatus.FINISHED
    assert adjusted.remaining_ms == 0


def test_reset_and_start_clear_expiry(idle):
    expired = timer.finalize_if_elapsed(apply_command(idle, "start", 0, 10_000), 10_000)
    assert not apply_command(expired, "reset", 11_000).expired
    assert not apply_command(expired, "finish", 11_000).expired
    assert not apply_command(expired, "start", 11_000).expired


def test_adjust_raises_duration(idle):
    running = apply_command(idle, "start", 0, 60_000)
    adjusted = apply_command(running, "adjustTime", 0, 5_000)
    assert adjusted.duration_ms == 65_000
    assert remaining(adjusted, 0) == 65_000


def test_adjust_running_floor(idle):
    running = apply_command(idle, "start", 0, 60_000)
    adjusted = apply_command(running, "adjustTime", 10_000, -120_000)
    assert adjusted.status is RoomStatus.RUNNING
    assert adjusted.deadline_ms == 11_000
    assert remaining(adjusted, 10_000) == 1_000


def test_adjust_paused_clamps_at_zero(idle):
    paused = apply_command(apply_command(idle, "start", 0, 60_000), "pause", 30_000)
    adjusted = apply_command(paused, "adjustTime", 31_000, -90_000)
    assert adjusted.status is RoomStatus.PAUSED
    assert adjusted.remaining_ms == 0
    assert adjusted.deadline_ms is None


def test_set_duration_running_keeps_elapsed(idle):
    running = apply_command(idle, "start", 0, 180_000)
    changed = apply_command(running, "setDuration", 60_000, 120_000)
    assert changed.status is RoomStatus.RUNNING
    assert changed.duration_ms == 120_000
    assert changed.remaining_ms == 60_000
    assert changed.deadline_ms == 120_000


def test_set_duration_idle_clamps_remaining(idle):
    changed = apply_command(idle, "setDuration", 1_000, 60_000)
    assert changed.status is RoomStatus.IDLE
    assert changed.duration_ms == 60_000
    assert changed.remaining_ms == 60_000
    assert changed.deadline_ms is None


def test_set_duration_minimum(idle):
    assert apply_command(idle, "setDuration", 0, 1).duration_ms == 1_000


def test_reset_restores_duration(idle):
    running = apply_command(idle, "start", 0, 90_000)
    reset = apply_command(running, "reset", 45_000)
    assert reset.status is RoomStatus.IDLE
    assert reset.remaining_ms == 90_000
    assert reset.deadline_ms is None


def test_finish_forces_zero(idle):
    finished = apply_command(idle, "finish", 7)
    assert finished.status is RoomStatus.FINISHED
    assert finished.remaining_ms == 0
    assert finished.updated_at == 7


def test_pause_after_expiry_only_finalizes(idle):
    running = apply_command(idle, "start", 0, 10_000)
    result = apply_command(running, "pause", 15_000)
    assert result.status is RoomStatus.FINISHED
    assert result is not running


def test_unknown_command_leaves_state(idle):
    assert apply_command(idle, "setThresholds", 100) is idle


def test_legacy_views(idle):
    running = apply_command(idle, "start", 10_000, 60_000)
    assert timer.started_at(running) == 10_000
    assert timer.elapsed(running, 25_000) == 15_000
    assert timer.started_at(timer.pause(running, 25_000)) is None
