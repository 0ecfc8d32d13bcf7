import pytest

from services.room_registry import RoomRegistry, normalize_room_id
from services.timer import RoomStatus, start


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("abc", "ABC"),
        ("  ab-c d ", "ABCD"),
        ("abcdefghijkl", "ABCDEFGH"),
        ("", "DEMO"),
        (None, "DEMO"),
        ("!!!", "DEMO"),
    ],
)
def test_normalize_room_id(raw, expected):
    assert normalize_room_id(raw) == expected


def test_get_or_create_is_lazy_and_case_insensitive():
    registry = RoomRegistry()
    assert registry.get("abc") is None

    room = registry.get_or_create("abc", t=10)
    assert room.room_id == "ABC"
    assert room.status is RoomStatus.IDLE
    assert registry.get_or_create("ABC", t=99) is room
    assert room.state.updated_at == 10


def test_registries_are_independent():
    first, second = RoomRegistry(), RoomRegistry()
    first.get_or_create("ONE", t=0)
    assert second.get("ONE") is None
    assert len(second.rooms) == 0


def test_sweep_evicts_only_empty_stale_rooms():
    registry = RoomRegistry(ttl_ms=1_000)
    registry.get_or_create("STALE", t=0)
    registry.get_or_create("BUSY", t=0)
    registry.get_or_create("FRESH", t=1_500)

    evicted = registry.sweep(t=2_000, occupied=["BUSY"])

    assert evicted == ["STALE"]
    assert set(registry.rooms) == {"BUSY", "FRESH"}


def test_occupied_room_is_never_evicted():
    registry = RoomRegistry(ttl_ms=1_000)
    registry.get_or_create("BUSY", t=0)
    assert registry.sweep(t=10**9, occupied={"BUSY"}) == []
    assert "BUSY" in registry.rooms


def test_mutation_refreshes_ttl():
    registry = RoomRegistry(ttl_ms=1_000)
    room = registry.get_or_create("ABC", t=0)
    assert room.replace(start(room.state, t=1_800, duration_ms=60_000))

    assert registry.sweep(t=2_000, occupied=[]) == []


def test_replace_same_state_reports_no_change():
    registry = RoomRegistry()
    room = registry.get_or_create("ABC", t=0)
    room.last_message, room.last_message_at = "cached", 0

    assert room.replace(room.state) is False
    assert room.last_message == "cached"

    assert room.replace(start(room.state, t=1)) is True
    assert room.last_message is None
