from services.connection_manager import Connection, ConnectionManager, Role, normalize_role


def _open(manager, make_websocket):
    connection = Connection(make_websocket())
    manager.connect(connection)
    return connection


def test_normalize_role():
    assert normalize_role("CONTROL") is Role.CONTROL
    assert normalize_role("display") is Role.DISPLAY
    assert normalize_role("admin") is Role.DISPLAY
    assert normalize_role(None, default=Role.CONTROL) is Role.CONTROL


def test_join_attaches_both_maps(make_websocket):
    manager = ConnectionManager()
    conn = _open(manager, make_websocket)

    manager.join(conn, "ABC", Role.CONTROL)

    assert conn.room_id == "ABC"
    assert conn.role is Role.CONTROL
    assert manager.members("ABC") == [conn]
    assert manager.connections[conn] == "ABC"


def test_switch_room_moves_membership(make_websocket):
    manager = ConnectionManager()
    conn = _open(manager, make_websocket)
    other = _open(manager, make_websocket)
    manager.join(conn, "ONE")
    manager.join(other, "ONE")

    manager.join(conn, "TWO", Role.CONTROL)

    assert manager.members("ONE") == [other]
    assert manager.members("TWO") == [conn]
    assert conn.room_id == "TWO"
    assert conn.is_control


def test_rejoin_same_room_only_changes_role(make_websocket):
    manager = ConnectionManager()
    conn = _open(manager, make_websocket)
    manager.join(conn, "ABC", Role.DISPLAY)
    manager.join(conn, "ABC", Role.CONTROL)

    assert manager.member_count("ABC") == 1
    assert manager.role_counts("ABC") == {"control": 1, "display": 0}


def test_leave_keeps_connection_registered(make_websocket):
    manager = ConnectionManager()
    conn = _open(manager, make_websocket)
    manager.join(conn, "ABC")

    assert manager.leave(conn) == "ABC"
    assert conn in manager.connections
    assert conn.room_id is None
    assert "ABC" not in manager.rooms
    assert manager.leave(conn) is None


def test_disconnect_is_idempotent(make_websocket):
    manager = ConnectionManager()
    conn = _open(manager, make_websocket)
    manager.join(conn, "ABC")

    manager.disconnect(conn)
    manager.disconnect(conn)

    assert conn not in manager.connections
    assert manager.rooms == {}
    assert manager.occupied_rooms() == []


def test_join_after_disconnect_is_ignored(make_websocket):
    manager = ConnectionManager()
    conn = _open(manager, make_websocket)
    manager.disconnect(conn)

    manager.join(conn, "ABC")

    assert manager.rooms == {}
    assert conn not in manager.connections
