import json

import pytest

from core.clock import ManualClock
from services.connection_manager import Connection
from services.timer_server import TimerServer


class FakeWebSocket:
    """Records every text frame; can be told to fail sends."""

    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail
        self.close_code = None

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket is closed")
        self.sent.append(text)

    async def close(self, code=1000):
        if self.close_code is not None:
            raise RuntimeError("already closed")
        self.close_code = code

    def messages(self):
        return [json.loads(text) for text in self.sent]

    def last_payload(self):
        return json.loads(self.sent[-1])["payload"]


@pytest.fixture()
def clock():
    return ManualClock(start_ms=1_000_000)


@pytest.fixture()
def server(clock):
    return TimerServer(clock=clock)


@pytest.fixture()
def make_connection(server):
    """Open a fake connection on ``server`` the way the websocket endpoint does."""

    async def _open(room="ABC", role="display", fail=False):
        connection = Connection(FakeWebSocket(fail=fail))
        await server.open_connection(connection, room, role)
        return connection

    return _open


@pytest.fixture()
def send(server):
    """Send one JSON message from ``connection`` to the server."""

    def _send(connection, type_, payload=None):
        message = {"type": type_}
        if payload is not None:
            message["payload"] = payload
        return server.handle_message(connection, json.dumps(message))

    return _send


@pytest.fixture()
def make_websocket():
    return FakeWebSocket
