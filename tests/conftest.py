"""
Shared fixtures for relay tests.

Connections are driven through ``FakeTransport``, which records every
frame the relay writes, so most tests never open a real socket.
"""

import json

import pytest

from audioporter.config import RelayConfig
from audioporter.relay.hub import RelayHub

SERVER_INFO = {"type": "server_info", "ip": "192.168.1.2", "hostname": "relay-host", "port": 3000}


class FakeTransport:
    """Stand-in for an aiohttp WebSocketResponse."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.close_code = None
        self.close_message = None
        self.pings = 0

    async def send_str(self, data: str) -> None:
        self.sent.append(json.loads(data))

    async def ping(self, message: bytes = b"") -> None:
        self.pings += 1

    async def close(self, *, code: int = 1000, message: bytes = b"") -> bool:
        self.closed = True
        self.close_code = code
        self.close_message = message
        return True

    def of_type(self, msg_type: str) -> list:
        return [m for m in self.sent if m["type"] == msg_type]

    def last(self, msg_type: str) -> dict:
        matching = self.of_type(msg_type)
        assert matching, f"no {msg_type} message sent (got {[m['type'] for m in self.sent]})"
        return matching[-1]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def config():
    return RelayConfig()


@pytest.fixture
def hub(config):
    return RelayHub(config, server_info=SERVER_INFO)


@pytest.fixture
def connect(hub):
    """Open a fake connection on the hub. Returns (connection, transport)."""
    async def _connect(remote="192.168.1.10", forwarded_for=None):
        transport = FakeTransport()
        conn = await hub.connect(transport, remote, forwarded_for)
        return conn, transport
    return _connect


@pytest.fixture
def send(hub):
    """Deliver one JSON message from a connection to the hub."""
    async def _send(conn, message):
        raw = message if isinstance(message, str) else json.dumps(message)
        await hub.handle_text(conn, raw)
    return _send


@pytest.fixture
def settle(hub):
    """Wait until every live connection's queued output has been written."""
    async def _settle():
        for conn in hub.registry:
            await conn.flush()
    return _settle
