"""
Pytest configuration and fixtures for stream gateway tests.
"""

import asyncio
import json

import pytest
import pytest_asyncio
from starlette.websockets import WebSocketState

from stream_gateway.components.connection.handle import ClientConnection
from stream_gateway.hub import StreamHub


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWebSocket:
    """
    Records everything sent to it.

    Set `fail_sends` to make every send raise ConnectionError, or
    `stall_sends` to make every send wait forever, like a peer that
    stopped reading.
    """

    def __init__(self, origin: str | None = "http://localhost:3000"):
        self.headers = {"origin": origin} if origin else {}
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[tuple[str, object]] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.fail_sends = False
        self.stall_sends = False

    async def _check(self) -> None:
        if self.stall_sends:
            await asyncio.Event().wait()
        if self.fail_sends:
            raise ConnectionError("socket gone")

    async def send_bytes(self, data: bytes) -> None:
        await self._check()
        self.sent.append(("bytes", data))

    async def send_text(self, data: str) -> None:
        await self._check()
        self.sent.append(("text", data))

    async def send_json(self, data: dict) -> None:
        await self._check()
        self.sent.append(("json", data))

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code
        self.close_reason = reason
        self.client_state = WebSocketState.DISCONNECTED
        self.application_state = WebSocketState.DISCONNECTED

    def drop(self) -> None:
        """Simulate the peer vanishing without a close handshake."""
        self.client_state = WebSocketState.DISCONNECTED

    # Convenience views

    @property
    def frames(self) -> list[bytes]:
        return [data for kind, data in self.sent if kind == "bytes"]

    @property
    def json_messages(self) -> list[dict]:
        return [data for kind, data in self.sent if kind == "json"]

    @property
    def texts(self) -> list[str]:
        return [data for kind, data in self.sent if kind == "text"]

    def messages_of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.json_messages if m.get("type") == message_type]


def register_message(role: str, stream_id: str) -> str:
    return json.dumps({"type": "register", "role": role, "streamId": stream_id})


async def connect(hub: StreamHub, origin: str | None = "http://localhost:3000") -> ClientConnection:
    """Open a connection on the hub backed by a FakeWebSocket."""
    conn = ClientConnection(FakeWebSocket(origin))
    await hub.open_connection(conn)
    return conn


async def connect_as(hub: StreamHub, role: str, stream_id: str) -> ClientConnection:
    conn = await connect(hub)
    await hub.handle_message(conn, register_message(role, stream_id))
    return conn


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def hub(clock):
    """Hub with a controllable clock and fixed wall time. Writers are stopped afterwards."""
    hub = StreamHub(clock=clock, wall_clock=lambda: 1_700_000_000.0)
    yield hub
    await hub.shutdown()
