"""
Client connection handle and its state machine.

    CONNECTING -> OPEN -> CLOSING -> CLOSED
                      `-> ERRORED

OPEN is entered when the handshake completes. CLOSED and ERRORED are
terminal and each is entered at most once; nothing returns to OPEN.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any, TYPE_CHECKING

from starlette.websockets import WebSocketState

from stream_gateway.components.core.exceptions import InvalidStateTransition

if TYPE_CHECKING:
    from fastapi import WebSocket


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    ERRORED = "errored"


TERMINAL_STATES = frozenset({ConnectionState.CLOSED, ConnectionState.ERRORED})


def is_ws_connected(ws: "WebSocket") -> bool:
    """
    Check if WebSocket is in connected state before sending.

    Starlette WebSockets have limited state visibility:
    - CONNECTING: Initial state (not observable here)
    - CONNECTED: Active connection
    - DISCONNECTED: Closed connection

    Transitional states are not exposed, so connections may appear
    connected briefly after disconnect initiated.
    """
    return (
        ws.client_state == WebSocketState.CONNECTED
        and ws.application_state == WebSocketState.CONNECTED
    )


class ClientConnection:
    """
    Handle to one client WebSocket.

    Wraps the transport so the rest of the gateway deals in connection ids,
    states and activity timestamps rather than raw sockets. Hashable by
    identity so it can key registry dicts.
    """

    def __init__(
        self,
        websocket: "WebSocket",
        connection_id: str | None = None,
        clock=time.monotonic,
    ) -> None:
        self.websocket = websocket
        self.connection_id = connection_id or uuid.uuid4().hex[:12]
        self.state = ConnectionState.CONNECTING
        self._clock = clock
        self.connected_at = clock()
        self.last_activity = self.connected_at
        self.close_cause: str | None = None

    def __repr__(self) -> str:
        return f"<ClientConnection {self.connection_id} {self.state.value}>"

    @property
    def origin(self) -> str | None:
        return self.websocket.headers.get("origin")

    @property
    def is_open(self) -> bool:
        """True while OPEN and the underlying socket still reports connected."""
        return self.state == ConnectionState.OPEN and is_ws_connected(self.websocket)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    # =========================================================================
    # State transitions
    # =========================================================================

    def mark_open(self) -> None:
        if self.state != ConnectionState.CONNECTING:
            raise InvalidStateTransition(
                self.connection_id, self.state.value, ConnectionState.OPEN.value
            )
        self.state = ConnectionState.OPEN
        self.touch()

    def begin_close(self) -> bool:
        """OPEN/CONNECTING -> CLOSING. Returns False if already closing or ended."""
        if self.state in (ConnectionState.OPEN, ConnectionState.CONNECTING):
            self.state = ConnectionState.CLOSING
            return True
        return False

    def mark_closed(self, cause: str | None = None) -> bool:
        """
        Enter CLOSED.

        Returns True only for the call that performed the transition, so
        callers can run cleanup exactly once.
        """
        if self.is_terminal:
            return False
        self.state = ConnectionState.CLOSED
        self.close_cause = cause
        return True

    def mark_errored(self, cause: str | None = None) -> bool:
        """Enter ERRORED. Same once-only contract as mark_closed()."""
        if self.is_terminal:
            return False
        self.state = ConnectionState.ERRORED
        self.close_cause = cause
        return True

    # =========================================================================
    # Transport
    # =========================================================================

    def touch(self) -> None:
        self.last_activity = self._clock()

    def idle_seconds(self) -> float:
        return self._clock() - self.last_activity

    async def send_bytes(self, data: bytes) -> None:
        await self.websocket.send_bytes(data)

    async def send_text(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def send_json(self, message: dict[str, Any]) -> None:
        await self.websocket.send_json(message)

    async def close(self, code: int, reason: str = "") -> None:
        """Close the socket if it is still connected. Transport errors propagate."""
        if is_ws_connected(self.websocket):
            await self.websocket.close(code=code, reason=reason)

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "connection_id": self.connection_id,
            "state": self.state.value,
            "idle_seconds": round(self.idle_seconds(), 3),
        }
