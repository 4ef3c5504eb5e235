"""
WebSocket Endpoint Base Class.

Runs one client connection: accept, receive loop, cleanup. Each connection
is served by its own task; leaving the loop (disconnect, error, oversize
close or cancellation) always ends in exactly one hub cleanup.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from shared.config.logging import get_logger
from shared.infrastructure.correlation import bind_correlation_id, reset_correlation_id
from stream_gateway.components.connection.handle import ClientConnection
from stream_gateway.components.core.constants import WSCloseCode, WSConstants
from stream_gateway.components.core.context import WebSocketContext
from stream_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
)

if TYPE_CHECKING:
    from stream_gateway.hub import StreamHub

logger = get_logger(__name__)


class WebSocketEndpointBase(
    MessageValidationMixin,
    ConnectionLifecycleMixin,
    ABC,
):
    """
    Base class for WebSocket endpoints.

    Uses mixins for single concerns:
    - MessageValidationMixin: Message size checks
    - ConnectionLifecycleMixin: Lifecycle logging

    Subclasses implement:
    - handle_message(): Process one inbound text or binary message

    Usage:
        endpoint = StreamEndpoint(websocket, hub, "/ws/stream")
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        hub: "StreamHub",
        endpoint_name: str,
        max_message_size: int = WSConstants.MAX_FRAME_SIZE,
        accept_timeout: float = WSConstants.WS_ACCEPT_TIMEOUT,
    ):
        """
        Args:
            websocket: The WebSocket connection.
            hub: StreamHub instance.
            endpoint_name: Name for logging (e.g., "/ws/stream").
            max_message_size: Largest inbound message in bytes.
            accept_timeout: Timeout for completing the handshake.
        """
        self.websocket = websocket
        self.hub = hub
        self.endpoint_name = endpoint_name
        self.max_message_size = max_message_size
        self.accept_timeout = accept_timeout

        self.connection = ClientConnection(websocket)
        self.context: WebSocketContext | None = None
        self._is_running = False

    @abstractmethod
    async def handle_message(self, data: str | bytes) -> None:
        """Handle one inbound message (text or binary)."""

    async def run(self) -> None:
        """
        Main entry point - run the WebSocket endpoint.

        Handles the complete lifecycle:
        1. Accept the handshake (with timeout)
        2. Open the connection in the hub
        3. Message loop
        4. Hub cleanup on any exit
        """
        token = bind_correlation_id(self.connection.connection_id)
        try:
            self.context = WebSocketContext.from_websocket(
                self.websocket, self.endpoint_name, self.connection.connection_id
            )

            if not await self._accept():
                return

            await self.hub.open_connection(self.connection)
            self.log_connect()

            await self._serve()
        finally:
            reset_correlation_id(token)

    async def _accept(self) -> bool:
        try:
            await asyncio.wait_for(self.websocket.accept(), timeout=self.accept_timeout)
            return True
        except asyncio.TimeoutError:
            self.hub.metrics.increment_accept_timeouts()
            self.connection.mark_closed("accept_timeout")
            self.log_connect_rejected("accept_timeout")
            return False

    async def _serve(self) -> None:
        errored = False
        reason = "client_disconnect"

        self._is_running = True
        try:
            reason = await self._message_loop()
        except WebSocketDisconnect as e:
            normal = e.code in (WSCloseCode.NORMAL, WSCloseCode.GOING_AWAY)
            reason = "client_disconnect" if normal else f"client_close_{e.code}"
        except (ConnectionError, RuntimeError, OSError) as e:
            errored = True
            reason = type(e).__name__
            logger.warning(
                "Connection error",
                endpoint=self.endpoint_name,
                connection_id=self.connection.connection_id,
                error=type(e).__name__,
                message=str(e),
            )
        finally:
            self._is_running = False
            self._refresh_context()
            await self.hub.close_connection(self.connection, errored=errored, cause=reason)
            self.log_disconnect(reason)

    async def _message_loop(self) -> str:
        """
        Main message processing loop.

        Returns:
            Close reason when the server ends the loop itself.

        Raises:
            WebSocketDisconnect: When the client disconnects.
        """
        while self._is_running:
            data = await self._receive()

            if not await self.validate_message_size(data):
                return "message_too_big"

            await self.handle_message(data)

        return "server_close"

    async def _receive(self) -> str | bytes:
        """Receive one text or binary message."""
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

        text = message.get("text")
        if text is not None:
            return text
        return message.get("bytes") or b""

    def _refresh_context(self) -> None:
        """Copy the latest registration into the audit context."""
        info = self.hub.registry.get(self.connection)
        if info is not None and self.context is not None:
            self.context.update_registration(info.role.value, info.stream_id)
