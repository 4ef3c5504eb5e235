"""
Endpoint mixins, one concern each.

- MessageValidationMixin: reject oversized inbound messages with 1009
- ConnectionLifecycleMixin: connect/disconnect logging and audit records

Both expect the attributes described by the protocols below, which
WebSocketEndpointBase provides.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from shared.config.logging import get_logger
from stream_gateway.components.core.constants import WSCloseCode

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection
    from stream_gateway.components.core.context import WebSocketContext
    from stream_gateway.hub import StreamHub

logger = get_logger(__name__)


class HasWebSocket(Protocol):
    websocket: WebSocket
    endpoint_name: str
    connection: "ClientConnection"
    context: "WebSocketContext | None"


class HasHub(Protocol):
    hub: "StreamHub"
    max_message_size: int


class MessageValidationMixin:
    async def validate_message_size(
        self: "HasWebSocket & HasHub", data: str | bytes
    ) -> bool:
        """
        Check an inbound message against `max_message_size`.

        Text is measured in UTF-8 bytes. An oversized message closes this
        connection with 1009 and returns False; other connections are
        unaffected.
        """
        size = len(data.encode("utf-8")) if isinstance(data, str) else len(data)
        if size <= self.max_message_size:
            return True

        logger.warning(
            "Inbound message over size limit, closing",
            endpoint=self.endpoint_name,
            connection_id=self.connection.connection_id,
            size=size,
            limit=self.max_message_size,
        )
        self.hub.metrics.increment_rejected_oversize()
        self.connection.begin_close()
        await self.websocket.close(code=WSCloseCode.MESSAGE_TOO_BIG, reason="Message too large")
        return False


class ConnectionLifecycleMixin:
    def _lifecycle_event(
        self: HasWebSocket,
        event_type: str,
        message: str,
        warn: bool = False,
        **extra,
    ) -> None:
        fields = (
            self.context.to_audit_dict(event_type, **extra)
            if self.context
            else {"endpoint": self.endpoint_name, "event_type": event_type, **extra}
        )
        (logger.warning if warn else logger.info)(message, **fields)
        if self.context:
            self.context.audit(event_type, **extra)

    def log_connect(self) -> None:
        self._lifecycle_event("CONNECT", "Client connected")

    def log_disconnect(self, reason: str = "client_disconnect") -> None:
        self._lifecycle_event("DISCONNECT", "Client disconnected", reason=reason)

    def log_connect_rejected(self, reason: str) -> None:
        self._lifecycle_event("CONNECT_REJECTED", "Connection rejected", warn=True, reason=reason)


__all__ = [
    "MessageValidationMixin",
    "ConnectionLifecycleMixin",
    "HasWebSocket",
    "HasHub",
]
