"""
Protocol dispatcher.

Decodes each inbound payload once and routes it: control messages update
the registry and directory, data payloads from streamers go through the
frame buffer to the broadcaster.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shared.config.logging import audit_ws_connection, get_logger
from stream_gateway.components.core.constants import ALL_STREAMS, ClientRole, MessageType
from stream_gateway.components.core.context import sanitize_log_data
from stream_gateway.components.protocol.messages import (
    DataMessage,
    FrameMessage,
    PingMessage,
    RegisterMessage,
    decode_message,
)

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection
    from stream_gateway.components.connection.registry import ConnectionRegistry
    from stream_gateway.components.metrics.collector import MetricsCollector
    from stream_gateway.components.streams.buffer import FrameBuffer
    from stream_gateway.components.streams.directory import StreamDirectory
    from stream_gateway.core.connection.broadcaster import FrameBroadcaster

logger = get_logger(__name__)


class ProtocolDispatcher:
    def __init__(
        self,
        registry: "ConnectionRegistry",
        directory: "StreamDirectory",
        buffer: "FrameBuffer",
        broadcaster: "FrameBroadcaster",
        metrics: "MetricsCollector",
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._buffer = buffer
        self._broadcaster = broadcaster
        self._metrics = metrics

    async def dispatch(self, conn: "ClientConnection", raw: str | bytes) -> None:
        """Classify `raw` and route it. Must run inside a hub turn."""
        conn.touch()
        message = decode_message(raw)

        if isinstance(message, DataMessage):
            await self._handle_data(conn, message)
            return

        self._metrics.increment_control(message.type)

        if isinstance(message, RegisterMessage):
            await self._handle_register(conn, message)
        elif isinstance(message, FrameMessage):
            self._registry.prime_frame(conn, message.stream_id)
        elif isinstance(message, PingMessage):
            self._broadcaster.send_pong(conn)

    async def _handle_register(
        self, conn: "ClientConnection", message: RegisterMessage
    ) -> None:
        """
        Record ClientInfo, then update the directory.

        The latest register always wins, whatever was registered before. A
        streamer that re-registers under another id (or as a viewer)
        releases the id it owned. The wildcard is never published; data
        from a streamer registered on it stays unrouted.
        """
        role, stream_id = message.role, message.stream_id
        previous = self._registry.register(conn, role, stream_id)

        audit_ws_connection(
            event_type="REGISTER",
            endpoint="stream",
            connection_id=conn.connection_id,
            role=role.value,
            stream_id=sanitize_log_data(stream_id),
            origin=conn.origin,
            reregistered=previous is not None,
        )

        released = False
        if (
            previous is not None
            and previous.is_streamer
            and (role != ClientRole.STREAMER or previous.stream_id != stream_id)
        ):
            released = self._directory.unpublish(previous.stream_id, conn)
            if released:
                self._buffer.discard(previous.stream_id)

        publishes = role == ClientRole.STREAMER and stream_id != ALL_STREAMS
        if role == ClientRole.STREAMER and not publishes:
            logger.warning(
                "Streamer registered on the wildcard stream id, not published",
                connection_id=conn.connection_id,
            )

        if publishes:
            superseded = self._directory.owner_of(stream_id)
            self._directory.publish(stream_id, conn)
            if superseded is not None and superseded is not conn:
                logger.info(
                    "Stream ownership transferred",
                    stream_id=sanitize_log_data(stream_id),
                    previous_owner=superseded.connection_id,
                    new_owner=conn.connection_id,
                )

        if publishes or released:
            await self._broadcaster.broadcast_active_streams(self._directory.list())
        elif role == ClientRole.MULTI_VIEWER:
            # Newcomers get the current list without waiting for a change
            await self._broadcaster.send_json(
                [conn],
                {"type": MessageType.ACTIVE_STREAMS.value, "streams": self._directory.list()},
                context="active-streams",
            )

    async def _handle_data(self, conn: "ClientConnection", message: DataMessage) -> None:
        """
        Relay a data payload from a streamer.

        Stream id: framed header, else the primed id, else the streamer's
        registered id. The priming slot is consumed either way.
        """
        self._metrics.increment_frames_received()
        primed = self._registry.take_primed(conn)
        info = self._registry.get(conn)

        if info is None or not info.is_streamer:
            self._metrics.increment_frames_unrouted()
            logger.debug(
                "Dropping data from non-streamer",
                connection_id=conn.connection_id,
                size=len(message.payload),
            )
            return

        stream_id = message.stream_id or primed or info.stream_id
        if stream_id == ALL_STREAMS:
            self._metrics.increment_frames_unrouted()
            logger.debug(
                "Dropping data addressed to the wildcard stream id",
                connection_id=conn.connection_id,
            )
            return

        result = self._buffer.admit(stream_id, message.payload, origin=conn)
        if result is not None:
            await self._broadcaster.deliver_flush(result)
