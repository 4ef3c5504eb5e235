"""
Connection Lifecycle Management.

Handles connection registration on open and the one-time cleanup when a
connection closes or errors.
"""

from __future__ import annotations

from typing import Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from stream_gateway.components.core.context import sanitize_log_data

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection
    from stream_gateway.components.connection.registry import ConnectionRegistry
    from stream_gateway.components.metrics.collector import MetricsCollector
    from stream_gateway.components.streams.buffer import FrameBuffer
    from stream_gateway.components.streams.directory import StreamDirectory

logger = get_logger(__name__)


class ConnectionLifecycle:
    """
    Manages the lifecycle of client connections.

    Responsibilities:
    - Track newly opened connections
    - Disconnect: drop ClientInfo and the outbox, release the streamer's
      stream id and announce the new stream list, exactly once per connection
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        directory: "StreamDirectory",
        buffer: "FrameBuffer",
        metrics: "MetricsCollector",
        announce_callback: Callable[[list[str]], Awaitable[int]],
        release_callback: Callable[["ClientConnection"], None] | None = None,
    ) -> None:
        """
        Args:
            registry: Connection registry
            directory: Published stream ids
            buffer: Frame buffers, discarded when their stream goes away
            metrics: Collects connection metrics
            announce_callback: Sends active-streams to multi-viewers
            release_callback: Drops per-connection send state (the outbox)
        """
        self._registry = registry
        self._directory = directory
        self._buffer = buffer
        self._metrics = metrics
        self._announce = announce_callback
        self._release = release_callback
        self._shutdown = False

    @property
    def total_connections(self) -> int:
        return len(self._registry)

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def set_shutdown(self, value: bool) -> None:
        self._shutdown = value

    def open(self, conn: "ClientConnection") -> None:
        """Enter OPEN and start tracking the connection."""
        conn.mark_open()
        self._registry.add(conn)
        self._metrics.increment_connections_opened()
        logger.debug("Connection opened", **conn.to_log_dict())

    async def disconnect(
        self,
        conn: "ClientConnection",
        errored: bool = False,
        cause: str | None = None,
    ) -> bool:
        """
        Remove a connection from the registry and directory.

        Safe to call repeatedly: only the first call for a tracked
        connection does any work.

        Returns:
            True if this call performed the cleanup.
        """
        if errored:
            conn.mark_errored(cause)
        else:
            conn.mark_closed(cause)

        if conn not in self._registry:
            return False

        info = self._registry.remove(conn)
        if self._release is not None:
            self._release(conn)
        self._metrics.increment_connections_closed(errored=errored)

        logger.debug(
            "Connection cleaned up",
            connection_id=conn.connection_id,
            role=info.role.value if info else None,
            cause=cause,
            state=conn.state.value,
        )

        if info is None or not info.is_streamer:
            return True

        if not self._directory.unpublish(info.stream_id, conn):
            logger.debug(
                "Superseded streamer closed, stream kept",
                stream_id=sanitize_log_data(info.stream_id),
                connection_id=conn.connection_id,
            )
            return True

        discarded = self._buffer.discard(info.stream_id)
        logger.info(
            "Stream unpublished",
            stream_id=sanitize_log_data(info.stream_id),
            connection_id=conn.connection_id,
            discarded_frames=discarded,
        )

        if not self._shutdown:
            await self._announce(self._directory.list())
        return True
