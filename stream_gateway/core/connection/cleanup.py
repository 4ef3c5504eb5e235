"""
Connection Cleanup Management.

Handles cleanup of dead connections (failed sends) and connections whose
socket is no longer open.
"""

from __future__ import annotations

import time
from typing import Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from stream_gateway.components.core.constants import WSCloseCode, WSConstants

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection
    from stream_gateway.components.connection.registry import ConnectionRegistry
    from stream_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

DisconnectCallback = Callable[..., Awaitable[bool]]


class ConnectionCleanup:
    """
    Manages cleanup of connections.

    Responsibilities:
    - Track dead connections (send failures) until the next sweep
    - Disconnect dead connections
    - Prune registered connections that are no longer open

    Dead Connection Tracking:
    - Uses dict with timestamps for proper FIFO eviction
    - Size limited to prevent unbounded memory growth
    - At capacity, the oldest entry is disconnected immediately
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
        disconnect_callback: DisconnectCallback,
        max_dead_connections: int = WSConstants.MAX_DEAD_CONNECTIONS,
    ) -> None:
        """
        Args:
            registry: Connection registry to sweep
            metrics: Collects cleanup metrics
            disconnect_callback: Callback to disconnect a connection
            max_dead_connections: Maximum dead connections to track
        """
        self._registry = registry
        self._metrics = metrics
        self._disconnect = disconnect_callback
        self._max_dead_connections = max_dead_connections

        self._dead_connections: dict["ClientConnection", float] = {}

    @property
    def dead_connections_count(self) -> int:
        """Number of connections pending cleanup."""
        return len(self._dead_connections)

    def is_marked_dead(self, conn: "ClientConnection") -> bool:
        return conn in self._dead_connections

    async def mark_dead_connection(self, conn: "ClientConnection") -> None:
        """
        Mark a connection as dead for cleanup on the next sweep.

        At capacity, disconnects the oldest dead connection (by mark time)
        before adding the new one.
        """
        if conn in self._dead_connections:
            return

        if len(self._dead_connections) >= self._max_dead_connections:
            oldest = min(self._dead_connections, key=self._dead_connections.__getitem__)
            del self._dead_connections[oldest]
            logger.warning(
                "Dead connections at capacity, evicting oldest",
                current_size=len(self._dead_connections),
                max_size=self._max_dead_connections,
                evicted_connection_id=oldest.connection_id,
            )
            await self._close_and_disconnect(oldest)

        self._dead_connections[conn] = time.monotonic()

    async def cleanup_dead_connections(self) -> int:
        """
        Disconnect connections marked dead during send operations.

        Returns:
            Number of connections cleaned up.
        """
        if not self._dead_connections:
            return 0

        dead = list(self._dead_connections)
        self._dead_connections.clear()

        cleaned = 0
        for conn in dead:
            if await self._close_and_disconnect(conn):
                cleaned += 1

        if cleaned:
            self._metrics.add_connections_pruned(cleaned)
        return cleaned

    async def prune_closed_connections(self) -> int:
        """
        Disconnect registered connections whose socket is no longer open.

        Returns:
            Number of connections pruned.
        """
        pruned = 0
        for conn in self._registry.connections:
            if conn.is_open:
                continue
            self._dead_connections.pop(conn, None)
            if await self._disconnect(conn, errored=False, cause="pruned"):
                pruned += 1

        if pruned:
            self._metrics.add_connections_pruned(pruned)
            logger.info("Pruned closed connections", count=pruned)
        return pruned

    async def _close_and_disconnect(self, conn: "ClientConnection") -> bool:
        try:
            await conn.close(code=WSCloseCode.GOING_AWAY, reason="Send failure")
        except (ConnectionError, RuntimeError, OSError) as e:
            logger.debug(
                "Failed to close dead connection",
                connection_id=conn.connection_id,
                error=str(e),
            )

        return await self._disconnect(conn, errored=True, cause="send_failure")
