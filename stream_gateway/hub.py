"""
Stream Hub - server context for the relay.

Composes the registry, directory, frame buffer, broadcaster, cleanup,
dispatcher and health monitor. One instance is built by the app factory,
stored on app.state and handed to every endpoint.

Every inbound message, close and monitor tick is one turn: it runs under
the hub's turn lock, so turns never interleave and component state needs
no further locking. Turns never wait on a socket: outbound messages go on
per-connection outboxes and are sent by writer tasks outside the lock. A
writer whose send fails reports back in a turn of its own.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from stream_gateway.components.connection.heartbeat import HeartbeatTracker
from stream_gateway.components.connection.registry import ConnectionRegistry
from stream_gateway.components.core.constants import WSCloseCode, WSConstants
from stream_gateway.components.metrics.collector import MetricsCollector
from stream_gateway.components.streams.buffer import FrameBuffer
from stream_gateway.components.streams.directory import StreamDirectory
from stream_gateway.components.streams.tiers import TierTable
from stream_gateway.core.connection.broadcaster import FrameBroadcaster
from stream_gateway.core.connection.cleanup import ConnectionCleanup
from stream_gateway.core.connection.lifecycle import ConnectionLifecycle
from stream_gateway.core.connection.stats import GatewayStats
from stream_gateway.core.dispatcher import ProtocolDispatcher
from stream_gateway.core.monitor import HealthMonitor, MonitorReport

if TYPE_CHECKING:
    from shared.config.settings import Settings
    from stream_gateway.components.connection.handle import ClientConnection

logger = get_logger(__name__)


class StreamHub:
    """
    Orchestrates the relay using composition.

    Components:
    - ConnectionRegistry: who is connected and what they registered as
    - StreamDirectory: published stream ids and their owners
    - FrameBuffer: per-stream admission and lossy flush
    - FrameBroadcaster: fan-out to subscribers
    - ConnectionLifecycle / ConnectionCleanup: open, close, prune
    - ProtocolDispatcher: inbound message routing
    - HealthMonitor: periodic sweep
    - GatewayStats: aggregated stats
    """

    def __init__(
        self,
        tiers: TierTable | None = None,
        content_prefix: bytes = b"",
        status_events_enabled: bool = True,
        heartbeat_idle_seconds: float = WSConstants.HEARTBEAT_IDLE_SECONDS,
        max_dead_connections: int = WSConstants.MAX_DEAD_CONNECTIONS,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._turn_lock = asyncio.Lock()

        self.registry = ConnectionRegistry()
        self.directory = StreamDirectory()
        self.metrics = MetricsCollector()
        self.buffer = FrameBuffer(tiers, clock=clock)
        self.heartbeat = HeartbeatTracker(idle_seconds=heartbeat_idle_seconds)

        # Lifecycle announces through the broadcaster, which is built later
        self._lifecycle = ConnectionLifecycle(
            registry=self.registry,
            directory=self.directory,
            buffer=self.buffer,
            metrics=self.metrics,
            announce_callback=self._announce_active_streams,
            release_callback=self._release_outbox,
        )

        self._cleanup = ConnectionCleanup(
            registry=self.registry,
            metrics=self.metrics,
            disconnect_callback=self._lifecycle.disconnect,
            max_dead_connections=max_dead_connections,
        )

        self._broadcaster = FrameBroadcaster(
            registry=self.registry,
            metrics=self.metrics,
            mark_dead_callback=self._cleanup.mark_dead_connection,
            content_prefix=content_prefix,
            send_failure_callback=self._mark_dead_after_send,
        )

        self._dispatcher = ProtocolDispatcher(
            registry=self.registry,
            directory=self.directory,
            buffer=self.buffer,
            broadcaster=self._broadcaster,
            metrics=self.metrics,
        )

        self._monitor = HealthMonitor(
            registry=self.registry,
            directory=self.directory,
            buffer=self.buffer,
            broadcaster=self._broadcaster,
            cleanup=self._cleanup,
            status_events_enabled=status_events_enabled,
            wall_clock=wall_clock,
        )

        self._stats = GatewayStats(
            registry=self.registry,
            directory=self.directory,
            buffer=self.buffer,
            metrics=self.metrics,
            heartbeat_tracker=self.heartbeat,
            get_dead_connections_count=lambda: self._cleanup.dead_connections_count,
            get_outbox_stats=self._broadcaster.get_stats,
        )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "StreamHub":
        return cls(
            tiers=TierTable.from_settings(settings.stream_tiers),
            content_prefix=settings.frame_content_prefix.encode("utf-8"),
            status_events_enabled=settings.status_events_enabled,
            heartbeat_idle_seconds=settings.heartbeat_idle_seconds,
        )

    @property
    def broadcaster(self) -> FrameBroadcaster:
        return self._broadcaster

    @property
    def cleanup(self) -> ConnectionCleanup:
        return self._cleanup

    @property
    def total_connections(self) -> int:
        return self._lifecycle.total_connections

    def is_shutting_down(self) -> bool:
        return self._lifecycle.is_shutdown

    async def _announce_active_streams(self, streams: list[str]) -> int:
        return await self._broadcaster.broadcast_active_streams(streams)

    def _release_outbox(self, conn: "ClientConnection") -> None:
        self._broadcaster.release(conn)

    async def _mark_dead_after_send(self, conn: "ClientConnection") -> None:
        async with self._turn_lock:
            if conn in self.registry and not conn.is_terminal:
                await self._cleanup.mark_dead_connection(conn)

    # =========================================================================
    # Turns
    # =========================================================================

    async def open_connection(self, conn: "ClientConnection") -> None:
        """Handshake completed: CONNECTING -> OPEN, start tracking."""
        async with self._turn_lock:
            self._lifecycle.open(conn)

    async def handle_message(self, conn: "ClientConnection", raw: str | bytes) -> None:
        """Process one inbound message. Ignored once the connection is cleaned up."""
        async with self._turn_lock:
            if conn.is_terminal or conn not in self.registry:
                return
            await self._dispatcher.dispatch(conn, raw)

    async def close_connection(
        self,
        conn: "ClientConnection",
        errored: bool = False,
        cause: str | None = None,
    ) -> bool:
        """Transport closed or errored. Idempotent."""
        async with self._turn_lock:
            return await self._lifecycle.disconnect(conn, errored=errored, cause=cause)

    async def run_monitor_tick(self) -> MonitorReport:
        async with self._turn_lock:
            return await self._monitor.tick()

    async def drain(self, *connections: "ClientConnection") -> None:
        """
        Wait for queued outbound messages (of `connections`, or everyone)
        to be sent. Runs outside any turn.
        """
        await self._broadcaster.drain(*connections)

    async def shutdown(self) -> int:
        """Graceful shutdown - close all connections with GOING_AWAY."""
        async with self._turn_lock:
            self._lifecycle.set_shutdown(True)
            logger.info("Stream hub shutting down...")

            all_connections = self.registry.connections
            for conn in all_connections:
                conn.begin_close()

            async def close_one(conn: "ClientConnection") -> bool:
                try:
                    await conn.close(code=WSCloseCode.GOING_AWAY, reason="Server shutdown")
                    return True
                except (ConnectionError, RuntimeError, OSError) as e:
                    logger.debug(
                        "Close during shutdown failed",
                        connection_id=conn.connection_id,
                        error=str(e),
                    )
                    return False

            results = await asyncio.gather(
                *[close_one(conn) for conn in all_connections],
                return_exceptions=True,
            )
            closed = sum(1 for r in results if r is True)

            for conn in all_connections:
                await self._lifecycle.disconnect(conn, cause="shutdown")
            await self._broadcaster.stop()

            logger.info("Stream hub shutdown complete", closed=closed)
            return closed

    # =========================================================================
    # Queries
    # =========================================================================

    def list_streams(self) -> list[str]:
        return self.directory.list()

    def get_stats(self) -> dict[str, Any]:
        return self._stats.get_stats()
