"""
Frame Broadcaster.

Fans frames and JSON status messages out to WebSocket connections.
Fan-out only selects recipients and queues the message on each
recipient's outbox; the sends themselves run on per-connection writer
tasks, outside any hub turn. A failing recipient is logged, counted and
marked dead, and never stops the others.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from stream_gateway.components.connection.outbox import ConnectionOutbox, OutboundMessage
from stream_gateway.components.core.constants import MSG_PONG_JSON, MessageType, WSConstants

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection
    from stream_gateway.components.connection.registry import ConnectionRegistry
    from stream_gateway.components.metrics.collector import MetricsCollector
    from stream_gateway.components.streams.buffer import FlushResult

logger = get_logger(__name__)

MarkDeadCallback = Callable[["ClientConnection"], Awaitable[None]]


class FrameBroadcaster:
    """
    Sends to WebSocket connections selected from the registry.

    Responsibilities:
    - Relay a flushed frame to every matching subscriber except its sender
    - Deliver JSON status messages (active-streams, streamStatus) and pongs
    - Own one outbox per recipient and stop it when the connection goes
    - Hand failed recipients to the dead-connection tracker
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
        mark_dead_callback: MarkDeadCallback,
        content_prefix: bytes = b"",
        send_failure_callback: MarkDeadCallback | None = None,
        outbox_size: int = WSConstants.OUTBOX_SIZE,
    ) -> None:
        """
        Args:
            registry: Source of subscribers
            metrics: Collects broadcast and flush metrics
            mark_dead_callback: Marks a connection dead from inside a turn
            content_prefix: Bytes prepended to every relayed frame
            send_failure_callback: Marks a connection dead after a writer's
                send failed. Writers run outside hub turns, so the hub passes
                a callback that takes its turn first. Defaults to
                mark_dead_callback.
            outbox_size: Per-connection send queue bound
        """
        self._registry = registry
        self._metrics = metrics
        self._mark_dead = mark_dead_callback
        self._send_failed = send_failure_callback or mark_dead_callback
        self._content_prefix = content_prefix
        self._outbox_size = outbox_size
        self._outboxes: dict["ClientConnection", ConnectionOutbox] = {}

    async def deliver_flush(self, result: "FlushResult") -> int:
        """
        Record a flush and broadcast its frame, if it produced one.

        Returns:
            Number of subscribers the frame was queued for.
        """
        self._metrics.record_flush(
            relayed=result.frame is not None,
            stale=result.stale,
            superseded=result.superseded,
            forced=result.forced,
        )

        if result.dropped:
            logger.debug(
                "Flush discarded frames",
                stream_id=result.stream_id,
                stale=result.stale,
                superseded=result.superseded,
                forced=result.forced,
            )

        if result.frame is None:
            return 0

        return await self.broadcast_frame(
            result.stream_id,
            result.frame.payload,
            origin=result.frame.origin,
        )

    async def broadcast_frame(
        self,
        stream_id: str,
        payload: bytes,
        origin: "ClientConnection | None" = None,
    ) -> int:
        """
        Queue a frame for subscribers of `stream_id` (exact or "all").

        The originating connection never receives its own frame.
        """
        recipients = self._registry.subscribers_of(stream_id, exclude=origin)
        data = self._content_prefix + payload if self._content_prefix else payload
        return await self._broadcast_to_connections(
            recipients, data, context=f"frame:{stream_id}"
        )

    async def send_json(
        self,
        connections: list["ClientConnection"],
        message: dict[str, Any],
        context: str = "status",
    ) -> int:
        """Queue a JSON message for each of `connections`."""
        return await self._broadcast_to_connections(connections, message, context)

    async def broadcast_active_streams(self, streams: list[str]) -> int:
        """Announce the current stream list to every multi-viewer."""
        return await self.send_json(
            self._registry.multi_viewers(),
            {"type": MessageType.ACTIVE_STREAMS.value, "streams": streams},
            context="active-streams",
        )

    def send_pong(self, conn: "ClientConnection") -> bool:
        """Queue a pong. Not counted as a broadcast."""
        return conn.is_open and self._outbox_for(conn).put(MSG_PONG_JSON)

    # =========================================================================
    # Outboxes
    # =========================================================================

    def _outbox_for(self, conn: "ClientConnection") -> ConnectionOutbox:
        outbox = self._outboxes.get(conn)
        if outbox is None:
            outbox = ConnectionOutbox(
                conn,
                on_failure=self._handle_send_failure,
                on_sent=self._metrics.increment_deliveries,
                maxsize=self._outbox_size,
            )
            self._outboxes[conn] = outbox
        return outbox

    async def _handle_send_failure(self, conn: "ClientConnection") -> None:
        self._metrics.increment_send_failures()
        await self._send_failed(conn)

    def release(self, conn: "ClientConnection") -> None:
        """Stop the connection's outbox; anything still queued is discarded."""
        outbox = self._outboxes.pop(conn, None)
        if outbox is not None:
            outbox.close()

    async def drain(self, *connections: "ClientConnection") -> None:
        """
        Wait until the outboxes of `connections` (default: all) are empty.

        Never call this inside a hub turn: a writer reporting a failed send
        needs a turn of its own.
        """
        targets = connections or tuple(self._outboxes)
        outboxes = [self._outboxes[c] for c in targets if c in self._outboxes]
        if outboxes:
            await asyncio.gather(*[outbox.join() for outbox in outboxes])

    async def stop(self) -> None:
        """Stop every outbox and wait for the writers to exit."""
        outboxes = list(self._outboxes.values())
        self._outboxes.clear()
        writers = [w for w in (outbox.close() for outbox in outboxes) if w is not None]
        if writers:
            await asyncio.gather(*writers, return_exceptions=True)

    def get_stats(self) -> dict[str, int]:
        return {
            "outboxes": len(self._outboxes),
            "queued_messages": sum(o.pending for o in self._outboxes.values()),
        }

    # =========================================================================
    # Fan-out
    # =========================================================================

    async def _broadcast_to_connections(
        self,
        connections: list["ClientConnection"],
        data: OutboundMessage,
        context: str,
    ) -> int:
        """
        Queue `data` for each connection.

        Connections that are no longer open are skipped and marked dead.
        A full outbox drops the message for that recipient only.

        Returns:
            Number of connections the message was queued for.
        """
        if not connections:
            return 0

        queued = dropped = skipped = 0
        for conn in connections:
            if not conn.is_open:
                skipped += 1
                await self._mark_dead(conn)
            elif self._outbox_for(conn).put(data):
                queued += 1
            else:
                dropped += 1

        self._metrics.record_broadcast(
            recipients=len(connections), skipped=skipped, dropped=dropped
        )

        if skipped or dropped:
            logger.debug(
                "Broadcast not queued for every recipient",
                context=context,
                queued=queued,
                skipped=skipped,
                dropped=dropped,
                total=len(connections),
            )

        return queued
