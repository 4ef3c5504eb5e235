"""
Gateway Statistics.

Aggregates statistics from the hub components for /ws/health and
/ws/metrics.
"""

from __future__ import annotations

from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from stream_gateway.components.connection.heartbeat import HeartbeatTracker
    from stream_gateway.components.connection.registry import ConnectionRegistry
    from stream_gateway.components.metrics.collector import MetricsCollector
    from stream_gateway.components.streams.buffer import FrameBuffer
    from stream_gateway.components.streams.directory import StreamDirectory


class GatewayStats:
    """Aggregates gateway statistics from components."""

    def __init__(
        self,
        registry: "ConnectionRegistry",
        directory: "StreamDirectory",
        buffer: "FrameBuffer",
        metrics: "MetricsCollector",
        heartbeat_tracker: "HeartbeatTracker",
        get_dead_connections_count: Callable[[], int],
        get_outbox_stats: Callable[[], dict[str, int]] | None = None,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._buffer = buffer
        self._metrics = metrics
        self._heartbeat_tracker = heartbeat_tracker
        self._get_dead_connections_count = get_dead_connections_count
        self._get_outbox_stats = get_outbox_stats

    def get_stats(self) -> dict[str, Any]:
        """
        Get comprehensive gateway statistics.

        Reads only; safe to call outside a hub turn.
        """
        streams = self._directory.list()
        return {
            "total_connections": len(self._registry),
            "active_streams": len(streams),
            "streams": streams,
            "viewers_per_stream": {
                stream_id: self._registry.count_viewers(stream_id)
                for stream_id in streams
            },
            "registry": self._registry.get_stats(),
            "buffer": self._buffer.get_stats(),
            "dead_connections_pending": self._get_dead_connections_count(),
            "outbox": self._get_outbox_stats() if self._get_outbox_stats else {},
            "heartbeat_stats": self._heartbeat_tracker.get_stats(
                self._registry.connections
            ),
            "metrics": self._metrics.get_snapshot(),
        }
