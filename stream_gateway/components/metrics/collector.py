"""
Metrics Collector for the Stream Gateway.

Centralizes metrics collection for observability.
Thread-safe counter operations; everything runs on the event loop today
but /ws/metrics may be scraped from a threadpool endpoint.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class FrameMetrics:
    """Metrics for the data path."""
    received: int = 0
    unrouted: int = 0  # No stream id, or sender is not a streamer
    flushes: int = 0
    forced_flushes: int = 0
    relayed: int = 0  # Flushes that produced a frame to broadcast
    dropped_stale: int = 0
    dropped_superseded: int = 0


@dataclass
class BroadcastMetrics:
    """Metrics for fan-out and the per-connection writers."""
    total: int = 0
    queued: int = 0
    skipped: int = 0  # Recipient socket already closed
    dropped: int = 0  # Recipient outbox full
    deliveries: int = 0  # Sends completed by writers
    send_failures: int = 0


@dataclass
class ConnectionMetrics:
    """Metrics for connection lifecycle."""
    opened: int = 0
    closed: int = 0
    errored: int = 0
    pruned: int = 0
    rejected_oversize: int = 0
    accept_timeouts: int = 0


@dataclass
class ControlMetrics:
    """Metrics for control messages by type."""
    register: int = 0
    frame: int = 0
    ping: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collector for the Stream Gateway.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_frames_received()
        stats = metrics.get_snapshot()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._frame = FrameMetrics()
        self._broadcast = BroadcastMetrics()
        self._connection = ConnectionMetrics()
        self._control = ControlMetrics()

    # ==========================================================================
    # Frame Metrics
    # ==========================================================================

    def increment_frames_received(self) -> None:
        with self._lock:
            self._frame.received += 1

    def increment_frames_unrouted(self) -> None:
        with self._lock:
            self._frame.unrouted += 1

    def record_flush(
        self,
        relayed: bool,
        stale: int,
        superseded: int,
        forced: bool,
    ) -> None:
        """Record one FrameBuffer flush and the frames it discarded."""
        with self._lock:
            self._frame.flushes += 1
            if forced:
                self._frame.forced_flushes += 1
            if relayed:
                self._frame.relayed += 1
            self._frame.dropped_stale += stale
            self._frame.dropped_superseded += superseded

    # ==========================================================================
    # Broadcast Metrics
    # ==========================================================================

    def record_broadcast(self, recipients: int, skipped: int = 0, dropped: int = 0) -> None:
        with self._lock:
            self._broadcast.total += 1
            self._broadcast.queued += recipients - skipped - dropped
            self._broadcast.skipped += skipped
            self._broadcast.dropped += dropped

    def increment_deliveries(self) -> None:
        with self._lock:
            self._broadcast.deliveries += 1

    def increment_send_failures(self) -> None:
        with self._lock:
            self._broadcast.send_failures += 1

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def increment_connections_opened(self) -> None:
        with self._lock:
            self._connection.opened += 1

    def increment_connections_closed(self, errored: bool = False) -> None:
        with self._lock:
            if errored:
                self._connection.errored += 1
            else:
                self._connection.closed += 1

    def add_connections_pruned(self, count: int) -> None:
        with self._lock:
            self._connection.pruned += count

    def increment_rejected_oversize(self) -> None:
        with self._lock:
            self._connection.rejected_oversize += 1

    def increment_accept_timeouts(self) -> None:
        with self._lock:
            self._connection.accept_timeouts += 1

    # ==========================================================================
    # Control Metrics
    # ==========================================================================

    def increment_control(self, message_type: str) -> None:
        with self._lock:
            if hasattr(self._control, message_type):
                setattr(
                    self._control,
                    message_type,
                    getattr(self._control, message_type) + 1,
                )

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Names follow {category}_{metric} with a plural category.
        """
        with self._lock:
            return {
                "frames_received": self._frame.received,
                "frames_unrouted": self._frame.unrouted,
                "frames_relayed": self._frame.relayed,
                "frames_dropped_stale": self._frame.dropped_stale,
                "frames_dropped_superseded": self._frame.dropped_superseded,
                "flushes_total": self._frame.flushes,
                "flushes_forced": self._frame.forced_flushes,
                "broadcasts_total": self._broadcast.total,
                "broadcasts_queued": self._broadcast.queued,
                "broadcasts_skipped_closed": self._broadcast.skipped,
                "broadcasts_dropped_backpressure": self._broadcast.dropped,
                "sends_delivered": self._broadcast.deliveries,
                "sends_failed": self._broadcast.send_failures,
                "connections_opened": self._connection.opened,
                "connections_closed": self._connection.closed,
                "connections_errored": self._connection.errored,
                "connections_pruned": self._connection.pruned,
                "connections_rejected_oversize": self._connection.rejected_oversize,
                "connections_accept_timeouts": self._connection.accept_timeouts,
                "controls_register": self._control.register,
                "controls_frame": self._control.frame,
                "controls_ping": self._control.ping,
            }

    def reset(self) -> dict[str, Any]:
        """Reset all metrics and return the previous values."""
        snapshot = self.get_snapshot()
        with self._lock:
            self._frame = FrameMetrics()
            self._broadcast = BroadcastMetrics()
            self._connection = ConnectionMetrics()
            self._control = ControlMetrics()
        return snapshot
