"""
Prometheus Metrics Export for the Stream Gateway.

Formats internal metrics in Prometheus text exposition format.
No external dependencies required.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from stream_gateway.hub import StreamHub


class MetricType(str, Enum):
    """Prometheus metric types."""

    COUNTER = "counter"
    GAUGE = "gauge"


# (metric suffix, snapshot key, help text) for MetricsCollector counters
COUNTER_METRICS: list[tuple[str, str, str]] = [
    ("frames_received_total", "frames_received", "Data payloads received from clients"),
    ("frames_unrouted_total", "frames_unrouted", "Data payloads dropped before buffering"),
    ("frames_relayed_total", "frames_relayed", "Flushes that broadcast a frame"),
    ("frames_dropped_stale_total", "frames_dropped_stale", "Buffered frames dropped for exceeding max-age"),
    ("frames_dropped_superseded_total", "frames_dropped_superseded", "Fresh frames dropped in favour of a newer one"),
    ("flushes_total", "flushes_total", "Frame buffer flushes"),
    ("flushes_forced_total", "flushes_forced", "Flushes forced by the health monitor"),
    ("broadcasts_total", "broadcasts_total", "Frame and status broadcasts"),
    ("broadcasts_queued_total", "broadcasts_queued", "Messages queued on recipient outboxes"),
    ("broadcasts_skipped_closed_total", "broadcasts_skipped_closed", "Recipients skipped because their socket was closed"),
    ("broadcasts_dropped_backpressure_total", "broadcasts_dropped_backpressure", "Messages dropped because the recipient outbox was full"),
    ("sends_delivered_total", "sends_delivered", "Sends completed by connection writers"),
    ("sends_failed_total", "sends_failed", "Sends that failed and marked the connection dead"),
    ("connections_opened_total", "connections_opened", "WebSocket connections accepted"),
    ("connections_pruned_total", "connections_pruned", "Connections removed by the health monitor"),
    ("connections_accept_timeouts_total", "connections_accept_timeouts", "Handshakes that timed out"),
]


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


class PrometheusFormatter:
    """
    Formats metrics in Prometheus text exposition format.

    Reference: https://prometheus.io/docs/instrumenting/exposition_formats/

    Usage:
        formatter = PrometheusFormatter()
        output = formatter.format_all_metrics(hub.get_stats())
    """

    def __init__(self, prefix: str = "streamgw"):
        self._prefix = prefix

    def _name(self, suffix: str) -> str:
        return f"{self._prefix}_{suffix}"

    def format_metric(
        self,
        name: str,
        value: float | int,
        help_text: str,
        metric_type: MetricType,
        labels: dict[str, str] | None = None,
    ) -> str:
        """Format a single metric with its HELP and TYPE lines."""
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} {metric_type.value}",
        ]

        if labels:
            label_str = ",".join(f'{k}="{_escape_label(v)}"' for k, v in labels.items())
            lines.append(f"{name}{{{label_str}}} {value}")
        else:
            lines.append(f"{name} {value}")

        return "\n".join(lines)

    def format_labeled(
        self,
        name: str,
        help_text: str,
        metric_type: MetricType,
        label: str,
        values: dict[str, float | int],
    ) -> str:
        """Format one metric family with one sample per label value."""
        lines = [
            f"# HELP {name} {help_text}",
            f"# TYPE {name} {metric_type.value}",
        ]
        for key, value in values.items():
            lines.append(f'{name}{{{label}="{_escape_label(key)}"}} {value}')
        return "\n".join(lines)

    def format_all_metrics(self, stats: dict[str, Any]) -> str:
        """
        Format all metrics from StreamHub.get_stats().

        Returns:
            Complete Prometheus exposition format string.
        """
        lines: list[str] = []
        metrics = stats.get("metrics", {})
        registry = stats.get("registry", {})
        buffer = stats.get("buffer", {})
        heartbeat_stats = stats.get("heartbeat_stats", {})

        # Gauges
        lines.append(self.format_metric(
            self._name("connections"),
            stats.get("total_connections", 0),
            "Current number of tracked WebSocket connections",
            MetricType.GAUGE,
        ))

        lines.append(self.format_labeled(
            self._name("connections_by_role"),
            "Tracked connections by declared role",
            MetricType.GAUGE,
            "role",
            {
                "streamer": registry.get("streamers", 0),
                "viewer": registry.get("viewers", 0),
                "multi-viewer": registry.get("multi_viewers", 0),
                "unregistered": registry.get("unregistered", 0),
            },
        ))

        lines.append(self.format_metric(
            self._name("active_streams"),
            stats.get("active_streams", 0),
            "Currently published stream ids",
            MetricType.GAUGE,
        ))

        lines.append(self.format_metric(
            self._name("dead_connections_pending"),
            stats.get("dead_connections_pending", 0),
            "Connections marked dead awaiting the next sweep",
            MetricType.GAUGE,
        ))

        lines.append(self.format_metric(
            self._name("buffered_frames"),
            buffer.get("buffered_frames", 0),
            "Frames currently held in stream buffers",
            MetricType.GAUGE,
        ))

        lines.append(self.format_metric(
            self._name("outbox_queued_messages"),
            stats.get("outbox", {}).get("queued_messages", 0),
            "Messages waiting on connection outboxes",
            MetricType.GAUGE,
        ))

        viewers = stats.get("viewers_per_stream", {})
        if viewers:
            lines.append(self.format_labeled(
                self._name("stream_viewers"),
                "Subscribers per published stream",
                MetricType.GAUGE,
                "stream",
                viewers,
            ))

        lines.append(self.format_metric(
            self._name("heartbeat_idle_connections"),
            heartbeat_stats.get("idle_connections", 0),
            "Connections idle beyond the heartbeat threshold",
            MetricType.GAUGE,
        ))

        lines.append(self.format_metric(
            self._name("heartbeat_oldest_activity_age_seconds"),
            heartbeat_stats.get("oldest_activity_age", 0),
            "Age of the least recent client activity",
            MetricType.GAUGE,
        ))

        # Counters
        for suffix, key, help_text in COUNTER_METRICS:
            lines.append(self.format_metric(
                self._name(suffix),
                metrics.get(key, 0),
                help_text,
                MetricType.COUNTER,
            ))

        lines.append(self.format_labeled(
            self._name("connections_ended_total"),
            "Connections ended by outcome",
            MetricType.COUNTER,
            "outcome",
            {
                "closed": metrics.get("connections_closed", 0),
                "errored": metrics.get("connections_errored", 0),
                "oversize": metrics.get("connections_rejected_oversize", 0),
            },
        ))

        lines.append(self.format_labeled(
            self._name("control_messages_total"),
            "Control messages received by type",
            MetricType.COUNTER,
            "type",
            {
                "register": metrics.get("controls_register", 0),
                "frame": metrics.get("controls_frame", 0),
                "ping": metrics.get("controls_ping", 0),
            },
        ))

        lines.append(self.format_metric(
            self._name("scrape_timestamp"),
            int(time.time()),
            "Timestamp of metrics scrape",
            MetricType.GAUGE,
        ))

        return "\n".join(lines) + "\n"


_formatter: PrometheusFormatter | None = None


def get_prometheus_formatter() -> PrometheusFormatter:
    """Get singleton Prometheus formatter."""
    global _formatter
    if _formatter is None:
        _formatter = PrometheusFormatter()
    return _formatter


def generate_prometheus_metrics(hub: "StreamHub") -> str:
    """Render the hub's current stats in Prometheus exposition format."""
    return get_prometheus_formatter().format_all_metrics(hub.get_stats())
