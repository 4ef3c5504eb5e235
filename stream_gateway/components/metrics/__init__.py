"""
Metrics collection and Prometheus export.
"""

from stream_gateway.components.metrics.collector import MetricsCollector
from stream_gateway.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    "MetricsCollector",
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]
