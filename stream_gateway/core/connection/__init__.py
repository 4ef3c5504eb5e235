"""
Connection management split by responsibility.

- lifecycle.py: open and one-time disconnect
- broadcaster.py: best-effort fan-out through per-connection outboxes
- cleanup.py: dead and closed connection sweeps
- stats.py: aggregated statistics
"""

from stream_gateway.core.connection.lifecycle import ConnectionLifecycle
from stream_gateway.core.connection.broadcaster import FrameBroadcaster
from stream_gateway.core.connection.cleanup import ConnectionCleanup
from stream_gateway.core.connection.stats import GatewayStats

__all__ = [
    "ConnectionLifecycle",
    "FrameBroadcaster",
    "ConnectionCleanup",
    "GatewayStats",
]
