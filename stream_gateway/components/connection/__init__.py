"""
Connection components: handle and state machine, registry, outbox, heartbeat.
"""

from stream_gateway.components.connection.handle import ClientConnection, ConnectionState
from stream_gateway.components.connection.registry import ClientInfo, ConnectionRegistry
from stream_gateway.components.connection.outbox import ConnectionOutbox
from stream_gateway.components.connection.heartbeat import HeartbeatTracker

__all__ = [
    "ClientConnection",
    "ConnectionState",
    "ClientInfo",
    "ConnectionRegistry",
    "ConnectionOutbox",
    "HeartbeatTracker",
]
