"""
Heartbeat tracking for the stream gateway.

Heartbeats (pings and every other inbound message) only update
last-activity; idle connections are reported, never disconnected.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from stream_gateway.components.core.constants import WSConstants

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection


class HeartbeatTracker:
    """
    Reports connection idleness from ClientConnection.last_activity.

    The registry owns the connections; this only reads their timestamps.
    """

    def __init__(self, idle_seconds: float = WSConstants.HEARTBEAT_IDLE_SECONDS):
        self._idle_seconds = idle_seconds

    @property
    def idle_threshold(self) -> float:
        return self._idle_seconds

    def idle_connections(
        self, connections: list["ClientConnection"]
    ) -> list["ClientConnection"]:
        return [c for c in connections if c.idle_seconds() > self._idle_seconds]

    def get_stats(self, connections: list["ClientConnection"]) -> dict[str, float | int]:
        ages = [c.idle_seconds() for c in connections]
        return {
            "tracked_connections": len(ages),
            "idle_threshold_seconds": self._idle_seconds,
            "idle_connections": len(self.idle_connections(connections)),
            "oldest_activity_age": round(max(ages), 3) if ages else 0,
            "average_activity_age": round(sum(ages) / len(ages), 3) if ages else 0,
        }
