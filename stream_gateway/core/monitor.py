"""
Health monitor.

The only time-driven component. Each tick:
1. Force a flush of every buffer whose oldest frame exceeded max-age
2. Disconnect connections marked dead by failed sends
3. Prune connections whose socket is no longer open
4. Tell publishers when their subscriber count changed, and tell a new
   owner (last streamer wins) the count straight away
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, TYPE_CHECKING

from shared.config.logging import get_logger
from stream_gateway.components.core.constants import MessageType

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection
    from stream_gateway.components.connection.registry import ConnectionRegistry
    from stream_gateway.components.streams.buffer import FrameBuffer
    from stream_gateway.components.streams.directory import StreamDirectory
    from stream_gateway.core.connection.broadcaster import FrameBroadcaster
    from stream_gateway.core.connection.cleanup import ConnectionCleanup

logger = get_logger(__name__)


@dataclass
class MonitorReport:
    forced_flushes: int = 0
    frames_relayed: int = 0
    dead_cleaned: int = 0
    pruned: int = 0
    status_events: int = 0


class HealthMonitor:
    def __init__(
        self,
        registry: "ConnectionRegistry",
        directory: "StreamDirectory",
        buffer: "FrameBuffer",
        broadcaster: "FrameBroadcaster",
        cleanup: "ConnectionCleanup",
        status_events_enabled: bool = True,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._directory = directory
        self._buffer = buffer
        self._broadcaster = broadcaster
        self._cleanup = cleanup
        self._status_events_enabled = status_events_enabled
        self._wall_clock = wall_clock
        # (subscriber count, owner) last reported per published stream
        self._reported: dict[str, tuple[int, "ClientConnection"]] = {}

    async def tick(self) -> MonitorReport:
        """Run one sweep. Must run inside a hub turn."""
        report = MonitorReport()

        for stream_id in self._buffer.stale_streams():
            tier = self._buffer.tier_for(stream_id)
            age = self._buffer.oldest_age(stream_id) or 0.0
            logger.warning(
                "Stream buffer exceeded max age, forcing flush",
                stream_id=stream_id,
                tier=tier.name,
                age_ms=round(age * 1000),
                max_age_ms=tier.max_age_ms,
            )
            result = self._buffer.flush(stream_id, forced=True)
            report.forced_flushes += 1
            await self._broadcaster.deliver_flush(result)
            if result.frame is not None:
                report.frames_relayed += 1

        report.dead_cleaned = await self._cleanup.cleanup_dead_connections()
        report.pruned = await self._cleanup.prune_closed_connections()

        if self._status_events_enabled:
            report.status_events = await self._emit_stream_status()

        return report

    async def _emit_stream_status(self) -> int:
        current: dict[str, tuple[int, "ClientConnection"]] = {}
        for stream_id in self._directory.list():
            owner = self._directory.owner_of(stream_id)
            if owner is not None:
                current[stream_id] = (self._registry.count_viewers(stream_id), owner)

        sent = 0
        for stream_id, (count, owner) in current.items():
            last = self._reported.get(stream_id)
            if last is not None and last[0] == count and last[1] is owner:
                continue
            await self._broadcaster.send_json(
                [owner],
                {
                    "type": MessageType.STREAM_STATUS.value,
                    "streamId": stream_id,
                    "activeViewers": count,
                    "timestamp": int(self._wall_clock() * 1000),
                },
                context="streamStatus",
            )
            sent += 1

        self._reported = current
        return sent
