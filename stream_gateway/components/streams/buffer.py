"""
Per-stream frame buffer.

Frames are admitted into a short FIFO per stream. When the FIFO reaches its
tier's capacity (or the health monitor finds its oldest frame stale) it is
flushed: the newest frame still within max-age is handed back for
broadcast, everything else is discarded, and the FIFO is cleared. Nothing is
ever queued behind a flush, so viewers always get the freshest frame and
never a backlog.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

from stream_gateway.components.streams.tiers import StreamTier, TierTable

if TYPE_CHECKING:
    from stream_gateway.components.connection.handle import ClientConnection


@dataclass(frozen=True, slots=True)
class BufferedFrame:
    payload: bytes
    enqueued_at: float
    origin: "ClientConnection | None"


@dataclass(frozen=True, slots=True)
class FlushResult:
    """
    Outcome of one flush.

    Attributes:
        stream_id: Flushed stream.
        frame: Newest fresh frame, or None if every buffered frame was stale.
        stale: Frames dropped for exceeding max-age.
        superseded: Fresh frames dropped because a newer fresh frame existed.
        forced: True when the health monitor triggered the flush.
    """

    stream_id: str
    frame: BufferedFrame | None
    stale: int
    superseded: int
    forced: bool = False

    @property
    def dropped(self) -> int:
        return self.stale + self.superseded


class FrameBuffer:
    """
    Bounded, time-windowed frame holding area keyed by stream id.

    Not thread-safe; admit and flush for a stream happen within one hub turn.
    """

    def __init__(
        self,
        tiers: TierTable | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._tiers = tiers or TierTable()
        self._clock = clock
        self._buffers: dict[str, list[BufferedFrame]] = {}

    @property
    def tiers(self) -> TierTable:
        return self._tiers

    def tier_for(self, stream_id: str) -> StreamTier:
        return self._tiers.for_stream(stream_id)

    def admit(
        self,
        stream_id: str,
        payload: bytes,
        origin: "ClientConnection | None" = None,
    ) -> FlushResult | None:
        """
        Append a frame. Flushes immediately when the buffer reaches capacity.

        Returns the FlushResult if a flush happened, else None.
        """
        buffer = self._buffers.setdefault(stream_id, [])
        buffer.append(BufferedFrame(payload, self._clock(), origin))

        if len(buffer) >= self.tier_for(stream_id).capacity:
            return self.flush(stream_id)
        return None

    def flush(self, stream_id: str, forced: bool = False) -> FlushResult:
        """
        Select the newest fresh frame and clear the stream's buffer.

        A frame is fresh while its age is <= the tier's max-age.
        """
        frames = self._buffers.pop(stream_id, [])
        max_age = self.tier_for(stream_id).max_age
        now = self._clock()

        fresh = [f for f in frames if now - f.enqueued_at <= max_age]
        stale = len(frames) - len(fresh)

        if not fresh:
            return FlushResult(stream_id, None, stale, 0, forced)

        return FlushResult(stream_id, fresh[-1], stale, len(fresh) - 1, forced)

    def oldest_age(self, stream_id: str) -> float | None:
        frames = self._buffers.get(stream_id)
        if not frames:
            return None
        return self._clock() - frames[0].enqueued_at

    def stale_streams(self) -> list[str]:
        """
        Streams whose oldest buffered frame exceeds the tier's max-age.

        Ordered by tier priority (lower first), then by buffer creation.
        """
        stale = []
        for stream_id in list(self._buffers):
            age = self.oldest_age(stream_id)
            if age is not None and age > self.tier_for(stream_id).max_age:
                stale.append(stream_id)
        return sorted(stale, key=lambda s: self.tier_for(s).priority)

    def pending(self, stream_id: str) -> int:
        return len(self._buffers.get(stream_id, ()))

    def discard(self, stream_id: str) -> int:
        """Drop a stream's buffer without delivering. Returns frames dropped."""
        return len(self._buffers.pop(stream_id, []))

    def get_stats(self) -> dict[str, Any]:
        return {
            "buffered_streams": len(self._buffers),
            "buffered_frames": sum(len(b) for b in self._buffers.values()),
            "per_stream": {
                stream_id: {
                    "pending": len(frames),
                    "tier": self.tier_for(stream_id).name,
                }
                for stream_id, frames in self._buffers.items()
            },
        }
