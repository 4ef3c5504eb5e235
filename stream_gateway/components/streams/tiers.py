"""
Buffering tiers.

A tier bundles the capacity, max-age and priority applied to a stream's
frame buffer. Stream ids map to tiers by exact match, with a default for
everything else.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Mapping, TYPE_CHECKING

from stream_gateway.components.core.exceptions import TierConfigError

if TYPE_CHECKING:
    from shared.config.settings import TierSettings


@dataclass(frozen=True, slots=True)
class StreamTier:
    """
    Attributes:
        name: Tier label used in logs and metrics.
        capacity: Buffer length that triggers an immediate flush.
        max_age: Seconds a frame stays fresh.
        priority: Lower is swept first by the health monitor.
    """

    name: str
    capacity: int
    max_age: float
    priority: int

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise TierConfigError(f"Tier {self.name}: capacity must be >= 1")
        if self.max_age <= 0:
            raise TierConfigError(f"Tier {self.name}: max_age must be positive")

    @property
    def max_age_ms(self) -> int:
        return round(self.max_age * 1000)


MAIN_TIER = StreamTier(name="main", capacity=5, max_age=0.100, priority=1)
DEPTH_TIER = StreamTier(name="depth", capacity=3, max_age=0.200, priority=2)
DEFAULT_TIER = StreamTier(name="default", capacity=2, max_age=0.300, priority=3)

BUILTIN_TIERS: dict[str, StreamTier] = {
    "main": MAIN_TIER,
    "depth": DEPTH_TIER,
}


class TierTable:
    """Stream id -> StreamTier lookup with a default fallback."""

    def __init__(
        self,
        tiers: Mapping[str, StreamTier] | None = None,
        default: StreamTier = DEFAULT_TIER,
    ) -> None:
        self._tiers = dict(BUILTIN_TIERS if tiers is None else tiers)
        self._default = default

    @classmethod
    def from_settings(cls, overrides: Mapping[str, "TierSettings"]) -> "TierTable":
        """Built-in tiers extended or replaced by STREAM_TIERS entries."""
        tiers = dict(BUILTIN_TIERS)
        for stream_id, cfg in overrides.items():
            tiers[stream_id] = StreamTier(
                name=stream_id,
                capacity=cfg.capacity,
                max_age=cfg.max_age_ms / 1000,
                priority=cfg.priority,
            )
        return cls(tiers)

    @property
    def default(self) -> StreamTier:
        return self._default

    def for_stream(self, stream_id: str) -> StreamTier:
        return self._tiers.get(stream_id, self._default)

    def items(self) -> Iterator[tuple[str, StreamTier]]:
        yield from self._tiers.items()
