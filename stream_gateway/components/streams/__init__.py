"""
Per-stream state: buffering tiers, frame buffer and the published stream list.
"""

from stream_gateway.components.streams.tiers import StreamTier, TierTable
from stream_gateway.components.streams.buffer import FlushResult, FrameBuffer
from stream_gateway.components.streams.directory import StreamDirectory

__all__ = [
    "StreamTier",
    "TierTable",
    "FlushResult",
    "FrameBuffer",
    "StreamDirectory",
]
