"""
Stream Gateway Constants.

Centralized constants with documentation explaining each value.
"""

from enum import Enum, IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "WSConstants",
    "ClientRole",
    "MessageType",
    "ALL_STREAMS",
    "MSG_PING_PLAIN",
    "MSG_PONG_JSON",
    "FRAME_HEADER_MAGIC",
    "MAX_STREAM_ID_LENGTH",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down
    MESSAGE_TOO_BIG = 1009  # Inbound message above MAX_FRAME_SIZE


class WSConstants:
    """
    Stream Gateway operational constants.

    These are defaults used when settings are not available. At runtime the
    hub and endpoints read `shared.config.settings.settings`, which can
    override them via environment variables.
    """

    # ==========================================================================
    # Timeout Constants
    # ==========================================================================

    # WS_ACCEPT_TIMEOUT: 5 seconds
    # WebSocket handshake should complete well within this window.
    WS_ACCEPT_TIMEOUT: Final[float] = 5.0

    # MONITOR_INTERVAL: 1 second
    # Cadence of the health sweep. Stale buffers wait at most one interval
    # beyond their max-age before a forced flush.
    MONITOR_INTERVAL: Final[float] = 1.0

    # HEARTBEAT_IDLE_SECONDS: 60 seconds
    # Connections silent for longer are reported in stats, never closed.
    HEARTBEAT_IDLE_SECONDS: Final[float] = 60.0

    # ==========================================================================
    # Size Limits
    # ==========================================================================

    # MAX_FRAME_SIZE: 4 MiB
    # Large enough for a full-HD JPEG frame with room to spare.
    MAX_FRAME_SIZE: Final[int] = 4 * 1024 * 1024

    # MAX_DEAD_CONNECTIONS: 500
    # Limit on connections marked dead between sweeps. When the limit is
    # reached the oldest entry is disconnected immediately.
    MAX_DEAD_CONNECTIONS: Final[int] = 500

    # OUTBOX_SIZE: 32 messages
    # Per-connection send queue. A peer that falls this far behind loses
    # new messages until its writer catches up; frames are lossy anyway.
    OUTBOX_SIZE: Final[int] = 32


# Wildcard stream id: subscribes to every stream
ALL_STREAMS: Final[str] = "all"

# Message constants for heartbeat protocol
MSG_PING_PLAIN: Final[str] = "ping"
MSG_PONG_JSON: Final[str] = '{"type":"pong"}'

# Framed payload header: magic, 1-byte id length, UTF-8 stream id, frame bytes
FRAME_HEADER_MAGIC: Final[bytes] = b"SGF1"
MAX_STREAM_ID_LENGTH: Final[int] = 255


class ClientRole(str, Enum):
    """Role declared by a client in its register message."""

    STREAMER = "streamer"
    VIEWER = "viewer"
    MULTI_VIEWER = "multi-viewer"


class MessageType(str, Enum):
    """Values of the `type` field in JSON status messages sent to clients."""

    ACTIVE_STREAMS = "active-streams"
    STREAM_STATUS = "streamStatus"
