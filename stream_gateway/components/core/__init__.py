"""
Core components: constants, context and exceptions.
"""

from stream_gateway.components.core.constants import (
    ALL_STREAMS,
    ClientRole,
    MessageType,
    WSCloseCode,
    WSConstants,
)
from stream_gateway.components.core.context import WebSocketContext, sanitize_log_data
from stream_gateway.components.core.exceptions import (
    FramingError,
    GatewayError,
    InvalidStateTransition,
    TierConfigError,
)

__all__ = [
    "ALL_STREAMS",
    "ClientRole",
    "MessageType",
    "WSCloseCode",
    "WSConstants",
    "WebSocketContext",
    "sanitize_log_data",
    "GatewayError",
    "InvalidStateTransition",
    "FramingError",
    "TierConfigError",
]
