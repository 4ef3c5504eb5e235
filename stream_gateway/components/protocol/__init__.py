"""
Wire protocol: control messages, data payloads and framed headers.
"""

from stream_gateway.components.protocol.framing import (
    decode_framed_payload,
    encode_framed_payload,
)
from stream_gateway.components.protocol.messages import (
    DataMessage,
    FrameMessage,
    PingMessage,
    RegisterMessage,
    decode_message,
)

__all__ = [
    "decode_framed_payload",
    "encode_framed_payload",
    "DataMessage",
    "FrameMessage",
    "PingMessage",
    "RegisterMessage",
    "decode_message",
]
