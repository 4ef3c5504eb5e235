"""
Self-describing framed payloads.

A binary payload may carry its own stream id instead of relying on a
preceding `frame` control message:

    b"SGF1" | len: u8 | stream_id: utf-8 (len bytes) | frame bytes

Anything that does not parse as a complete header is plain frame data.
"""

from __future__ import annotations

from stream_gateway.components.core.constants import (
    FRAME_HEADER_MAGIC,
    MAX_STREAM_ID_LENGTH,
)
from stream_gateway.components.core.exceptions import FramingError

_HEADER_PREFIX_LEN = len(FRAME_HEADER_MAGIC) + 1


def encode_framed_payload(stream_id: str, payload: bytes) -> bytes:
    """Prefix `payload` with a header naming `stream_id`."""
    encoded = stream_id.encode("utf-8")
    if not encoded:
        raise FramingError("Stream id must not be empty")
    if len(encoded) > MAX_STREAM_ID_LENGTH:
        raise FramingError(
            f"Stream id is {len(encoded)} bytes, limit is {MAX_STREAM_ID_LENGTH}"
        )
    return FRAME_HEADER_MAGIC + bytes([len(encoded)]) + encoded + payload


def decode_framed_payload(raw: bytes) -> tuple[str, bytes] | None:
    """
    Split a framed payload into (stream_id, frame bytes).

    Returns None when `raw` has no valid header: missing magic, zero or
    truncated id, or an id that is not UTF-8.
    """
    if not raw.startswith(FRAME_HEADER_MAGIC) or len(raw) < _HEADER_PREFIX_LEN:
        return None

    id_len = raw[len(FRAME_HEADER_MAGIC)]
    id_end = _HEADER_PREFIX_LEN + id_len
    if id_len == 0 or len(raw) < id_end:
        return None

    try:
        stream_id = raw[_HEADER_PREFIX_LEN:id_end].decode("utf-8")
    except UnicodeDecodeError:
        return None

    return stream_id, raw[id_end:]
