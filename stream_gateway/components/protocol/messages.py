"""
Inbound message decoding.

Every payload a client sends is decoded exactly once into either a control
message (JSON naming a known `type` and matching its schema) or opaque data.
Text that fails every control schema is data, never an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from stream_gateway.components.core.constants import MSG_PING_PLAIN, ClientRole
from stream_gateway.components.protocol.framing import decode_framed_payload


class _ControlBase(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)


class RegisterMessage(_ControlBase):
    """Declare role and stream id. Re-sending overwrites the previous one."""

    type: Literal["register"]
    role: ClientRole
    stream_id: str = Field(alias="streamId", min_length=1)


class FrameMessage(_ControlBase):
    """Prime the next data payload from this connection with a stream id."""

    type: Literal["frame"]
    stream_id: str = Field(alias="streamId", min_length=1)


class PingMessage(_ControlBase):
    type: Literal["ping"] = "ping"


ControlMessage = Annotated[
    Union[RegisterMessage, FrameMessage, PingMessage],
    Field(discriminator="type"),
]

_control_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)


@dataclass(frozen=True, slots=True)
class DataMessage:
    """
    Opaque frame payload.

    `stream_id` is set only when the payload carried a framed header.
    """

    payload: bytes
    stream_id: str | None = None


InboundMessage = Union[RegisterMessage, FrameMessage, PingMessage, DataMessage]


def _try_control(raw: str | bytes) -> ControlMessage | None:
    try:
        return _control_adapter.validate_json(raw)
    except ValidationError:
        return None


def decode_message(raw: str | bytes) -> InboundMessage:
    """
    Classify one inbound WebSocket message.

    Text: bare `ping`, then the control schemas, else the UTF-8 bytes as data.
    Binary: a framed header, then the control schemas (a binary payload that
    is valid control JSON is treated as control), else raw data.
    """
    if isinstance(raw, str):
        if raw == MSG_PING_PLAIN:
            return PingMessage()
        control = _try_control(raw)
        if control is not None:
            return control
        return DataMessage(payload=raw.encode("utf-8"))

    framed = decode_framed_payload(raw)
    if framed is not None:
        stream_id, payload = framed
        return DataMessage(payload=payload, stream_id=stream_id)

    # Only JSON objects can be control messages; skip the parse for image bytes
    if raw.lstrip()[:1] == b"{":
        control = _try_control(raw)
        if control is not None:
            return control

    return DataMessage(payload=raw)
