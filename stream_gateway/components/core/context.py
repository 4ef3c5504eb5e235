"""
Per-connection audit context.

Everything the audit trail needs to know about one WebSocket connection,
gathered in one place so endpoints can log lifecycle events with a single
call. Client-controlled strings pass through `sanitize_log_data` first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import WebSocket

# C0/C1 controls, zero-width and bidi marks, isolates, BOM
_UNPRINTABLE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)

LOG_FIELD_LIMIT = 100


def sanitize_log_data(data: str, max_length: int = LOG_FIELD_LIMIT) -> str:
    """
    Make a client-supplied string safe to put in a log line.

    Truncates to `max_length` (marking the cut with "..."), strips
    unprintable characters, and escapes backslashes and double quotes.
    Truncation happens first so an escape sequence is never split.
    """
    clipped = data[:max_length]
    cleaned = _UNPRINTABLE.sub("", clipped)
    escaped = cleaned.replace("\\", "\\\\").replace('"', '\\"')
    return escaped + "..." if len(data) > max_length else escaped


@dataclass
class WebSocketContext:
    """
    Audit metadata for one connection.

    `role` and `stream_id` stay empty until the client registers; the
    endpoint copies them in before logging the disconnect.

    Usage:
        ctx = WebSocketContext.from_websocket(websocket, "/ws/stream", conn_id)
        ctx.audit("CONNECT")
        ctx.audit("DISCONNECT", reason="client_disconnect")
    """

    endpoint: str
    connection_id: str | None = None
    origin: str | None = None
    role: str | None = None
    stream_id: str | None = None

    @classmethod
    def from_websocket(
        cls,
        websocket: "WebSocket",
        endpoint: str,
        connection_id: str | None = None,
    ) -> "WebSocketContext":
        origin = websocket.headers.get("origin")
        return cls(
            endpoint=endpoint,
            connection_id=connection_id,
            origin=sanitize_log_data(origin) if origin else None,
        )

    def update_registration(self, role: str, stream_id: str) -> None:
        self.role = role
        self.stream_id = sanitize_log_data(stream_id)

    def to_audit_dict(self, event_type: str, **extra: Any) -> dict[str, Any]:
        """Fields for one audit record. Unset fields are left out."""
        known = {
            "connection_id": self.connection_id,
            "origin": self.origin,
            "role": self.role,
            "stream_id": self.stream_id,
        }
        return {
            "event_type": event_type,
            "endpoint": self.endpoint,
            **{key: value for key, value in known.items() if value},
            **extra,
        }

    def audit(
        self,
        event_type: str,
        logger_func: Callable[..., None] | None = None,
        **extra: Any,
    ) -> None:
        """Emit an audit record, through `audit_ws_connection` by default."""
        if logger_func is None:
            from shared.config.logging import audit_ws_connection

            logger_func = audit_ws_connection
        logger_func(**self.to_audit_dict(event_type, **extra))
