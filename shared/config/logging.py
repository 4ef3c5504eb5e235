"""
Structured logging for the gateway.

Loggers accept keyword fields next to the message:

    logger.info("Frame relayed", stream_id="cam1", recipients=3)

Production writes one JSON object per line; development writes a coloured
single line. Both include the correlation id of the connection (or HTTP
request) that produced the record.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

SERVICE_NAME = "stream-gateway"

# Keyword arguments the stdlib logger understands itself
_RESERVED_KWARGS = ("exc_info", "stack_info", "extra")


def _correlation_of(record: logging.LogRecord) -> str | None:
    value = getattr(record, "correlation_id", None)
    return value if value and value != "-" else None


def _fields_of(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", None) or {}


class JsonFormatter(logging.Formatter):
    """One JSON document per record, for log shippers."""

    def __init__(self, include_source: bool = False):
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": SERVICE_NAME,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = _correlation_of(record)
        if correlation_id:
            entry["correlation_id"] = correlation_id

        fields = _fields_of(record)
        if fields:
            entry["data"] = fields

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            entry["source"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Readable, coloured output for a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        parts = [f"{self.DIM}{clock}{self.RESET}", f"{color}{record.levelname:<8}{self.RESET}"]

        correlation_id = _correlation_of(record)
        if correlation_id:
            parts.append(f"{self.DIM}{correlation_id[:12]}{self.RESET}")

        parts.append(f"{record.name}: {record.getMessage()}")

        fields = _fields_of(record)
        if fields:
            parts.append(" ".join(f"{key}={value}" for key, value in fields.items()))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods take arbitrary keyword fields.

    Fields land on the record as `record.fields`; the formatters render
    them. `exc_info`, `stack_info` and `extra` keep their stdlib meaning.
    """

    def _log_fields(self, level: int, msg: str, args: tuple, kwargs: dict[str, Any]) -> None:
        if not self.isEnabledFor(level):
            return
        passthrough = {key: kwargs.pop(key) for key in _RESERVED_KWARGS if key in kwargs}
        extra = dict(passthrough.pop("extra", None) or {})
        extra["fields"] = kwargs
        # Report the caller of info()/warning()/... as the record's source
        self._log(level, msg, args, extra=extra, stacklevel=3, **passthrough)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_fields(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_fields(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_fields(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_fields(logging.ERROR, msg, args, kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_fields(logging.CRITICAL, msg, args, kwargs)


logging.setLoggerClass(StructuredLogger)


def setup_logging(level: int | None = None, json_output: bool | None = None) -> None:
    """
    Install the gateway's handler on the root logger.

    Defaults: DEBUG when settings.debug, JSON output in production.
    Safe to call more than once; the previous handlers are replaced.
    """
    from shared.infrastructure.correlation import CorrelationIdFilter

    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO
    if json_output is None:
        json_output = settings.environment == "production"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(
        JsonFormatter(include_source=settings.debug) if json_output else ConsoleFormatter()
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # uvicorn's access log duplicates the correlation middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Return the StructuredLogger for `name` (usually `__name__`)."""
    return logging.getLogger(name)  # type: ignore[return-value]


gateway_logger = get_logger("stream_gateway")

# Connection lifecycle trail, kept on its own logger so it can be routed apart
connection_audit_logger = get_logger("stream_gateway.audit")


def audit_ws_connection(
    event_type: str,
    endpoint: str,
    connection_id: str | None = None,
    role: str | None = None,
    stream_id: str | None = None,
    origin: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Record one connection lifecycle event.

    Args:
        event_type: CONNECT, REGISTER, DISCONNECT or CONNECT_REJECTED.
        endpoint: WebSocket route the client connected to.
        connection_id: Gateway-assigned connection id.
        role: Declared role, once registered.
        stream_id: Declared stream id, once registered.
        origin: Origin header value.
        reason: Why the event happened, mostly for disconnects.
        **extra: Any further fields.
    """
    fields = {
        "endpoint": endpoint,
        "connection_id": connection_id,
        "role": role,
        "stream_id": stream_id,
        "origin": origin,
        "reason": reason,
        **extra,
    }
    connection_audit_logger.info(
        f"WS_AUDIT: {event_type}",
        event_type=event_type,
        **{key: value for key, value in fields.items() if value is not None},
    )
