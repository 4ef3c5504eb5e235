"""
Gateway exceptions.

Transport errors (WebSocketDisconnect, ConnectionError, RuntimeError, OSError)
are not wrapped: they are caught at the send/receive boundary and turned into
lifecycle events. These exceptions cover misuse of gateway components.
"""


class GatewayError(Exception):
    """Base class for stream gateway errors."""


class InvalidStateTransition(GatewayError):
    """A connection was moved along an edge its state machine does not have."""

    def __init__(self, connection_id: str, current: str, target: str) -> None:
        self.connection_id = connection_id
        self.current = current
        self.target = target
        super().__init__(
            f"Connection {connection_id}: cannot go from {current} to {target}"
        )


class FramingError(GatewayError):
    """A framed payload could not be encoded."""


class TierConfigError(GatewayError):
    """A buffering tier has an invalid capacity, max-age or priority."""
