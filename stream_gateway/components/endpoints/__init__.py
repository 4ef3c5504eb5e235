"""
WebSocket endpoints.
"""

from stream_gateway.components.endpoints.base import WebSocketEndpointBase
from stream_gateway.components.endpoints.handlers import StreamEndpoint

__all__ = ["WebSocketEndpointBase", "StreamEndpoint"]
