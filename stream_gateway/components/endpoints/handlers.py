"""
Concrete WebSocket Endpoint Implementations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import WebSocket

from stream_gateway.components.endpoints.base import WebSocketEndpointBase

if TYPE_CHECKING:
    from shared.config.settings import Settings
    from stream_gateway.hub import StreamHub


class StreamEndpoint(WebSocketEndpointBase):
    """
    WebSocket endpoint shared by streamers, viewers and multi-viewers.

    Clients declare their role with a register message after connecting;
    every message goes to the hub's dispatcher as one turn.
    """

    def __init__(
        self,
        websocket: WebSocket,
        hub: "StreamHub",
        endpoint_name: str,
        settings: "Settings",
    ):
        super().__init__(
            websocket=websocket,
            hub=hub,
            endpoint_name=endpoint_name,
            max_message_size=settings.max_frame_size,
            accept_timeout=settings.ws_accept_timeout,
        )

    async def handle_message(self, data: str | bytes) -> None:
        await self.hub.handle_message(self.connection, data)
