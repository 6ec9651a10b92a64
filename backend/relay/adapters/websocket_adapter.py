"""
WebSocket Adapter for client communication.

Wraps one inbound connection accepted by the relay's websockets server.

Protocol:
- Client -> Relay: JSON text frames (bytes frames are passed through as-is)
- Relay -> Client: JSON text frames
"""

import logging
from typing import Optional, Union

import websockets
from websockets.asyncio.server import ServerConnection

from .base import BaseClientAdapter

logger = logging.getLogger(__name__)


class WebSocketClientAdapter(BaseClientAdapter):
    """
    Client adapter over a websockets server connection.

    Architecture:
        Client (Browser) <-> WebSocket <-> Relay (Server)
    """

    def __init__(self, ws: ServerConnection):
        """
        Initialize WebSocket Adapter.

        Args:
            ws: Accepted WebSocket connection
        """
        self.ws = ws
        self._closed = False

    @property
    def path(self) -> Optional[str]:
        """Request target of the connection (path and query), if known."""
        request = getattr(self.ws, "request", None)
        return getattr(request, "path", None)

    @property
    def remote_address(self):
        return getattr(self.ws, "remote_address", None)

    async def recv(self) -> Optional[Union[str, bytes]]:
        """
        Receive the next frame from the client.

        Returns:
            Frame if received, None once the connection is closed
        """
        if self._closed:
            return None

        try:
            return await self.ws.recv()
        except websockets.exceptions.ConnectionClosed:
            return None

    async def send(self, text: str):
        """
        Send a text frame to the client.

        Raises:
            ConnectionError: If the connection is closed or send fails
        """
        if self._closed:
            raise ConnectionError("WebSocket not connected")

        try:
            await self.ws.send(text)
        except websockets.exceptions.ConnectionClosed:
            raise ConnectionError("WebSocket connection closed")
        except Exception as e:
            raise ConnectionError(f"Failed to send to client: {e}")

    async def close(self):
        """Close the WebSocket connection (idempotent)."""
        if self._closed:
            return
        self._closed = True
        await self.ws.close()
