"""
Realtime Adapter for upstream communication.

Opens one WebSocket connection to an OpenAI-style Realtime API per relay
session.

Protocol:
- Handshake: Authorization (Bearer key) + OpenAI-Beta: realtime=v1 headers
- Relay -> Upstream: JSON text frames {"event_id", "type", ...payload}
- Upstream -> Relay: JSON text frames, each one server event
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import websockets
from websockets.asyncio.client import ClientConnection
from websockets.protocol import State

from .base import BaseUpstreamAdapter
from relay.data_types import ServerEvent, UpstreamClosed, UpstreamError, UpstreamEvent
from relay.errors import UpstreamSendError
from relay.protocol import build_upstream_event, decode_server_frame, mask_secret

logger = logging.getLogger(__name__)

DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-10-01"


class RealtimeUpstreamAdapter(BaseUpstreamAdapter):
    """
    WebSocket client adapter for the Realtime API.

    Architecture:
        Relay (Client) <-> WebSocket <-> Realtime API (Server)

    Responsibilities:
    - Authenticate and connect to the Realtime endpoint
    - Stamp and send events
    - Read server events in the background and queue them as tagged variants
    - Report connection closure exactly once
    """

    def __init__(self,
                 api_key: str,
                 url: str = DEFAULT_REALTIME_URL,
                 model: Optional[str] = DEFAULT_REALTIME_MODEL):
        """
        Initialize Realtime Adapter.

        Args:
            api_key: Realtime API key (never logged in full)
            url: Realtime WebSocket endpoint
            model: Model name, sent as the 'model' query parameter
        """
        self.api_key = api_key
        self.url = url
        self.model = model

        self.ws: Optional[ClientConnection] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._events: asyncio.Queue = asyncio.Queue()
        self._close_reported = False
        self._disconnected = False

    @property
    def endpoint(self) -> str:
        if not self.model:
            return self.url
        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{urlencode({'model': self.model})}"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    async def connect(self, timeout: Optional[float] = 10.0) -> bool:
        """
        Connect to the Realtime API.

        Args:
            timeout: Handshake timeout in seconds (None: no limit)

        Returns:
            True if connection succeeded, False otherwise

        Raises:
            RuntimeError: If already connected
        """
        if self.ws is not None:
            raise RuntimeError("Already connected, use disconnect() first")

        logger.info("[Upstream] Connecting to %s with key \"%s\"",
                    self.endpoint, mask_secret(self.api_key))

        try:
            ws = await websockets.connect(
                self.endpoint,
                additional_headers=self.headers,
                max_size=None,
                open_timeout=timeout,
            )
        except (asyncio.TimeoutError, TimeoutError):
            logger.error("[Upstream] Connection timeout after %ss", timeout)
            return False
        except (OSError, websockets.exceptions.WebSocketException) as e:
            logger.error("[Upstream] Connection failed: %s", e)
            return False

        if self._disconnected:
            # disconnect() was requested while the handshake was in flight
            await ws.close()
            return False

        self.ws = ws
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info("[Upstream] Connected")
        return True

    async def _read_loop(self):
        """Receive server events until the connection closes."""
        try:
            async for raw in self.ws:
                try:
                    event = decode_server_frame(raw)
                except ValueError as e:
                    self._events.put_nowait(UpstreamError(f"Malformed server event: {e}"))
                    continue
                self._events.put_nowait(ServerEvent(event))

        except websockets.exceptions.ConnectionClosed:
            pass

        finally:
            self._report_closed(self.ws.close_code, self.ws.close_reason or "")

    def _report_closed(self, code: Optional[int] = None, reason: str = ""):
        if self._close_reported:
            return
        self._close_reported = True
        logger.info("[Upstream] Connection closed (code=%s, reason=%r)", code, reason)
        self._events.put_nowait(UpstreamClosed(code=code, reason=reason))

    async def send(self, event_type: str, event: Dict[str, Any]):
        """
        Send an event to the Realtime API.

        Args:
            event_type: Event type
            event: Full event object; its fields override the generated ones

        Raises:
            UpstreamSendError: If not connected or the connection fails
        """
        if not self.is_connected():
            raise UpstreamSendError("Upstream is not connected")

        payload = build_upstream_event(event_type, event)

        try:
            await self.ws.send(json.dumps(payload))
        except websockets.exceptions.ConnectionClosed as e:
            raise UpstreamSendError(f"Upstream connection closed: {e}")
        except (TypeError, ValueError) as e:
            raise UpstreamSendError(f"Failed to encode event '{event_type}': {e}")

    async def recv_event(self) -> UpstreamEvent:
        """
        Receive the next upstream event.

        Returns:
            ServerEvent, UpstreamClosed or UpstreamError
        """
        return await self._events.get()

    def is_connected(self) -> bool:
        return self.ws is not None and self.ws.state is State.OPEN

    async def disconnect(self):
        """Close the Realtime connection (idempotent)."""
        if self._disconnected:
            return
        self._disconnected = True

        if self.ws is not None:
            await self.ws.close()
        if self._reader_task is not None:
            await self._reader_task

        self._report_closed()
