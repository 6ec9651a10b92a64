"""
Relay Server - Accepts client connections and runs one session per client.

Responsibilities:
- Listen for WebSocket connections
- Reject connections whose request path is not the root path
- Pair each accepted client with a fresh upstream adapter
- Surface unexpected session defects so the process can fail fast
"""

import asyncio
import logging
from typing import Callable, Optional, Set
from urllib.parse import urlsplit

import websockets
from websockets.asyncio.server import Server, ServerConnection

from relay.adapters.base import BaseUpstreamAdapter
from relay.adapters.realtime_adapter import RealtimeUpstreamAdapter
from relay.adapters.websocket_adapter import WebSocketClientAdapter
from relay.config import DEFAULT_HOST, DEFAULT_PORT, RelayConfig
from relay.protocol import mask_secret
from relay.session import DEFAULT_CONNECT_TIMEOUT, DEFAULT_MAX_PENDING_MESSAGES, RelaySession

logger = logging.getLogger(__name__)

ROOT_PATH = "/"

UpstreamFactory = Callable[[], BaseUpstreamAdapter]


def request_path(target: Optional[str]) -> Optional[str]:
    """
    Extract the path component of a request target.

    Args:
        target: Request target, e.g. '/?model=x'

    Returns:
        Path without query or fragment, None if missing or malformed
    """
    if not target:
        return None
    try:
        return urlsplit(target).path or None
    except ValueError:
        return None


def is_valid_target(target: Optional[str]) -> bool:
    """Only the root path is served."""
    return request_path(target) == ROOT_PATH


class RelayServer:
    """
    WebSocket relay listener.

    Architecture:
        Client (WebSocket) <-> RelayServer -> RelaySession <-> Upstream

    One RelaySession per accepted connection; sessions share no state.
    """

    def __init__(self,
                 upstream_factory: UpstreamFactory,
                 host: str = DEFAULT_HOST,
                 port: int = DEFAULT_PORT,
                 connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
                 max_pending_messages: int = DEFAULT_MAX_PENDING_MESSAGES):
        """
        Initialize Relay Server.

        Args:
            upstream_factory: Creates a new, unconnected upstream adapter per session
            host: Listening host
            port: Listening port (0 picks a free port)
            connect_timeout: Upstream connect timeout per session
            max_pending_messages: Pending queue depth per session
        """
        self.upstream_factory = upstream_factory
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.max_pending_messages = max_pending_messages

        self.server: Optional[Server] = None
        self.sessions: Set[RelaySession] = set()
        self._fatal: Optional[asyncio.Future] = None

    @classmethod
    def from_config(cls, config: RelayConfig) -> "RelayServer":
        """Create a server that connects each session to the Realtime API."""
        def upstream_factory():
            return RealtimeUpstreamAdapter(
                api_key=config.api_key,
                url=config.upstream_url,
                model=config.model,
            )

        logger.info("[Relay] Upstream %s, key \"%s\"", config.upstream_url, mask_secret(config.api_key))

        return cls(
            upstream_factory,
            host=config.host,
            port=config.port,
            connect_timeout=config.connect_timeout,
            max_pending_messages=config.max_pending_messages,
        )

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound (useful when port=0)."""
        if self.server is None or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    async def start(self):
        """
        Start accepting connections without blocking.

        Raises:
            RuntimeError: If the server is already started
        """
        if self.server is not None:
            raise RuntimeError("Relay server already started")

        self._fatal = asyncio.get_running_loop().create_future()
        self.server = await websockets.serve(
            self._handle_connection,
            self.host,
            self.port,
            max_size=None,
        )
        logger.info("[Relay] Listening on ws://%s:%s", self.host, self.bound_port)

    async def listen(self):
        """
        Serve until cancelled.

        Raises:
            Exception: The first unexpected error raised by a session
        """
        await self.start()
        try:
            await self._fatal
        finally:
            await self.stop()

    async def stop(self):
        """Stop listening and close every live session."""
        if self.server is None:
            return

        logger.info("[Relay] Shutting down (%d active session(s))...", len(self.sessions))

        server, self.server = self.server, None
        server.close(close_connections=False)

        await asyncio.gather(
            *(session.close("relay shutting down") for session in list(self.sessions)),
            return_exceptions=True,
        )
        await server.wait_closed()

        logger.info("[Relay] Shutdown complete")

    async def _handle_connection(self, ws: ServerConnection):
        """
        Handle one incoming WebSocket connection.

        Args:
            ws: Accepted WebSocket connection
        """
        client = WebSocketClientAdapter(ws)
        target = client.path

        if not target:
            logger.info("[Relay] No URL provided, closing connection.")
            await client.close()
            return

        if not is_valid_target(target):
            logger.info("[Relay] Invalid pathname: \"%s\"", request_path(target) or target)
            await client.close()
            return

        try:
            session = RelaySession(
                client,
                self.upstream_factory(),
                connect_timeout=self.connect_timeout,
                max_pending_messages=self.max_pending_messages,
            )
        except Exception as e:
            logger.exception("[Relay] Failed to create session for %s", client.remote_address)
            await client.close()
            self._report_fatal(e)
            return

        self.sessions.add(session)
        logger.info("[Relay] Client connected: %s (session %s)", client.remote_address, session.session_id)

        try:
            await session.run()

        except Exception as e:
            logger.exception("[Relay] Unexpected error in session %s", session.session_id)
            self._report_fatal(e)

        finally:
            self.sessions.discard(session)

    def _report_fatal(self, error: BaseException):
        if self._fatal is not None and not self._fatal.done():
            self._fatal.set_exception(error)
