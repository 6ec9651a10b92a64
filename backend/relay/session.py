"""
Relay Session - Pairs one client connection with one upstream connection.

Responsibilities:
- Open the upstream connection while queueing early client events
- Forward client events upstream, in arrival order, one at a time
- Forward server events to the client as they arrive
- Classify upstream errors and close both sides exactly once
"""

import asyncio
import logging
import secrets
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from relay.adapters.base import BaseClientAdapter, BaseUpstreamAdapter
from relay.classifier import classify_error
from relay.data_types import ErrorSeverity, RelayState, ServerEvent, UpstreamClosed, UpstreamError
from relay.protocol import parse_client_event, preview, serialize_server_event

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_MAX_PENDING_MESSAGES = 1000


class RelaySession:
    """
    One relay session.

    Architecture:
        Client <-> RelaySession <-> Upstream

    Data Flow:
        1. Client events: Client -> pending queue (while connecting) -> Upstream
        2. Server events: Upstream -> Client

    The session owns both adapters. It enters CLOSED once, at which point
    the upstream is disconnected and the client connection is closed.
    """

    def __init__(self,
                 client: BaseClientAdapter,
                 upstream: BaseUpstreamAdapter,
                 connect_timeout: Optional[float] = DEFAULT_CONNECT_TIMEOUT,
                 max_pending_messages: int = DEFAULT_MAX_PENDING_MESSAGES,
                 session_id: Optional[str] = None):
        """
        Initialize Relay Session.

        Args:
            client: Inbound client connection
            upstream: Upstream realtime connection (not yet connected)
            connect_timeout: Seconds allowed for the upstream connect (None: no limit)
            max_pending_messages: Queue depth at which client reads pause
            session_id: Identifier used in log lines (default: random)
        """
        if max_pending_messages < 1:
            raise ValueError("max_pending_messages must be at least 1")

        self.client = client
        self.upstream = upstream
        self.connect_timeout = connect_timeout
        self.max_pending_messages = max_pending_messages
        self.session_id = session_id or secrets.token_hex(4)

        self.state = RelayState.INIT
        self.pending: Deque[Dict[str, Any]] = deque()
        self.close_reason: Optional[str] = None

        # Held across "transition to UPSTREAM_CONNECTED + drain" and every forward
        self._send_lock = asyncio.Lock()
        # Set once upstream is connected or the session is closed
        self._ready = asyncio.Event()
        self._closed = asyncio.Event()
        self._tasks: List[asyncio.Task] = []
        self._close_task: Optional[asyncio.Task] = None

    @property
    def closed(self) -> bool:
        return self.state is RelayState.CLOSED

    def log(self, level: int, msg: str, *args):
        logger.log(level, f"[Session {self.session_id}] {msg}", *args)

    async def run(self):
        """
        Run the session until it is closed.

        Steps:
        1. Start reading client and upstream events
        2. Connect upstream, then drain queued client events
        3. Wait for either side to close
        """
        if self.state is not RelayState.INIT:
            raise RuntimeError(f"Session already started (state={self.state.value})")

        self.state = RelayState.UPSTREAM_CONNECTING
        self.log(logging.INFO, "Started, connecting upstream...")

        self._tasks = [
            asyncio.create_task(self._client_loop()),
            asyncio.create_task(self._upstream_loop()),
            asyncio.create_task(self._connect_upstream()),
        ]
        for task in self._tasks:
            task.add_done_callback(self._on_task_done)

        try:
            await self._closed.wait()

        finally:
            for task in self._tasks:
                if not task.done():
                    task.cancel()
            results = await asyncio.gather(*self._tasks, return_exceptions=True)

            # Cancelled from outside: release the connections before leaving
            if not self.closed:
                await self.close("session cancelled")

            for result in results:
                if isinstance(result, Exception):
                    raise result

        self.log(logging.INFO, "Finished (%s)", self.close_reason)

    def _on_task_done(self, task: asyncio.Task):
        """Close the session if one of its tasks died with an unexpected error."""
        if task.cancelled() or task.exception() is None or self.closed:
            return
        self.log(logging.ERROR, "Internal error: %r", task.exception())
        self._close_task = asyncio.ensure_future(self.close("internal error"))

    async def close(self, reason: str = "closed"):
        """
        Close the session (idempotent).

        Disconnects upstream and closes the client connection, each once.
        """
        if self.closed:
            return

        self.state = RelayState.CLOSED
        self.close_reason = reason
        self._ready.set()

        discarded = len(self.pending)
        self.pending.clear()
        if discarded:
            self.log(logging.WARNING, "Discarded %d queued client event(s)", discarded)

        self.log(logging.INFO, "Closing: %s", reason)

        try:
            await self.upstream.disconnect()
        except Exception as e:
            self.log(logging.ERROR, "Upstream disconnect failed: %s", e)

        try:
            await self.client.close()
        except Exception as e:
            self.log(logging.ERROR, "Client close failed: %s", e)

        self._closed.set()

    # =========================================================================
    # Upstream connection
    # =========================================================================

    async def _connect_upstream(self):
        """Connect upstream, then flush the pending queue in arrival order."""
        try:
            # The session owns the deadline; the adapter is asked not to add its own
            connected = await asyncio.wait_for(
                self.upstream.connect(timeout=None),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            self.log(logging.ERROR, "Error connecting upstream: timed out after %ss",
                     self.connect_timeout)
            connected = False
        except Exception as e:
            self.log(logging.ERROR, "Error connecting upstream: %s", e)
            connected = False

        if self.closed:
            return

        if not connected:
            await self.close("upstream connect failed")
            return

        async with self._send_lock:
            if self.closed:
                return
            self.state = RelayState.UPSTREAM_CONNECTED
            self._ready.set()
            self.log(logging.INFO, "Upstream connected, flushing %d queued event(s)",
                     len(self.pending))

            while self.pending and not self.closed:
                await self._forward(self.pending.popleft())

    # =========================================================================
    # Client -> Upstream
    # =========================================================================

    async def _client_loop(self):
        """Read client frames until the client closes."""
        while not self.closed:
            raw = await self.client.recv()

            if raw is None:
                await self.close("client disconnected")
                return

            try:
                event = parse_client_event(raw)
            except ValueError as e:
                self.log(logging.WARNING, "Error parsing event from client (%s): %s",
                         e, preview(raw))
                continue

            if self.state is RelayState.UPSTREAM_CONNECTING:
                if len(self.pending) < self.max_pending_messages:
                    self.pending.append(event)
                    continue

                # Queue full: stop reading from the client until upstream is ready
                self.log(logging.WARNING, "Pending queue full (%d), pausing client reads",
                         len(self.pending))
                await self._ready.wait()

            if self.state is RelayState.UPSTREAM_CONNECTED:
                async with self._send_lock:
                    await self._forward(event)

    async def _forward(self, event: Dict[str, Any]):
        """Send one client event upstream, routing failures through the classifier."""
        if self.closed:
            return

        event_type = event["type"]
        self.log(logging.DEBUG, "Relaying \"%s\" to upstream", event_type)

        try:
            await self.upstream.send(event_type, event)
        except ConnectionError as e:
            self.log(logging.ERROR, "Error sending event to upstream: %s", e)
            await self._handle_upstream_error(str(e))

    # =========================================================================
    # Upstream -> Client
    # =========================================================================

    async def _upstream_loop(self):
        """Dispatch upstream events until the upstream closes."""
        while not self.closed:
            item = await self.upstream.recv_event()

            if isinstance(item, ServerEvent):
                await self._send_to_client(item)

            elif isinstance(item, UpstreamClosed):
                await self.close("upstream closed")
                return

            elif isinstance(item, UpstreamError):
                await self._handle_upstream_error(item.description)

            else:
                self.log(logging.WARNING, "Ignoring unknown upstream event: %r", item)

    async def _send_to_client(self, item: ServerEvent):
        self.log(logging.DEBUG, "Relaying \"%s\" to client", item.type)
        try:
            await self.client.send(serialize_server_event(item.event))
        except ConnectionError as e:
            # The client loop observes the closure itself
            self.log(logging.WARNING, "Failed to send to client: %s", e)

    async def _handle_upstream_error(self, description: str):
        """Close the session on fatal errors, log the rest."""
        if classify_error(description) is ErrorSeverity.FATAL:
            self.log(logging.ERROR, "Fatal upstream error: %s", description)
            await self.close(f"fatal upstream error: {description}")
        else:
            self.log(logging.WARNING, "Upstream error (session continues): %s", description)
