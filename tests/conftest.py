import asyncio

import pytest

from relay.adapters.base import BaseClientAdapter, BaseUpstreamAdapter
from relay.data_types import UpstreamClosed
from relay.errors import UpstreamSendError


class FakeClientAdapter(BaseClientAdapter):
    """In-memory client connection driven by the test."""

    def __init__(self):
        self.inbox = asyncio.Queue()
        self.sent = []
        self.close_calls = 0
        self.closed = False

    def feed(self, raw):
        self.inbox.put_nowait(raw)

    def hang_up(self):
        self.inbox.put_nowait(None)

    async def recv(self):
        if self.closed:
            return None
        raw = await self.inbox.get()
        if raw is None:
            self.closed = True
        return raw

    async def send(self, text):
        if self.closed:
            raise ConnectionError("WebSocket not connected")
        self.sent.append(text)

    async def close(self):
        self.close_calls += 1
        self.closed = True
        self.inbox.put_nowait(None)


class FakeUpstreamAdapter(BaseUpstreamAdapter):
    """
    In-memory upstream connection.

    connect() blocks until release() is called; the outcome is taken from
    connect_result (a bool, or an exception to raise).
    """

    def __init__(self, connect_result=True, auto_connect=False):
        self.connect_result = connect_result
        self.gate = asyncio.Event()
        if auto_connect:
            self.gate.set()
        self.events = asyncio.Queue()
        self.sent = []
        self.send_errors = {}
        self.connect_calls = 0
        self.connect_timeouts = []
        self.disconnect_calls = 0
        self.connected = False

    def release(self):
        self.gate.set()

    def emit(self, item):
        self.events.put_nowait(item)

    async def connect(self, timeout=10.0):
        self.connect_calls += 1
        self.connect_timeouts.append(timeout)
        await self.gate.wait()
        if isinstance(self.connect_result, BaseException):
            raise self.connect_result
        self.connected = bool(self.connect_result)
        return self.connected

    async def send(self, event_type, event):
        error = self.send_errors.get(event_type)
        if error is not None:
            raise error
        if not self.connected:
            raise UpstreamSendError("Upstream is not connected")
        self.sent.append((event_type, event))

    async def recv_event(self):
        return await self.events.get()

    def is_connected(self):
        return self.connected

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False
        self.events.put_nowait(UpstreamClosed())


async def eventually(predicate, timeout=2.0, interval=0.01):
    """Wait until predicate() is true, failing the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met within %ss" % timeout)
        await asyncio.sleep(interval)


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    def _run(coro):
        return asyncio.run(asyncio.wait_for(coro, timeout=10))
    return _run
