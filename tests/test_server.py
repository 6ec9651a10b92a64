import asyncio
import json

import pytest
import websockets

from conftest import FakeUpstreamAdapter, eventually
from relay.config import RelayConfig
from relay.data_types import ServerEvent
from relay.server import RelayServer, is_valid_target, request_path


@pytest.mark.parametrize("target,expected", [
    ("/", "/"),
    ("/?model=gpt", "/"),
    ("/v1/realtime", "/v1/realtime"),
    ("", None),
    (None, None),
])
def test_request_path(target, expected):
    assert request_path(target) == expected


@pytest.mark.parametrize("target,valid", [
    ("/", True),
    ("/?x=1", True),
    ("/#frag", True),
    ("/other", False),
    ("//", False),
    ("", False),
    (None, False),
])
def test_is_valid_target(target, valid):
    assert is_valid_target(target) is valid


class UpstreamFactory:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.created = []

    def __call__(self):
        upstream = FakeUpstreamAdapter(**self.kwargs)
        self.created.append(upstream)
        return upstream


def url(server, path="/"):
    return f"ws://127.0.0.1:{server.bound_port}{path}"


def test_root_path_relays_both_directions(run):
    async def scenario():
        factory = UpstreamFactory(auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0)
        await server.start()
        try:
            async with websockets.connect(url(server)) as ws:
                await ws.send('{"type": "session.update", "session": {}}')
                await eventually(lambda: factory.created and len(factory.created[0].sent) == 1)
                upstream = factory.created[0]
                assert upstream.sent[0] == ("session.update", {"type": "session.update", "session": {}})
                assert len(server.sessions) == 1

                upstream.emit(ServerEvent({"type": "session.updated"}))
                frame = await asyncio.wait_for(ws.recv(), timeout=2)
                assert json.loads(frame) == {"type": "session.updated"}

            await eventually(lambda: not server.sessions)
            assert upstream.disconnect_calls == 1
        finally:
            await server.stop()

    run(scenario())


@pytest.mark.parametrize("path", ["/other", "/v1/realtime", "/socket/"])
def test_invalid_path_is_rejected(run, path):
    async def scenario():
        factory = UpstreamFactory(auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0)
        await server.start()
        try:
            async with websockets.connect(url(server, path)) as ws:
                with pytest.raises(websockets.exceptions.ConnectionClosed):
                    await asyncio.wait_for(ws.recv(), timeout=2)
            assert factory.created == []
            assert not server.sessions
        finally:
            await server.stop()

    run(scenario())


def test_query_string_on_root_is_accepted(run):
    async def scenario():
        factory = UpstreamFactory(auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0)
        await server.start()
        try:
            async with websockets.connect(url(server, "/?model=x")):
                await eventually(lambda: len(server.sessions) == 1)
            assert len(factory.created) == 1
        finally:
            await server.stop()

    run(scenario())


def test_upstream_connect_failure_closes_client(run):
    async def scenario():
        factory = UpstreamFactory(connect_result=False, auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0)
        await server.start()
        try:
            async with websockets.connect(url(server)) as ws:
                with pytest.raises(websockets.exceptions.ConnectionClosed):
                    await asyncio.wait_for(ws.recv(), timeout=2)
            await eventually(lambda: not server.sessions)
            assert factory.created[0].sent == []
        finally:
            await server.stop()

    run(scenario())


def test_sessions_are_independent(run):
    async def scenario():
        factory = UpstreamFactory(auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0)
        await server.start()
        try:
            async with websockets.connect(url(server)) as first, \
                    websockets.connect(url(server)) as second:
                await eventually(lambda: len(server.sessions) == 2)
                await first.send('{"type": "one"}')
                await second.send('{"type": "two"}')
                await eventually(lambda: all(len(up.sent) == 1 for up in factory.created))

                assert sorted(up.sent[0][0] for up in factory.created) == ["one", "two"]

                await first.close()
                await eventually(lambda: len(server.sessions) == 1)

                await second.send('{"type": "still-open"}')
                await eventually(lambda: sum(len(up.sent) for up in factory.created) == 3)
        finally:
            await server.stop()

    run(scenario())


def test_stop_closes_live_sessions(run):
    async def scenario():
        factory = UpstreamFactory(auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0)
        await server.start()
        ws = await websockets.connect(url(server))
        await eventually(lambda: len(server.sessions) == 1)

        await server.stop()

        with pytest.raises(websockets.exceptions.ConnectionClosed):
            await asyncio.wait_for(ws.recv(), timeout=2)
        assert factory.created[0].disconnect_calls == 1
        assert not server.sessions

    run(scenario())


def test_unexpected_session_error_stops_listener(run):
    async def scenario():
        factory = UpstreamFactory(auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0)

        def broken_factory():
            upstream = factory()
            upstream.send_errors["boom"] = RuntimeError("bug")
            return upstream

        server.upstream_factory = broken_factory
        listen_task = asyncio.create_task(server.listen())
        await eventually(lambda: server.bound_port is not None)

        async with websockets.connect(url(server)) as ws:
            await ws.send('{"type": "boom"}')
            with pytest.raises(RuntimeError, match="bug"):
                await listen_task

        assert server.server is None

    run(scenario())


def test_session_construction_error_stops_listener(run):
    async def scenario():
        factory = UpstreamFactory(auto_connect=True)
        server = RelayServer(factory, host="127.0.0.1", port=0, max_pending_messages=0)
        listen_task = asyncio.create_task(server.listen())
        await eventually(lambda: server.bound_port is not None)

        async with websockets.connect(url(server)) as ws:
            with pytest.raises(ValueError, match="max_pending_messages"):
                await listen_task
            await asyncio.wait_for(ws.wait_closed(), timeout=2)

        assert server.server is None

    run(scenario())


def test_start_twice_is_an_error(run):
    async def scenario():
        server = RelayServer(UpstreamFactory(), host="127.0.0.1", port=0)
        await server.start()
        try:
            with pytest.raises(RuntimeError):
                await server.start()
        finally:
            await server.stop()

    run(scenario())


def test_end_to_end_with_realtime_adapter(run):
    async def scenario():
        received = []
        seen_headers = {}

        async def fake_realtime(ws):
            seen_headers["authorization"] = ws.request.headers["Authorization"]
            await ws.send(json.dumps({"type": "session.created", "session": {"id": "sess_1"}}))
            async for message in ws:
                received.append(json.loads(message))

        upstream_server = await websockets.serve(fake_realtime, "127.0.0.1", 0)
        upstream_port = upstream_server.sockets[0].getsockname()[1]

        config = RelayConfig(
            api_key="sk-test-key",
            host="127.0.0.1",
            port=0,
            upstream_url=f"ws://127.0.0.1:{upstream_port}/v1/realtime",
            model="test-model",
            connect_timeout=2.0,
        )
        server = RelayServer.from_config(config)
        await server.start()
        try:
            async with websockets.connect(url(server)) as ws:
                await ws.send('{"type": "input_audio_buffer.commit"}')

                frame = await asyncio.wait_for(ws.recv(), timeout=2)
                assert json.loads(frame) == {"type": "session.created", "session": {"id": "sess_1"}}

                await eventually(lambda: len(received) == 1)
                assert received[0]["type"] == "input_audio_buffer.commit"
                assert received[0]["event_id"].startswith("evt_")
                assert seen_headers["authorization"] == "Bearer sk-test-key"

            await eventually(lambda: not server.sessions)
        finally:
            await server.stop()
            upstream_server.close()
            await upstream_server.wait_closed()

    run(scenario())
