"""
Unit tests for the OpenAI Realtime connection manager.

These tests drive RealtimeConnection against a scripted in-memory WebSocket,
focusing on session configuration, readiness, reconnection backoff and
subscriber fan-out.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from receptionist.bot.realtime_api import RealtimeConnection, build_session_config
from receptionist.config.constants import DEFAULT_REALTIME_URL
from receptionist.models.openai_schemas import (
    InputAudioAppendMessage,
    InputAudioCommitMessage,
    SessionConfig,
)

CONNECT_PATH = "receptionist.bot.realtime_api.websockets.connect"


class FakeWebSocket:
    """Scripted Realtime socket: frames and close events are pushed by the test."""

    def __init__(self):
        self.sent = []
        self.incoming = asyncio.Queue()
        self.close_code = None
        self.close_reason = None
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()
        if item is None:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    def feed(self, frame):
        self.incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def drop(self, code=1006, reason="gone"):
        self.close_code = code
        self.close_reason = reason
        self.incoming.put_nowait(None)

    @property
    def sent_types(self):
        return [m["type"] for m in self.sent]


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class RecordingSubscriber:
    def __init__(self):
        self.events = []
        self.frames = []

    def on_upstream_open(self):
        self.events.append("open")

    def on_upstream_message(self, frame):
        self.frames.append(frame)

    def on_upstream_closed(self):
        self.events.append("closed")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def connection(clock):
    return RealtimeConnection(
        "test-api-key",
        "gpt-realtime-test",
        SessionConfig(instructions="Be helpful", voice="alloy"),
        reconnect_delay=1000,
        recheck_interval=1000,
        clock=clock,
    )


async def open_connection(connection, ws):
    with patch(CONNECT_PATH, new=AsyncMock(return_value=ws)) as connect:
        assert connection.ensure_connected() is True
        await connection._connect_task
    return connect


async def settle():
    await asyncio.sleep(0.02)


@pytest.mark.asyncio
async def test_ensure_connected_starts_a_single_attempt(connection):
    with patch.object(connection, "_connect", new=AsyncMock()) as connect:
        assert connection.ensure_connected() is True
        assert connection.ensure_connected() is False
        assert connection.ensure_connected() is False
        await connection._connect_task
    assert connect.call_count == 1


@pytest.mark.asyncio
async def test_open_sends_configuration_before_anything_else(connection):
    ws = FakeWebSocket()
    subscriber = RecordingSubscriber()
    assert await connection.subscribe(subscriber) is False

    connect = await open_connection(connection, ws)

    url = connect.call_args.args[0]
    headers = connect.call_args.kwargs["additional_headers"]
    assert url == f"{DEFAULT_REALTIME_URL}?model=gpt-realtime-test"
    assert headers["Authorization"] == "Bearer test-api-key"
    assert headers["OpenAI-Beta"] == "realtime=v1"

    assert connection.ready
    assert connection.configured
    assert subscriber.events == ["open"]
    assert ws.sent_types == ["session.update"]
    session = ws.sent[0]["session"]
    assert session["input_audio_format"] == "pcm16"
    assert session["output_audio_format"] == "pcm16"
    assert session["turn_detection"]["type"] == "server_vad"
    assert session["voice"] == "alloy"

    assert connection.send(InputAudioAppendMessage(audio="AAAA")) is True
    assert connection.send(InputAudioCommitMessage()) is True
    await settle()
    assert ws.sent_types == [
        "session.update",
        "input_audio_buffer.append",
        "input_audio_buffer.commit",
    ]
    await connection.close()


@pytest.mark.asyncio
async def test_send_is_refused_until_ready(connection):
    assert connection.send(InputAudioCommitMessage()) is False
    assert connection.send('{"type": "response.create"}') is False


@pytest.mark.asyncio
async def test_subscribe_reports_readiness(connection):
    await open_connection(connection, FakeWebSocket())
    assert await connection.subscribe(RecordingSubscriber()) is True
    await connection.close()


@pytest.mark.asyncio
async def test_frames_fan_out_to_every_subscriber(connection):
    ws = FakeWebSocket()
    first, second = RecordingSubscriber(), RecordingSubscriber()
    await connection.subscribe(first)
    await connection.subscribe(second)
    await connection.subscribe(second)
    await open_connection(connection, ws)

    ws.feed({"type": "response.output_audio.delta", "delta": "AAAA"})
    ws.feed("not json")
    ws.feed("[1, 2]")
    ws.feed({"type": "error", "error": {"message": "bad"}})
    await settle()

    assert [f["type"] for f in first.frames] == ["response.output_audio.delta", "error"]
    assert second.frames == first.frames

    await connection.unsubscribe(second)
    ws.feed({"type": "response.done"})
    await settle()
    assert len(first.frames) == 3
    assert len(second.frames) == 2
    assert connection.subscriber_count == 1
    await connection.close()


@pytest.mark.asyncio
async def test_subscriber_errors_do_not_break_the_receive_loop(connection):
    ws = FakeWebSocket()

    class Broken(RecordingSubscriber):
        def on_upstream_message(self, frame):
            raise RuntimeError("boom")

    healthy = RecordingSubscriber()
    await connection.subscribe(Broken())
    await connection.subscribe(healthy)
    await open_connection(connection, ws)

    ws.feed({"type": "response.created"})
    ws.feed({"type": "response.done"})
    await settle()
    assert len(healthy.frames) == 2
    await connection.close()


@pytest.mark.asyncio
async def test_close_clears_readiness_and_backs_off(connection, clock):
    ws = FakeWebSocket()
    subscriber = RecordingSubscriber()
    await connection.subscribe(subscriber)
    await open_connection(connection, ws)

    ws.drop(1011, "server error")
    await settle()

    assert not connection.ready
    assert connection.ws is None
    assert connection.reconnect_attempts == 1
    assert subscriber.events == ["open", "closed"]
    assert connection.send(InputAudioCommitMessage()) is False

    # Inside the backoff window nothing is started
    with patch(CONNECT_PATH, new=AsyncMock()) as connect:
        assert connection.ensure_connected() is False
        clock.now += 999
        assert connection.ensure_connected() is False
    connect.assert_not_called()

    clock.now += 1
    ws2 = FakeWebSocket()
    await open_connection(connection, ws2)

    assert connection.ready
    assert connection.instance_count == 2
    assert connection.reconnect_attempts == 0
    assert ws2.sent_types == ["session.update"]
    assert ws.sent_types == ["session.update"]
    assert subscriber.events == ["open", "closed", "open"]
    await connection.close()


@pytest.mark.asyncio
async def test_connection_closed_error_is_a_close(connection):
    ws = FakeWebSocket()
    subscriber = RecordingSubscriber()
    await connection.subscribe(subscriber)
    await open_connection(connection, ws)

    ws.incoming.put_nowait(ConnectionClosedError(Close(1011, "boom"), None))
    await settle()

    assert not connection.ready
    assert subscriber.events == ["open", "closed"]
    assert connection.reconnect_attempts == 1
    await connection.close()


@pytest.mark.asyncio
async def test_failed_connect_schedules_retry(connection):
    subscriber = RecordingSubscriber()
    await connection.subscribe(subscriber)

    with patch(CONNECT_PATH, new=AsyncMock(side_effect=OSError("refused"))):
        assert connection.ensure_connected() is True
        await connection._connect_task

    assert not connection.ready
    assert not connection.connecting
    assert connection.reconnect_attempts == 1
    assert connection._reconnect_handle is not None
    # Never opened, so subscribers hear nothing
    assert subscriber.events == []
    assert connection.ensure_connected() is False
    await connection.close()
    assert connection._reconnect_handle is None


@pytest.mark.asyncio
async def test_failed_configuration_closes_the_socket(connection):
    ws = FakeWebSocket()
    ws.send = AsyncMock(side_effect=ConnectionClosedError(None, None))
    subscriber = RecordingSubscriber()
    await connection.subscribe(subscriber)

    await open_connection(connection, ws)

    assert ws.closed
    assert connection.ws is None
    assert not connection.ready
    assert not connection.configured
    assert connection.reconnect_attempts == 1
    assert subscriber.events == []
    await connection.close()


@pytest.mark.asyncio
async def test_reconnect_timer_ends_the_backoff_window(connection, clock):
    connection._next_attempt_at = clock() + 5000
    with patch.object(connection, "_connect", new=AsyncMock()) as connect:
        connection._reconnect()
        await connection._connect_task
    connect.assert_called_once()


@pytest.mark.asyncio
async def test_missing_api_key_does_not_connect(clock):
    connection = RealtimeConnection(
        None, "gpt-realtime-test", SessionConfig(instructions="x", voice="alloy"), clock=clock
    )
    with patch(CONNECT_PATH, new=AsyncMock()) as connect:
        assert connection.ensure_connected() is False
    connect.assert_not_called()


@pytest.mark.asyncio
async def test_close_is_final(connection):
    ws = FakeWebSocket()
    subscriber = RecordingSubscriber()
    await connection.subscribe(subscriber)
    await open_connection(connection, ws)

    await connection.close()
    await connection.close()
    await settle()

    assert ws.closed
    assert connection.closing
    assert not connection.ready
    assert connection.ensure_connected() is False
    assert connection._reconnect_handle is None


@pytest.mark.asyncio
async def test_start_runs_watchdog(connection):
    with patch.object(connection, "_connect", new=AsyncMock()):
        connection.start()
        watchdog = connection._watchdog_task
        connection.start()
        assert connection._watchdog_task is watchdog
    await connection.close()
    await settle()
    assert watchdog.done()


def test_build_session_config(settings):
    config = build_session_config(settings)
    assert config.voice == settings.voice
    assert "TRANSFER" in config.instructions
    assert settings.business_name in config.instructions
