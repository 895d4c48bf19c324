# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
from typing import Any

import numpy as np
import pytest

from adapters.live.base import (
    LiveConnection,
    LiveEventHandlers,
    LiveSessionConfig,
    LiveTransport,
)
from adapters.live.messages import LiveServerMessage
from audio.capture import CaptureBackend, CaptureHandle, FrameCallback
from audio.frames import InboundAudioChunk, InputFrame, PlaybackBuffer, WireAudioChunk
from audio.pcm import encode_base64
from audio.playback import PlaybackSink
from session.callbacks import LiveSessionCallbacks
from session.controller import LiveSessionController
from session.errors import (
    CapabilityUnavailableError,
    MicrophoneUnavailableError,
    RemoteConnectError,
    RemoteRuntimeError,
)
from session.state import SessionState


# ---------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------

class FakeCaptureHandle(CaptureHandle):
    def __init__(self, on_frame: FrameCallback) -> None:
        self.on_frame = on_frame
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def push(self, value: float = 0.0) -> None:
        self.on_frame(InputFrame(samples=np.full(4096, value, dtype=np.float32)))


class FakeCapture(CaptureBackend):
    def __init__(self, *, available: bool = True, error: Exception | None = None) -> None:
        self._available = available
        self._error = error
        self.handles: list[FakeCaptureHandle] = []

    def is_available(self) -> bool:
        return self._available

    async def open(self, on_frame: FrameCallback) -> CaptureHandle:
        if self._error is not None:
            raise self._error
        handle = FakeCaptureHandle(on_frame)
        self.handles.append(handle)
        return handle


class FakeConnection(LiveConnection):
    def __init__(self) -> None:
        self.sent: list[WireAudioChunk] = []
        self.close_calls = 0

    async def send_realtime_input(self, chunk: WireAudioChunk) -> None:
        self.sent.append(chunk)

    async def close(self) -> None:
        self.close_calls += 1


class FakeTransport(LiveTransport):
    def __init__(
        self,
        *,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
        fire_open: bool = True,
    ) -> None:
        self._error = error
        self._gate = gate
        self._fire_open = fire_open
        self.open_calls = 0
        self.handlers: LiveEventHandlers | None = None
        self.config: LiveSessionConfig | None = None
        self.connections: list[FakeConnection] = []

    async def open(self, config: LiveSessionConfig, handlers: LiveEventHandlers) -> LiveConnection:
        self.open_calls += 1
        self.config = config
        self.handlers = handlers
        if self._gate is not None:
            await self._gate.wait()
        if self._error is not None:
            raise self._error
        connection = FakeConnection()
        self.connections.append(connection)
        if self._fire_open:
            handlers.on_open()
        return connection


class FakeSink(PlaybackSink):
    def __init__(self) -> None:
        self.now = 0.0
        self.played: list[tuple[PlaybackBuffer, float]] = []
        self.closed = 0

    def current_time(self) -> float:
        return self.now

    def play_at(self, buffer: PlaybackBuffer, start_time: float) -> None:
        self.played.append((buffer, start_time))

    def flush(self) -> None:
        pass

    def close(self) -> None:
        self.closed += 1


class Recorder:
    def __init__(self) -> None:
        self.events: list[Any] = []

    def callbacks(self) -> LiveSessionCallbacks:
        return LiveSessionCallbacks(
            on_open=lambda: self.events.append("open"),
            on_message=lambda text, is_user: self.events.append(("message", text, is_user)),
            on_audio_data=lambda buffer: self.events.append(("audio", buffer.num_samples)),
            on_error=lambda exc: self.events.append(("error", exc)),
            on_close=lambda: self.events.append("close"),
        )

    def count(self, name: str) -> int:
        return sum(1 for e in self.events if e == name or (isinstance(e, tuple) and e[0] == name))

    def errors(self) -> list[Exception]:
        return [e[1] for e in self.events if isinstance(e, tuple) and e[0] == "error"]


CONFIG = LiveSessionConfig(model="live-model", voice="Zephyr", system_instruction="persona")


def _controller(
    *,
    capture: FakeCapture | None = None,
    transport: FakeTransport | None = None,
    sink: FakeSink | None = None,
    recorder: Recorder | None = None,
) -> LiveSessionController:
    return LiveSessionController(
        config=CONFIG,
        transport=transport or FakeTransport(),
        capture=capture or FakeCapture(),
        sink=sink or FakeSink(),
        callbacks=(recorder or Recorder()).callbacks(),
    )


async def _settle() -> None:
    for _ in range(10):
        await asyncio.sleep(0)


# ---------------------------------------------------------------------
# Connect
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_connect_opens_session_and_streams_audio() -> None:
    capture = FakeCapture()
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(capture=capture, transport=transport, recorder=recorder)

    await controller.connect()

    assert controller.state is SessionState.OPEN
    assert recorder.events == ["open"]
    assert transport.config == CONFIG
    handle = capture.handles[0]
    assert handle.started

    handle.push(0.5)
    handle.push(-0.5)
    await _settle()

    sent = transport.connections[0].sent
    assert [chunk.mime_type for chunk in sent] == ["audio/pcm;rate=16000"] * 2
    assert sent[0].data != sent[1].data


@pytest.mark.asyncio
async def test_connect_is_noop_unless_disconnected() -> None:
    transport = FakeTransport()
    controller = _controller(transport=transport)
    await controller.connect()

    await controller.connect()

    assert transport.open_calls == 1


@pytest.mark.asyncio
async def test_microphone_denied_never_opens_remote() -> None:
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(
        capture=FakeCapture(error=MicrophoneUnavailableError("Microphone not found or permission denied.")),
        transport=transport,
        recorder=recorder,
    )

    await controller.connect()

    assert controller.state is SessionState.DISCONNECTED
    assert transport.open_calls == 0
    assert recorder.count("open") == 0
    errors = recorder.errors()
    assert len(errors) == 1 and isinstance(errors[0], MicrophoneUnavailableError)
    assert controller.session is None


@pytest.mark.asyncio
async def test_unexpected_capture_error_maps_to_microphone_error() -> None:
    recorder = Recorder()
    controller = _controller(capture=FakeCapture(error=OSError("device busy")), recorder=recorder)

    await controller.connect()

    assert isinstance(recorder.errors()[0], MicrophoneUnavailableError)
    assert str(recorder.errors()[0]) == "Microphone not found or permission denied."


@pytest.mark.asyncio
async def test_missing_capability_is_reported() -> None:
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(capture=FakeCapture(available=False), transport=transport, recorder=recorder)

    await controller.connect()

    assert isinstance(recorder.errors()[0], CapabilityUnavailableError)
    assert transport.open_calls == 0
    assert controller.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_remote_open_failure_rolls_back_capture() -> None:
    capture = FakeCapture()
    recorder = Recorder()
    controller = _controller(
        capture=capture,
        transport=FakeTransport(error=ConnectionRefusedError("nope")),
        recorder=recorder,
    )

    await controller.connect()

    assert controller.state is SessionState.DISCONNECTED
    assert capture.handles[0].stopped
    assert not capture.handles[0].started
    assert isinstance(recorder.errors()[0], RemoteConnectError)
    assert recorder.count("open") == 0
    assert recorder.count("close") == 0


@pytest.mark.asyncio
async def test_reconnect_after_failed_setup() -> None:
    capture = FakeCapture()
    transport = FakeTransport(error=RemoteConnectError("down"))
    controller = _controller(capture=capture, transport=transport)
    await controller.connect()

    transport._error = None  # pylint: disable=protected-access
    await controller.connect()

    assert controller.state is SessionState.OPEN
    assert transport.open_calls == 2


class OpenThenFailTransport(FakeTransport):
    async def open(self, config: LiveSessionConfig, handlers: LiveEventHandlers) -> LiveConnection:
        self.open_calls += 1
        self.handlers = handlers
        handlers.on_open()
        if self._error is not None:
            raise self._error
        connection = FakeConnection()
        self.connections.append(connection)
        return connection


@pytest.mark.asyncio
async def test_failure_after_early_open_returns_to_disconnected() -> None:
    capture = FakeCapture()
    transport = OpenThenFailTransport(error=RemoteConnectError("setup rejected"))
    recorder = Recorder()
    controller = _controller(capture=capture, transport=transport, recorder=recorder)

    await controller.connect()

    assert controller.state is SessionState.DISCONNECTED
    assert controller.session is None
    assert capture.handles[0].stopped
    assert recorder.count("open") == 1
    assert recorder.count("close") == 1
    assert isinstance(recorder.errors()[0], RemoteConnectError)

    transport._error = None  # pylint: disable=protected-access
    await controller.connect()

    assert controller.state is SessionState.OPEN
    assert len(capture.handles) == 2


# ---------------------------------------------------------------------
# Disconnect
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_disconnect_twice_notifies_close_once() -> None:
    capture = FakeCapture()
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(capture=capture, transport=transport, recorder=recorder)
    await controller.connect()

    controller.disconnect()
    controller.disconnect()
    await _settle()

    assert recorder.count("close") == 1
    assert controller.state is SessionState.DISCONNECTED
    assert capture.handles[0].stopped
    assert transport.connections[0].close_calls == 1


@pytest.mark.asyncio
async def test_disconnect_without_connect_is_silent() -> None:
    recorder = Recorder()
    controller = _controller(recorder=recorder)

    controller.disconnect()

    assert recorder.events == []
    assert controller.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_frames_after_disconnect_are_not_sent() -> None:
    capture = FakeCapture()
    transport = FakeTransport()
    controller = _controller(capture=capture, transport=transport)
    await controller.connect()
    handle = capture.handles[0]

    controller.disconnect()
    handle.push(0.1)
    await _settle()

    assert transport.connections[0].sent == []


@pytest.mark.asyncio
async def test_disconnect_while_remote_is_opening_closes_it_on_arrival() -> None:
    gate = asyncio.Event()
    capture = FakeCapture()
    transport = FakeTransport(gate=gate)
    recorder = Recorder()
    controller = _controller(capture=capture, transport=transport, recorder=recorder)

    connecting = asyncio.create_task(controller.connect())
    await _settle()
    assert controller.state is SessionState.CONNECTING

    controller.disconnect()
    assert controller.state is SessionState.DISCONNECTED
    assert capture.handles[0].stopped

    gate.set()
    await connecting
    await _settle()

    assert recorder.count("open") == 0
    assert recorder.count("close") == 1
    assert transport.connections[0].close_calls == 1
    assert controller.state is SessionState.DISCONNECTED


@pytest.mark.asyncio
async def test_open_failure_after_disconnect_is_not_reported() -> None:
    gate = asyncio.Event()
    recorder = Recorder()
    controller = _controller(
        transport=FakeTransport(gate=gate, error=RemoteConnectError("down")),
        recorder=recorder,
    )

    connecting = asyncio.create_task(controller.connect())
    await _settle()
    controller.disconnect()
    gate.set()
    await connecting

    assert recorder.errors() == []
    assert recorder.count("close") == 1
    assert controller.state is SessionState.DISCONNECTED


# ---------------------------------------------------------------------
# Remote events
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_remote_close_tears_down_like_disconnect() -> None:
    capture = FakeCapture()
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(capture=capture, transport=transport, recorder=recorder)
    await controller.connect()
    assert transport.handlers is not None

    transport.handlers.on_close("1000 bye")
    controller.disconnect()

    assert controller.state is SessionState.DISCONNECTED
    assert capture.handles[0].stopped
    assert recorder.count("close") == 1


@pytest.mark.asyncio
async def test_remote_error_notifies_without_teardown() -> None:
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(transport=transport, recorder=recorder)
    await controller.connect()
    assert transport.handlers is not None

    transport.handlers.on_error(ConnectionResetError("reset"))

    errors = recorder.errors()
    assert len(errors) == 1 and isinstance(errors[0], RemoteRuntimeError)
    assert str(errors[0]) == "Connection error"
    assert controller.state is SessionState.OPEN
    assert recorder.count("close") == 0


@pytest.mark.asyncio
async def test_remote_error_then_close_tears_down_once() -> None:
    capture = FakeCapture()
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(capture=capture, transport=transport, recorder=recorder)
    await controller.connect()
    assert transport.handlers is not None

    transport.handlers.on_error(ConnectionResetError("reset"))
    transport.handlers.on_close("1011 internal error")
    await _settle()

    assert len(recorder.errors()) == 1
    assert recorder.count("close") == 1
    assert controller.state is SessionState.DISCONNECTED
    assert capture.handles[0].stopped
    assert transport.connections[0].close_calls == 1


@pytest.mark.asyncio
async def test_inbound_audio_is_scheduled_and_reported() -> None:
    sink = FakeSink()
    transport = FakeTransport()
    recorder = Recorder()
    controller = _controller(transport=transport, sink=sink, recorder=recorder)
    await controller.connect()
    assert transport.handlers is not None

    pcm = encode_base64(np.zeros(2400, dtype="<i2").tobytes())
    message = LiveServerMessage(audio=InboundAudioChunk(data=pcm))
    transport.handlers.on_message(message)
    transport.handlers.on_message(message)

    assert [start for _, start in sink.played] == pytest.approx([0.0, 0.1])
    assert recorder.count("audio") == 2


@pytest.mark.asyncio
async def test_events_from_previous_session_are_ignored() -> None:
    transport = FakeTransport()
    recorder = Recorder()
    sink = FakeSink()
    controller = _controller(transport=transport, recorder=recorder, sink=sink)
    await controller.connect()
    stale = transport.handlers
    controller.disconnect()
    await controller.connect()
    assert stale is not None

    stale.on_close("late")
    stale.on_error(RuntimeError("late"))
    stale.on_message(LiveServerMessage(output_transcript="late"))

    assert controller.state is SessionState.OPEN
    assert recorder.errors() == []
    assert recorder.count("message") == 0


# ---------------------------------------------------------------------
# Scoped release
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_context_exit_closes_session_and_sink() -> None:
    sink = FakeSink()
    transport = FakeTransport()
    recorder = Recorder()

    async with _controller(transport=transport, sink=sink, recorder=recorder) as controller:
        await controller.connect()

    assert sink.closed == 1
    assert recorder.count("close") == 1
    assert transport.connections[0].close_calls == 1


@pytest.mark.asyncio
async def test_playback_cursor_survives_reconnect() -> None:
    sink = FakeSink()
    transport = FakeTransport()
    controller = _controller(transport=transport, sink=sink)
    pcm = encode_base64(np.zeros(24_000, dtype="<i2").tobytes())

    await controller.connect()
    assert transport.handlers is not None
    transport.handlers.on_message(LiveServerMessage(audio=InboundAudioChunk(data=pcm)))
    controller.disconnect()
    await controller.connect()
    transport.handlers.on_message(LiveServerMessage(audio=InboundAudioChunk(data=pcm)))

    assert [start for _, start in sink.played] == pytest.approx([0.0, 1.0])
