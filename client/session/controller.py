"""
Live session controller.

Responsibilities:
- Owns the session state machine and the current LiveSession
- connect(): acquire microphone, open remote session, wire pipelines,
  roll back completely on any setup failure
- disconnect(): idempotent ordered teardown, on_close exactly once
- Routes remote events: messages -> output pipeline, close -> teardown,
  error -> on_error only
- Owns the playback timeline; it survives reconnects and is released by
  close()

NOT responsible for:
- Audio encoding/decoding (input/output pipelines)
- Wire protocol (adapters/live)
- Device I/O (audio/capture, audio/playback)
"""

from __future__ import annotations

import asyncio
from types import TracebackType
from uuid import uuid4

from adapters.live.base import (
    LiveEventHandlers,
    LiveSessionConfig,
    LiveTransport,
)
from adapters.live.messages import LiveServerMessage
from audio.capture import CaptureBackend, CaptureHandle, FrameCallback
from audio.frames import InputFrame
from audio.playback import PlaybackScheduler, PlaybackSink
from observability.logger import log_event, now_ms
from observability.metrics import timed
from session.callbacks import LiveSessionCallbacks
from session.errors import (
    CapabilityUnavailableError,
    LiveSessionError,
    MicrophoneUnavailableError,
    RemoteConnectError,
    RemoteRuntimeError,
)
from session.input_pipeline import InputAudioPipeline
from session.live_session import LiveSession
from session.output_pipeline import OutputAudioPipeline
from session.pending import PendingSession
from session.state import SessionState, SessionStateMachine, Transition


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


def _frame_router(session: LiveSession) -> FrameCallback:
    """Capture callback bound to a session; frames before open are dropped."""
    def _on_frame(frame: InputFrame) -> None:
        pipeline = session.input_pipeline
        if pipeline is not None:
            pipeline.on_capture_frame(frame)
    return _on_frame


# ------------------------------------------------------------------
# LiveSessionController
# ------------------------------------------------------------------

class LiveSessionController:
    """
    One controller == one playback timeline, any number of sequential
    sessions.

    Usage:
        async with LiveSessionController(...) as controller:
            await controller.connect()
            ...
            controller.disconnect()
    """

    def __init__(
        self,
        *,
        config: LiveSessionConfig,
        transport: LiveTransport,
        capture: CaptureBackend,
        sink: PlaybackSink,
        callbacks: LiveSessionCallbacks | None = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._capture = capture
        self._sink = sink
        self._callbacks = callbacks or LiveSessionCallbacks()

        self._machine = SessionStateMachine()
        self._session: LiveSession | None = None
        self._scheduler = PlaybackScheduler(clock=sink.current_time)
        self._output = OutputAudioPipeline(
            sink=sink,
            scheduler=self._scheduler,
            callbacks=self._callbacks,
        )
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._machine.state

    @property
    def session(self) -> LiveSession | None:
        """The live session being connected or open, if any."""
        return self._session

    @property
    def scheduler(self) -> PlaybackScheduler:
        """Playback timeline shared by every session of this controller."""
        return self._scheduler

    @property
    def output(self) -> OutputAudioPipeline:
        """Inbound audio pipeline."""
        return self._output

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Start a live session.

        No-op unless DISCONNECTED. Setup failures never raise: resources
        acquired so far are released, state returns to DISCONNECTED and the
        error is delivered through on_error.
        """
        if self._closed:
            self._callbacks.notify(
                "on_error", LiveSessionError("Controller has been closed.")
            )
            return
        if not self._machine.can(Transition.BEGIN_CONNECT):
            return

        session = LiveSession(session_id=_new_session_id())
        self._session = session
        self._machine.apply(Transition.BEGIN_CONNECT, session_id=session.session_id)

        pending: PendingSession | None = None
        with timed("live_connect", session_id=session.session_id):
            try:
                capture = await self._acquire_capture(session)
                if self._session is not session:
                    # disconnect() ran while the device was being opened
                    capture.stop()
                    return
                session.attach_capture(capture)

                pending = PendingSession(session_id=session.session_id)
                session.attach_pending(pending)

                try:
                    connection = await self._transport.open(
                        self._config, self._handlers_for(session)
                    )
                except RemoteConnectError:
                    raise
                except Exception as exc:
                    raise RemoteConnectError(
                        f"Failed to open live session: {exc}"
                    ) from exc

                # Resolve even if torn down meanwhile so the queued close
                # request reaches the connection.
                pending.resolve(connection)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                if pending is not None:
                    pending.abandon()
                self._fail_setup(session, exc)
                return

        if self._session is not session:
            return

        log_event({
            "ts_ms": now_ms(),
            "event_type": "LIVE_SESSION_CONNECTED",
            "state": self._machine.state.value,
            **session.log_context(),
        })

    async def _acquire_capture(self, session: LiveSession) -> CaptureHandle:
        if not self._capture.is_available():
            raise CapabilityUnavailableError(
                "Audio input is not supported on this platform."
            )
        try:
            return await self._capture.open(_frame_router(session))
        except LiveSessionError:
            raise
        except Exception as exc:
            raise MicrophoneUnavailableError(
                "Microphone not found or permission denied."
            ) from exc

    def _fail_setup(self, session: LiveSession, exc: Exception) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "LIVE_CONNECT_FAILED",
            "session_id": session.session_id,
            "error_type": type(exc).__name__,
            "error": str(exc),
        })

        if self._session is not session:
            # disconnect() already tore this session down and notified the owner
            session.release()
            return

        self._session = None
        session.release()
        if self._machine.can(Transition.SETUP_FAILED):
            self._machine.apply(Transition.SETUP_FAILED, session_id=session.session_id)
            self._callbacks.notify("on_error", exc)
            return

        # The transport reported open before open() failed; on_open was
        # delivered, so close the session the owner saw open.
        self._machine.apply(Transition.BEGIN_CLOSE, session_id=session.session_id)
        self._machine.apply(Transition.CLOSED, session_id=session.session_id)
        self._callbacks.notify("on_error", exc)
        self._callbacks.notify("on_close")

    # ------------------------------------------------------------------
    # Disconnect
    # ------------------------------------------------------------------

    def disconnect(self) -> None:
        """
        Tear the current session down.

        Idempotent; safe in any state. Order: stop capture, detach input
        pipeline, request remote close, clear handles, notify on_close.
        Audio already scheduled for playback keeps playing.
        """
        session = self._session
        if session is None or not self._machine.can(Transition.BEGIN_CLOSE):
            return

        self._machine.apply(Transition.BEGIN_CLOSE, session_id=session.session_id)
        self._session = None
        session.release()
        self._machine.apply(Transition.CLOSED, session_id=session.session_id)

        self._callbacks.notify("on_close")

    # ------------------------------------------------------------------
    # Remote events
    # ------------------------------------------------------------------

    def _handlers_for(self, session: LiveSession) -> LiveEventHandlers:
        return LiveEventHandlers(
            on_open=lambda: self._on_remote_open(session),
            on_message=lambda message: self._on_remote_message(session, message),
            on_close=lambda reason: self._on_remote_close(session, reason),
            on_error=lambda exc: self._on_remote_error(session, exc),
        )

    def _on_remote_open(self, session: LiveSession) -> None:
        if self._session is not session or not self._machine.can(Transition.OPENED):
            return

        self._machine.apply(Transition.OPENED, session_id=session.session_id)
        self._callbacks.notify("on_open")

        assert session.pending is not None
        session.attach_input_pipeline(
            InputAudioPipeline(
                loop=asyncio.get_running_loop(),
                session=session.pending,
            )
        )

        if session.capture is None:
            return
        try:
            session.capture.start()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._callbacks.notify(
                "on_error",
                MicrophoneUnavailableError(f"Microphone stopped working: {exc}"),
            )
            self.disconnect()

    def _on_remote_message(self, session: LiveSession, message: LiveServerMessage) -> None:
        if self._session is not session:
            return
        self._output.handle_message(message, session_id=session.session_id)

    def _on_remote_close(self, session: LiveSession, reason: str | None) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "LIVE_REMOTE_CLOSED",
            "session_id": session.session_id,
            "reason": reason,
        })
        if self._session is session:
            self.disconnect()

    def _on_remote_error(self, session: LiveSession, exc: Exception) -> None:
        log_event({
            "ts_ms": now_ms(),
            "event_type": "LIVE_REMOTE_ERROR",
            "session_id": session.session_id,
            "error": f"{type(exc).__name__}: {exc}",
        })
        if self._session is not session:
            return
        error = RemoteRuntimeError("Connection error")
        error.__cause__ = exc
        self._callbacks.notify("on_error", error)

    # ------------------------------------------------------------------
    # Scoped release
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Disconnect, let the remote close drain, release the playback sink."""
        if self._closed:
            return
        self._closed = True

        session = self._session
        pending = session.pending if session is not None else None
        self.disconnect()
        if pending is not None and pending.is_resolved:
            await pending.wait_drained()

        self._sink.close()

    async def __aenter__(self) -> LiveSessionController:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
