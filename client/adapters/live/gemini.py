"""
Gemini Live websocket transport.

Speaks the bidirectional generate-content websocket protocol directly:
- one setup frame carrying model, response modality, voice, persona and
  transcription switches,
- one realtimeInput frame per outbound audio chunk,
- server frames parsed by adapters.live.messages and handed to the
  session's handlers in arrival order.

Connection lifecycle:
- open() connects, sends setup, fires on_open, starts the receive task and
  then returns the connection. Audio may be pushed by the session between
  on_open and the return; the session's pending handle absorbs that.
- The receive task ends on remote close, local close or transport error,
  and fires on_close exactly once.

Design constraints:
- No retries, no reconnects, no buffering of unsent audio.
- No knowledge of session state, capture or playback.
"""

from __future__ import annotations

import asyncio
import json
import urllib.parse
from typing import Any

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosedError

from adapters.live.base import (
    LiveConnection,
    LiveEventHandlers,
    LiveSessionConfig,
    LiveTransport,
)
from adapters.live.messages import LiveProtocolError, parse_server_message
from audio.frames import WireAudioChunk
from constants import LIVE_WS_URL
from observability.logger import log_event, now_ms
from session.errors import RemoteConnectError


def build_setup_message(config: LiveSessionConfig) -> dict[str, Any]:
    """First frame of every session."""
    model = config.model if config.model.startswith("models/") else f"models/{config.model}"

    setup: dict[str, Any] = {
        "model": model,
        "generationConfig": {
            "responseModalities": list(config.response_modalities),
            "speechConfig": {
                "voiceConfig": {
                    "prebuiltVoiceConfig": {"voiceName": config.voice},
                },
            },
        },
        "systemInstruction": {"parts": [{"text": config.system_instruction}]},
    }
    if config.transcribe_input:
        setup["inputAudioTranscription"] = {}
    if config.transcribe_output:
        setup["outputAudioTranscription"] = {}

    return {"setup": setup}


def build_realtime_input(chunk: WireAudioChunk) -> dict[str, Any]:
    """One outbound audio unit."""
    return {"realtimeInput": {"audio": chunk.to_wire()}}


class GeminiLiveConnection(LiveConnection):
    """One open websocket session."""

    def __init__(self, *, ws: ClientConnection, handlers: LiveEventHandlers) -> None:
        self._ws = ws
        self._handlers = handlers
        self._recv_task: asyncio.Task[None] | None = None
        self._close_notified = False

    def start_receiving(self) -> None:
        """Spawn the receive loop (once)."""
        if self._recv_task is None:
            self._recv_task = asyncio.create_task(self._receive_loop())

    async def send_realtime_input(self, chunk: WireAudioChunk) -> None:
        await self._ws.send(json.dumps(build_realtime_input(chunk)))

    async def close(self) -> None:
        await self._ws.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _receive_loop(self) -> None:
        reason: str | None = None
        try:
            async for raw in self._ws:
                try:
                    message = parse_server_message(raw)
                except LiveProtocolError as exc:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "LIVE_PROTOCOL_ERROR",
                        "error": str(exc),
                    })
                    continue

                if message.go_away:
                    log_event({
                        "ts_ms": now_ms(),
                        "event_type": "LIVE_GO_AWAY",
                        "detail": message.raw.get("goAway"),
                    })

                self._handlers.on_message(message)

            reason = self._close_reason()

        except asyncio.CancelledError:
            reason = "cancelled"
            raise

        except ConnectionClosedError as exc:
            reason = self._close_reason()
            self._handlers.on_error(exc)

        except Exception as exc:  # pylint: disable=broad-exception-caught
            reason = f"{type(exc).__name__}: {exc}"
            self._handlers.on_error(exc)

        finally:
            self._notify_close(reason)

    def _notify_close(self, reason: str | None) -> None:
        if self._close_notified:
            return
        self._close_notified = True
        self._handlers.on_close(reason)

    def _close_reason(self) -> str | None:
        code = getattr(self._ws, "close_code", None)
        text = getattr(self._ws, "close_reason", None)
        if code is None:
            return None
        return f"{code} {text}".strip() if text else str(code)


class GeminiLiveTransport(LiveTransport):
    """Opens Gemini Live sessions with an API key."""

    def __init__(self, *, api_key: str, url: str = LIVE_WS_URL) -> None:
        if not api_key:
            raise ValueError("api_key is required for the live transport")
        self._api_key = api_key
        self._url = url

    async def open(
        self,
        config: LiveSessionConfig,
        handlers: LiveEventHandlers,
    ) -> LiveConnection:
        url = f"{self._url}?{urllib.parse.urlencode({'key': self._api_key})}"

        try:
            ws = await ws_connect(url, max_size=None)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            raise RemoteConnectError(
                f"Could not open live session: {type(exc).__name__}: {exc}"
            ) from exc

        try:
            await ws.send(json.dumps(build_setup_message(config)))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            await ws.close()
            raise RemoteConnectError(
                f"Live session setup failed: {type(exc).__name__}: {exc}"
            ) from exc

        log_event({
            "ts_ms": now_ms(),
            "event_type": "LIVE_TRANSPORT_OPEN",
            "model": config.model,
            "voice": config.voice,
        })

        connection = GeminiLiveConnection(ws=ws, handlers=handlers)
        handlers.on_open()
        connection.start_receiving()
        return connection
