"""
Remote voice-streaming contract.

This module defines the *interface only*: no audio encoding, no playback,
no session state machine, no retries.

Key invariants:
- Event handlers are invoked on the event loop, one at a time, in the
  order the remote produced them.
- on_close fires at most once per connection, whether the close was
  requested locally or initiated by the remote.
- on_error is a notification only; it is not a close.
- send_realtime_input is one unit per call; the adapter never batches,
  buffers or retries.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Tuple

from audio.frames import WireAudioChunk
from adapters.live.messages import LiveServerMessage
from constants import LIVE_RESPONSE_MODALITIES


@dataclass(frozen=True)
class LiveSessionConfig:
    """
    Fixed configuration a live session is opened with.

    response_modalities:
        What the remote answers with; audio only for voice sessions.
    voice:
        Prebuilt voice name.
    system_instruction:
        Persona text defining the remote model's conversational role.
    """
    model: str
    voice: str
    system_instruction: str
    response_modalities: Tuple[str, ...] = LIVE_RESPONSE_MODALITIES
    transcribe_input: bool = True
    transcribe_output: bool = True


@dataclass(frozen=True)
class LiveEventHandlers:
    """The four remote events a session reacts to."""
    on_open: Callable[[], None]
    on_message: Callable[[LiveServerMessage], None]
    on_close: Callable[[str | None], None]
    on_error: Callable[[Exception], None]


class LiveConnection(ABC):
    """An open remote session."""

    @abstractmethod
    async def send_realtime_input(self, chunk: WireAudioChunk) -> None:
        """
        Send one realtime audio unit.

        Contract:
        - No acknowledgement is awaited beyond handing bytes to the socket.
        - Raises on transport failure; the caller decides to log and continue.
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        """
        Request the session close.

        Must be idempotent. on_close follows once the transport is down.
        """
        raise NotImplementedError


class LiveTransport(ABC):
    """Factory that opens remote sessions."""

    @abstractmethod
    async def open(
        self,
        config: LiveSessionConfig,
        handlers: LiveEventHandlers,
    ) -> LiveConnection:
        """
        Open a session and start delivering events to handlers.

        on_open MAY fire before this coroutine returns the connection;
        callers must tolerate sending before they hold the connection.

        Raises:
            RemoteConnectError if the session cannot be opened.
        """
        raise NotImplementedError
