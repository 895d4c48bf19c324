"""
Input audio pipeline: capture frames -> wire chunks -> remote session.

Per frame:
1. float32 mono samples at the capture rate
2. sample * 32768, truncated and wrapped into int16 (no clamping)
3. raw little-endian bytes
4. base64 text
5. tagged "audio/pcm;rate=16000"
6. queued on the pending session handle (fire-and-forget)

One frame yields exactly one chunk; nothing is batched, buffered for
retry or reordered.

Threading:
- on_capture_frame() may be called from the audio subsystem thread. It
  only schedules work onto the event loop (call_soon_threadsafe keeps FIFO
  order) and returns immediately.
- Everything else runs on the event loop.
"""

from __future__ import annotations

import asyncio

from audio.frames import InputFrame, WireAudioChunk
from audio.pcm import encode_base64, float32_to_pcm16le
from constants import CAPTURE_MIME_TYPE
from session.pending import PendingSession


def encode_frame(frame: InputFrame, *, mime_type: str = CAPTURE_MIME_TYPE) -> WireAudioChunk:
    """Convert one captured frame into its wire chunk."""
    return WireAudioChunk(
        data=encode_base64(float32_to_pcm16le(frame.samples)),
        mime_type=mime_type,
    )


class InputAudioPipeline:
    """Streams frames into a PendingSession while attached."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        session: PendingSession,
        mime_type: str = CAPTURE_MIME_TYPE,
    ) -> None:
        self._loop = loop
        self._session = session
        self._mime_type = mime_type
        self._attached = True
        self.frames_sent = 0

    @property
    def attached(self) -> bool:
        """False once detach() has been called."""
        return self._attached

    def on_capture_frame(self, frame: InputFrame) -> None:
        """Capture callback entry point. Safe from any thread; never blocks."""
        if not self._attached:
            return
        try:
            self._loop.call_soon_threadsafe(self._push_frame, frame)
        except RuntimeError:
            # Loop already closed during shutdown; the frame is dropped
            return

    def detach(self) -> None:
        """Stop forwarding; frames already scheduled are dropped."""
        self._attached = False

    def _push_frame(self, frame: InputFrame) -> None:
        if not self._attached:
            return
        self._session.send_realtime_input(encode_frame(frame, mime_type=self._mime_type))
        self.frames_sent += 1
