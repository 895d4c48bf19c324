"""
Output audio pipeline: inbound messages -> decoded buffers -> speaker.

Per inbound message:
1. transcript text (user or model) is forwarded through on_message
2. messages without an inline audio payload stop here, no decode attempt
3. base64 -> int16 little-endian -> / 32768.0 -> mono buffer at 24kHz
4. start = max(clock_now, next_start_time); play at start;
   next_start_time = start + duration
5. on_audio_data(buffer) for visualisation

Failure policy:
- A chunk that fails to decode is logged and skipped; the session and
  later chunks are unaffected.
- A remote "interrupted" signal drops audio scheduled but not yet played
  and resets the cursor, so the reply stops when the user talks over it.
"""

from __future__ import annotations

import binascii

from adapters.live.messages import LiveServerMessage
from audio.frames import InboundAudioChunk, PlaybackBuffer
from audio.pcm import decode_base64, pcm16le_to_float32
from audio.playback import PlaybackScheduler, PlaybackSink
from constants import PLAYBACK_SAMPLE_RATE_HZ
from observability.logger import log_event, now_ms
from session.callbacks import LiveSessionCallbacks
from session.errors import AudioDecodeError


def decode_chunk(
    chunk: InboundAudioChunk,
    *,
    sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
) -> PlaybackBuffer:
    """
    Decode one inbound chunk.

    Raises:
        AudioDecodeError on malformed base64 or an empty payload.
    """
    try:
        raw = decode_base64(chunk.data)
    except (binascii.Error, ValueError) as exc:
        raise AudioDecodeError(f"invalid base64 audio payload: {exc}") from exc

    samples = pcm16le_to_float32(raw)
    if samples.shape[0] == 0:
        raise AudioDecodeError("audio payload decodes to zero samples")

    return PlaybackBuffer(samples=samples, sample_rate_hz=sample_rate_hz)


class OutputAudioPipeline:
    """Decodes and schedules response audio for one playback timeline."""

    def __init__(
        self,
        *,
        sink: PlaybackSink,
        scheduler: PlaybackScheduler,
        callbacks: LiveSessionCallbacks,
    ) -> None:
        self._sink = sink
        self._scheduler = scheduler
        self._callbacks = callbacks
        self.decode_errors = 0

    def handle_message(
        self,
        message: LiveServerMessage,
        *,
        session_id: str | None = None,
    ) -> float | None:
        """
        Process one inbound message.

        Returns the scheduled start time, or None if nothing was scheduled.
        """
        if message.interrupted:
            self.interrupt(session_id=session_id)

        if message.input_transcript:
            self._callbacks.notify("on_message", message.input_transcript, True)
        if message.output_transcript:
            self._callbacks.notify("on_message", message.output_transcript, False)
        if message.text:
            self._callbacks.notify("on_message", message.text, False)

        if not message.has_audio or message.audio is None:
            return None

        try:
            buffer = decode_chunk(message.audio)
        except AudioDecodeError as exc:
            self.decode_errors += 1
            log_event({
                "ts_ms": now_ms(),
                "event_type": "LIVE_AUDIO_DECODE_ERROR",
                "session_id": session_id,
                "error": str(exc),
            })
            return None

        start = self._scheduler.reserve(buffer.duration)
        self._sink.play_at(buffer, start)
        self._callbacks.notify("on_audio_data", buffer)
        return start

    def interrupt(self, *, session_id: str | None = None) -> None:
        """Drop queued response audio and restart the timeline at the clock."""
        self._sink.flush()
        self._scheduler.reset()
        log_event({
            "ts_ms": now_ms(),
            "event_type": "LIVE_PLAYBACK_INTERRUPTED",
            "session_id": session_id,
        })
