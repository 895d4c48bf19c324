"""
Gapless playback of decoded response audio.

Model:
- A playback clock measured in seconds of audio rendered by the output
  device (not wall-clock time).
- A scheduling cursor (next_start_time) marking the end of the last
  scheduled buffer. Every new buffer starts at
  max(clock_now, next_start_time), so buffers are appended to the tail of
  the timeline regardless of when they arrive: no overlap, no gap beyond
  scheduling jitter.
- A mixer that renders scheduled buffers into device blocks at their
  scheduled sample positions.

Threading:
- The cursor is read-modify-written under a lock; start times handed out
  are non-decreasing even if inbound chunks are processed concurrently.
- The mixer is shared between the event loop (schedule) and the PortAudio
  thread (render) and guards its state with its own lock.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from audio.frames import PlaybackBuffer
from constants import PLAYBACK_BLOCK_FRAMES, PLAYBACK_CHANNELS, PLAYBACK_SAMPLE_RATE_HZ
from observability.logger import log_event, now_ms
from session.errors import CapabilityUnavailableError


# ---------------------------------------------------------------------
# Scheduling cursor
# ---------------------------------------------------------------------

class PlaybackScheduler:
    """
    Owns next_start_time for one playback timeline.

    The cursor outlives individual sessions; it is only reset when queued
    audio is flushed.
    """

    def __init__(self, clock: Callable[[], float]) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._next_start_time = 0.0

    @property
    def next_start_time(self) -> float:
        """End of the last scheduled buffer, in playback-clock seconds."""
        with self._lock:
            return self._next_start_time

    def reserve(self, duration: float) -> float:
        """
        Reserve [start, start + duration) on the timeline.

        Returns the start time. Atomic with respect to other reservations.
        """
        with self._lock:
            start = max(self._clock(), self._next_start_time)
            self._next_start_time = start + duration
            return start

    def reset(self) -> None:
        """Forget the tail; the next buffer starts at the clock."""
        with self._lock:
            self._next_start_time = 0.0


# ---------------------------------------------------------------------
# Mixer
# ---------------------------------------------------------------------

@dataclass
class _ScheduledBuffer:
    start_frame: int
    samples: np.ndarray

    @property
    def end_frame(self) -> int:
        return self.start_frame + int(self.samples.shape[0])


class PlaybackMixer:
    """
    Sample-accurate renderer for scheduled buffers.

    The playback clock is the number of frames rendered so far divided by
    the sample rate. Overlapping buffers are summed.
    """

    def __init__(self, sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ) -> None:
        self._rate = sample_rate_hz
        self._lock = threading.Lock()
        self._position = 0
        self._scheduled: list[_ScheduledBuffer] = []

    def current_time(self) -> float:
        """Seconds of audio rendered so far."""
        with self._lock:
            return self._position / self._rate

    def schedule(self, samples: np.ndarray, start_time: float) -> int:
        """
        Queue samples to start at start_time (seconds).

        A start time already in the past plays immediately.
        Returns the start frame actually used.
        """
        with self._lock:
            start_frame = max(int(round(start_time * self._rate)), self._position)
            self._scheduled.append(
                _ScheduledBuffer(start_frame=start_frame, samples=np.asarray(samples, dtype=np.float32))
            )
            return start_frame

    def render(self, frames: int) -> np.ndarray:
        """Produce the next `frames` output samples and advance the clock."""
        out = np.zeros(frames, dtype=np.float32)
        with self._lock:
            begin = self._position
            end = begin + frames

            for item in self._scheduled:
                lo = max(item.start_frame, begin)
                hi = min(item.end_frame, end)
                if lo >= hi:
                    continue
                out[lo - begin: hi - begin] += item.samples[lo - item.start_frame: hi - item.start_frame]

            self._scheduled = [item for item in self._scheduled if item.end_frame > end]
            self._position = end
        return out

    def clear(self) -> None:
        """Drop everything not yet rendered."""
        with self._lock:
            self._scheduled.clear()

    def pending_seconds(self) -> float:
        """Audio scheduled beyond the current position, in seconds."""
        with self._lock:
            if not self._scheduled:
                return 0.0
            tail = max(item.end_frame for item in self._scheduled)
            return max(tail - self._position, 0) / self._rate


# ---------------------------------------------------------------------
# Output sinks
# ---------------------------------------------------------------------

class PlaybackSink(ABC):
    """
    An output device with its own clock.

    Acquired once and owned by the session controller; released by close().
    """

    @abstractmethod
    def current_time(self) -> float:
        """Playback clock in seconds."""
        raise NotImplementedError

    @abstractmethod
    def play_at(self, buffer: PlaybackBuffer, start_time: float) -> None:
        """Start playing buffer at start_time on the playback clock."""
        raise NotImplementedError

    @abstractmethod
    def flush(self) -> None:
        """Drop audio scheduled but not yet played."""
        raise NotImplementedError

    @abstractmethod
    def close(self) -> None:
        """Release the device. Idempotent."""
        raise NotImplementedError


class SpeakerOutput(PlaybackSink):
    """
    Default output device via a callback-driven sounddevice stream.

    The stream runs continuously (rendering silence when idle) so that the
    playback clock advances like an audio context's currentTime.
    """

    def __init__(
        self,
        *,
        device: int | str | None = None,
        sample_rate_hz: int = PLAYBACK_SAMPLE_RATE_HZ,
    ) -> None:
        self._device = device
        self._rate = sample_rate_hz
        self._mixer = PlaybackMixer(sample_rate_hz)
        self._stream: Any = None

    def open(self) -> SpeakerOutput:
        """Acquire and start the output stream."""
        if self._stream is not None:
            return self

        try:
            import sounddevice as sd  # pylint: disable=import-outside-toplevel
        except (ImportError, OSError) as exc:
            raise CapabilityUnavailableError(
                "Audio output is not supported on this platform."
            ) from exc

        try:
            stream = sd.OutputStream(
                device=self._device,
                channels=PLAYBACK_CHANNELS,
                samplerate=self._rate,
                dtype="float32",
                blocksize=PLAYBACK_BLOCK_FRAMES,
                callback=self._callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "SPEAKER_UNAVAILABLE",
                "device": self._device,
                "error": f"{type(exc).__name__}: {exc}",
            })
            raise CapabilityUnavailableError(
                "Audio output device not found or unavailable."
            ) from exc

        self._stream = stream
        return self

    # Runs on the PortAudio thread
    def _callback(self, outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
        # pylint: disable=unused-argument
        if status:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "PLAYBACK_STATUS",
                "status": str(status),
            })
        outdata[:, 0] = self._mixer.render(frames)

    def current_time(self) -> float:
        return self._mixer.current_time()

    def play_at(self, buffer: PlaybackBuffer, start_time: float) -> None:
        self._mixer.schedule(buffer.samples, start_time)

    def flush(self) -> None:
        self._mixer.clear()

    def close(self) -> None:
        if self._stream is None:
            return
        stream, self._stream = self._stream, None
        try:
            stream.stop()
            stream.close()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "PLAYBACK_RELEASE_ERROR",
                "error": f"{type(exc).__name__}: {exc}",
            })
        self._mixer.clear()
