"""
Audio frame primitives.

Pure data containers only.
No device access, no queues, no scheduling logic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from constants import CAPTURE_SAMPLE_RATE_HZ, samples_to_seconds


@dataclass(frozen=True)
class InputFrame:
    """
    One fixed-size block of captured microphone audio.

    samples:
        Mono float32 samples, nominally in [-1.0, 1.0], at sample_rate_hz.
        Values outside that range are passed through untouched.

    sequence_num:
        Monotonic per-capture counter, used for logging only.

    Frames are transient: consumed by the input pipeline immediately.
    """
    samples: np.ndarray
    sequence_num: int = 0
    sample_rate_hz: int = CAPTURE_SAMPLE_RATE_HZ


@dataclass(frozen=True)
class WireAudioChunk:
    """
    Encoded unit sent to the remote session for one InputFrame.

    data:
        base64 text of raw little-endian PCM16 mono samples.

    mime_type:
        "audio/pcm;rate=<capture rate>".

    Ownership passes to the transport on send; never retried.
    """
    data: str
    mime_type: str

    def to_wire(self) -> dict[str, str]:
        """Return the JSON shape expected by the remote session."""
        return {"data": self.data, "mimeType": self.mime_type}


@dataclass(frozen=True)
class InboundAudioChunk:
    """Encoded audio unit received from the remote session."""
    data: str
    mime_type: str | None = None


@dataclass(frozen=True)
class PlaybackBuffer:
    """
    Decoded mono audio ready to be scheduled for playback.

    Owned transiently by the output pipeline; forwarded read-only to the
    visualisation observer.
    """
    samples: np.ndarray
    sample_rate_hz: int

    @property
    def num_samples(self) -> int:
        """Number of mono samples in the buffer."""
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Playback duration in seconds."""
        return samples_to_seconds(self.num_samples, self.sample_rate_hz)

    def describe(self) -> dict[str, Any]:
        """Lightweight summary for logging."""
        return {
            "samples": self.num_samples,
            "sample_rate_hz": self.sample_rate_hz,
            "duration_s": round(self.duration, 6),
        }
