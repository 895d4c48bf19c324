"""PCM conversion utilities."""
from __future__ import annotations

import base64

import numpy as np

from constants import PCM16_SCALE, PCM16_WRAP_MODULUS


def float32_to_pcm16le(samples: np.ndarray) -> bytes:
    """
    Quantize float samples to PCM16 little-endian mono bytes.

    sample * 32768, truncated toward zero and wrapped modulo 2**16 into
    int16. There is deliberately no clamping: 1.0 becomes -32768 and
    out-of-range input wraps around. NaN and infinities become 0.
    """
    scaled = np.asarray(samples, dtype=np.float64) * PCM16_SCALE
    scaled = np.nan_to_num(scaled, nan=0.0, posinf=0.0, neginf=0.0)

    # fmod is exact for doubles, so the wrap matches integer arithmetic
    wrapped = np.fmod(np.trunc(scaled), PCM16_WRAP_MODULUS).astype(np.int32)
    return wrapped.astype("<i2").tobytes()


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    Runtime-safe, adapter-agnostic utility.
    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; the partial trailing byte is discarded.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")  # little-endian int16
    audio_f32 = audio_i16.astype(np.float32) / np.float32(PCM16_SCALE)
    return audio_f32


def encode_base64(raw: bytes) -> str:
    """Transport-safe text for raw bytes."""
    return base64.b64encode(raw).decode("ascii")


def decode_base64(text: str) -> bytes:
    """
    Decode transport text back to raw bytes.

    Raises:
        binascii.Error on malformed input (no silent garbage).
    """
    return base64.b64decode(text, validate=True)
