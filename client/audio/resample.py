"""
Capture-rate conversion.

Microphones rarely run natively at the 16kHz capture rate; devices are
opened at their own rate and each block is converted here before framing.
Stateless polyphase resampling (scipy), one block at a time.
"""

from __future__ import annotations

from math import gcd

import numpy as np
from scipy import signal


class BlockResampler:
    """Resample float32 mono blocks from source_rate_hz to target_rate_hz."""

    def __init__(self, *, source_rate_hz: int, target_rate_hz: int) -> None:
        if source_rate_hz <= 0 or target_rate_hz <= 0:
            raise ValueError("sample rates must be > 0")

        divisor = gcd(source_rate_hz, target_rate_hz)
        self._up = target_rate_hz // divisor
        self._down = source_rate_hz // divisor
        self.source_rate_hz = source_rate_hz
        self.target_rate_hz = target_rate_hz

    @property
    def is_passthrough(self) -> bool:
        """True when no conversion is needed."""
        return self._up == self._down

    def source_block_size(self, target_block_size: int) -> int:
        """Device block size that yields target_block_size output samples."""
        return (target_block_size * self._down) // self._up

    def process(self, block: np.ndarray) -> np.ndarray:
        """Convert one block; returns float32."""
        samples = np.asarray(block, dtype=np.float32)
        if self.is_passthrough or samples.size == 0:
            return samples
        out = signal.resample_poly(samples, self._up, self._down)
        return out.astype(np.float32)
