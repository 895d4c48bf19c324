"""
BEHAVIORAL CONSTANTS
--------------------
Single source of truth for all behavioral invariants of the client.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, URLs, model names) live in config.py.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Tuple

# =============================================================================
# Input leg: microphone -> remote (PCM16 mono @ 16kHz, 4096-sample frames)
# =============================================================================

CAPTURE_SAMPLE_RATE_HZ: Final[int] = 16_000
CAPTURE_CHANNELS: Final[int] = 1
CAPTURE_FRAME_SAMPLES: Final[int] = 4096

CAPTURE_MIME_TYPE: Final[str] = f"audio/pcm;rate={CAPTURE_SAMPLE_RATE_HZ}"

# =============================================================================
# Output leg: remote -> speaker (PCM16 mono @ 24kHz)
# =============================================================================

PLAYBACK_SAMPLE_RATE_HZ: Final[int] = 24_000
PLAYBACK_CHANNELS: Final[int] = 1

# Device callback block size for the speaker stream (frames)
PLAYBACK_BLOCK_FRAMES: Final[int] = 1024

# =============================================================================
# PCM16 quantization
# =============================================================================

PCM16_SAMPLE_WIDTH_BYTES: Final[int] = 2
PCM16_SCALE: Final[float] = 32768.0

# Quantization is NOT clamped: sample * 32768 is truncated toward zero and
# wrapped modulo 2**16 into int16.
PCM16_WRAP_MODULUS: Final[float] = 65536.0

# =============================================================================
# Live session configuration
# =============================================================================

LIVE_RESPONSE_MODALITIES: Final[Tuple[str, ...]] = ("AUDIO",)
LIVE_DEFAULT_VOICE: Final[str] = "Zephyr"
LIVE_DEFAULT_MODEL: Final[str] = "gemini-2.5-flash-native-audio-preview-09-2025"

LIVE_PERSONA: Final[str] = (
    "You are a wise, ancient healer (Hakim). You speak calmly, with empathy. "
    "You are diagnosing the user's health and spirit based on their voice."
)

LIVE_WS_URL: Final[str] = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)

# =============================================================================
# Report generation  [retry + classification]
# =============================================================================

REPORT_MAX_ATTEMPTS: Final[int] = 3
REPORT_RETRY_DELAY_STEP_MS: Final[int] = 2_000
REPORT_TEMPERATURE: Final[float] = 0.4
REPORT_IMAGE_MIME_TYPE: Final[str] = "image/jpeg"

# Substrings of a final error message that classify it
REPORT_OVERSIZED_MARKERS: Final[Tuple[str, ...]] = ("Rpc", "500", "413")
REPORT_MALFORMED_JSON_MARKERS: Final[Tuple[str, ...]] = ("JSON", "SyntaxError")

# Comparison reports attach at most this many recent images, each below
# the size limit (base64 characters)
COMPARISON_MAX_IMAGES: Final[int] = 1
COMPARISON_IMAGE_MAX_CHARS: Final[int] = 80_000
COMPARISON_SUMMARY_MAX_CHARS: Final[int] = 500
SYNERGY_REPORT_MAX_CHARS: Final[int] = 800
DAILY_OUTLOOK_HISTORY_MAX_CHARS: Final[int] = 1_500

# =============================================================================
# Hakim chat  [conversation window]
# =============================================================================

# Oldest turns are dropped once either limit is exceeded
CHAT_MAX_TURNS: Final[int] = 40
CHAT_MAX_CHARS: Final[int] = 24_000

# =============================================================================
# History backend endpoints
# =============================================================================

HISTORY_REGISTER_PATH: Final[str] = "/register.php"
HISTORY_LOGIN_PATH: Final[str] = "/login.php"
HISTORY_SAVE_PATH: Final[str] = "/save_history.php"
HISTORY_LIST_PATH: Final[str] = "/get_history.php"

# =============================================================================
# Helper Functions
# =============================================================================

def samples_to_seconds(num_samples: int, sample_rate_hz: int) -> float:
    """
    Convert a sample count to a duration in seconds.

    Defensive behavior:
    - Non-positive input returns 0.0.
    """
    if num_samples <= 0:
        return 0.0
    return num_samples / sample_rate_hz


def retry_delay_ms(attempt: int) -> int:
    """
    Delay before the next report attempt (linear backoff).

    attempt is 1-based: the delay after the first failure is one step.
    """
    if attempt <= 0:
        return 0
    return REPORT_RETRY_DELAY_STEP_MS * attempt


# =============================================================================
# Convenience Bundles
# =============================================================================

@dataclass(frozen=True)
class AudioFormat:
    """
    Immutable bundle describing one leg of the PCM audio format.

    This is a convenience wrapper for passing format metadata around;
    it is NOT a second source of truth.
    """
    sample_rate_hz: int
    channels: int = 1
    sample_width_bytes: int = PCM16_SAMPLE_WIDTH_BYTES

    @property
    def mime_type(self) -> str:
        """Return the transport mime descriptor for this format."""
        return f"audio/pcm;rate={self.sample_rate_hz}"


CAPTURE_FORMAT: Final[AudioFormat] = AudioFormat(sample_rate_hz=CAPTURE_SAMPLE_RATE_HZ)
PLAYBACK_FORMAT: Final[AudioFormat] = AudioFormat(sample_rate_hz=PLAYBACK_SAMPLE_RATE_HZ)
