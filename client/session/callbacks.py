"""
Observer contract between a live session and its owning application.

All notifications are optional, fire-and-forget, and carry no ownership.
An observer that raises is logged and otherwise ignored: a broken UI
hook must never break capture, playback or teardown.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from audio.frames import PlaybackBuffer
from observability.logger import log_event, now_ms


@dataclass(frozen=True)
class LiveSessionCallbacks:
    """
    on_open:       remote session opened, audio is streaming
    on_message:    transcript text; is_user is True for the user's own speech
    on_audio_data: decoded response audio, for visualisation only
    on_error:      human-readable error (setup failure or remote error)
    on_close:      session torn down
    """
    on_open: Optional[Callable[[], None]] = None
    on_message: Optional[Callable[[str, bool], None]] = None
    on_audio_data: Optional[Callable[[PlaybackBuffer], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    on_close: Optional[Callable[[], None]] = None

    def notify(self, name: str, *args: Any) -> None:
        """Invoke callback `name` if wired; observer errors are contained."""
        callback = getattr(self, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": now_ms(),
                "event_type": "LIVE_OBSERVER_ERROR",
                "callback": name,
                "error": f"{type(exc).__name__}: {exc}",
            })
