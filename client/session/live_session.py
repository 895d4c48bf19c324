"""
Live session container.

- Owns the resources of ONE connection attempt: capture handle, pending
  remote handle, input pipeline
- Created by the controller on connect(), released exactly once
- NOT a state machine (see session/state.py)
- Contains no streaming logic
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from audio.capture import CaptureHandle
from session.input_pipeline import InputAudioPipeline
from session.pending import PendingSession


# ---------------------------------------------------------------------
# LiveSession
# ---------------------------------------------------------------------


@dataclass
class LiveSession:
    """Mutable resource holder for a single live session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Owned handles
    # ------------------------------------------------------------------

    capture: CaptureHandle | None = None
    pending: PendingSession | None = None
    input_pipeline: InputAudioPipeline | None = None

    released: bool = False

    # ------------------------------------------------------------------
    # Wiring helpers (called by the controller)
    # ------------------------------------------------------------------

    def attach_capture(self, capture: CaptureHandle) -> None:
        """Attach the acquired (not yet started) capture handle."""
        self.capture = capture

    def attach_pending(self, pending: PendingSession) -> None:
        """Attach the outbound handle; it may resolve later."""
        self.pending = pending

    def attach_input_pipeline(self, pipeline: InputAudioPipeline) -> None:
        """Attach the input pipeline once the remote session is open."""
        self.input_pipeline = pipeline

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def release(self) -> bool:
        """
        Release every owned handle, in order:
        stop capture, detach input pipeline, request remote close.

        Each step is best-effort. Returns False if already released.
        """
        if self.released:
            return False
        self.released = True

        if self.capture is not None:
            self.capture.stop()
            self.capture = None

        if self.input_pipeline is not None:
            self.input_pipeline.detach()
            self.input_pipeline = None

        if self.pending is not None:
            self.pending.request_close()
            self.pending = None

        return True

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "has_capture": self.capture is not None,
            "has_pending": self.pending is not None,
            "streaming": self.input_pipeline is not None,
        }
