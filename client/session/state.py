"""
Live session state machine.

    DISCONNECTED --begin_connect--> CONNECTING --opened--> OPEN
    CONNECTING --setup_failed--> DISCONNECTED
    CONNECTING | OPEN --begin_close--> CLOSING --closed--> DISCONNECTED

Rules:
- Transitions are named; each is legal from an explicit set of states.
- The machine holds no resources and performs no side effects beyond
  logging; the controller runs the release/notify action of each
  transition.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from observability.logger import log_event, now_ms
from session.errors import InvalidTransition


class SessionState(str, Enum):
    """Connection lifecycle of one live session."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSING = "CLOSING"


class Transition(str, Enum):
    """Named state transitions."""

    BEGIN_CONNECT = "begin_connect"
    OPENED = "opened"
    SETUP_FAILED = "setup_failed"
    BEGIN_CLOSE = "begin_close"
    CLOSED = "closed"


# transition -> (allowed source states, target state)
_TABLE: Mapping[Transition, tuple[frozenset[SessionState], SessionState]] = {
    Transition.BEGIN_CONNECT: (
        frozenset({SessionState.DISCONNECTED}),
        SessionState.CONNECTING,
    ),
    Transition.OPENED: (
        frozenset({SessionState.CONNECTING}),
        SessionState.OPEN,
    ),
    Transition.SETUP_FAILED: (
        frozenset({SessionState.CONNECTING}),
        SessionState.DISCONNECTED,
    ),
    Transition.BEGIN_CLOSE: (
        frozenset({SessionState.CONNECTING, SessionState.OPEN}),
        SessionState.CLOSING,
    ),
    Transition.CLOSED: (
        frozenset({SessionState.CLOSING}),
        SessionState.DISCONNECTED,
    ),
}


class SessionStateMachine:
    """Current state plus guarded, logged transitions."""

    def __init__(self) -> None:
        self._state = SessionState.DISCONNECTED

    @property
    def state(self) -> SessionState:
        """Current state."""
        return self._state

    def can(self, transition: Transition) -> bool:
        """True if transition is legal from the current state."""
        sources, _ = _TABLE[transition]
        return self._state in sources

    def apply(self, transition: Transition, *, session_id: str | None = None) -> SessionState:
        """
        Perform transition.

        Raises:
            InvalidTransition if not legal from the current state.
        """
        sources, target = _TABLE[transition]
        if self._state not in sources:
            raise InvalidTransition(
                f"{transition.value} not allowed from {self._state.value}"
            )

        previous, self._state = self._state, target
        log_event({
            "ts_ms": now_ms(),
            "event_type": "LIVE_SESSION_TRANSITION",
            "session_id": session_id,
            "transition": transition.value,
            "from": previous.value,
            "to": target.value,
        })
        return target
