# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest

import session.state as state_mod
from session.errors import InvalidTransition
from session.state import SessionState, SessionStateMachine, Transition


def test_full_lifecycle() -> None:
    machine = SessionStateMachine()

    assert machine.state is SessionState.DISCONNECTED
    machine.apply(Transition.BEGIN_CONNECT)
    machine.apply(Transition.OPENED)
    assert machine.state is SessionState.OPEN
    machine.apply(Transition.BEGIN_CLOSE)
    assert machine.state is SessionState.CLOSING
    machine.apply(Transition.CLOSED)
    assert machine.state is SessionState.DISCONNECTED


def test_setup_failure_returns_to_disconnected() -> None:
    machine = SessionStateMachine()
    machine.apply(Transition.BEGIN_CONNECT)

    machine.apply(Transition.SETUP_FAILED)

    assert machine.state is SessionState.DISCONNECTED


def test_close_allowed_while_connecting() -> None:
    machine = SessionStateMachine()
    machine.apply(Transition.BEGIN_CONNECT)

    assert machine.can(Transition.BEGIN_CLOSE)
    assert not machine.can(Transition.BEGIN_CONNECT)


@pytest.mark.parametrize(
    "transition",
    [Transition.OPENED, Transition.SETUP_FAILED, Transition.BEGIN_CLOSE, Transition.CLOSED],
)
def test_illegal_from_disconnected(transition: Transition) -> None:
    machine = SessionStateMachine()

    assert not machine.can(transition)
    with pytest.raises(InvalidTransition):
        machine.apply(transition)
    assert machine.state is SessionState.DISCONNECTED


def test_transitions_are_logged(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(state_mod, "log_event", emitted.append)

    machine = SessionStateMachine()
    machine.apply(Transition.BEGIN_CONNECT, session_id="sess_1")

    assert emitted[0]["event_type"] == "LIVE_SESSION_TRANSITION"
    assert emitted[0]["session_id"] == "sess_1"
    assert (emitted[0]["from"], emitted[0]["to"]) == ("DISCONNECTED", "CONNECTING")
