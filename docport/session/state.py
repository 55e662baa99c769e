"""
Session lifecycle.

The controller moves through ``idle -> opened -> running -> idle`` on a closed
set of events. Every (state, event) pair has an entry in the transition table:
the event is applied, ignored as a no-op, or rejected.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from docport.errors import DocportError


class ControllerState(str, Enum):
    IDLE = "idle"
    OPENED = "opened"
    RUNNING = "running"


class SessionEvent(str, Enum):
    OPEN = "open"
    START = "start"
    FINISH = "finish"
    CLOSE = "close"
    DISCONNECT = "disconnect"


class TransitionOutcome(str, Enum):
    APPLIED = "applied"
    NOOP = "noop"
    INVALID = "invalid"


class SessionStatus(str, Enum):
    """Outcome of the current or last run."""
    UNSPECIFIED = "unspecified"
    STARTED = "started"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed-with-errors"
    CANCELED = "canceled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({
    SessionStatus.COMPLETED,
    SessionStatus.COMPLETED_WITH_ERRORS,
    SessionStatus.CANCELED,
    SessionStatus.FAILED,
})


def advance_status(current: SessionStatus, new: SessionStatus) -> SessionStatus:
    """Return the status after ``new`` is reported; terminal statuses stick."""
    if current.is_terminal:
        return current
    return new


class InvalidTransitionError(DocportError):
    """An event is not allowed in the controller's current state."""

    kind = "state"


_S = ControllerState
_E = SessionEvent
_O = TransitionOutcome

TRANSITIONS: Dict[Tuple[ControllerState, SessionEvent], Tuple[TransitionOutcome, ControllerState]] = {
    (_S.IDLE, _E.OPEN): (_O.APPLIED, _S.OPENED),
    (_S.IDLE, _E.START): (_O.INVALID, _S.IDLE),
    (_S.IDLE, _E.FINISH): (_O.INVALID, _S.IDLE),
    (_S.IDLE, _E.CLOSE): (_O.NOOP, _S.IDLE),
    (_S.IDLE, _E.DISCONNECT): (_O.NOOP, _S.IDLE),

    # Re-opening resets the session
    (_S.OPENED, _E.OPEN): (_O.APPLIED, _S.OPENED),
    (_S.OPENED, _E.START): (_O.APPLIED, _S.RUNNING),
    (_S.OPENED, _E.FINISH): (_O.INVALID, _S.OPENED),
    (_S.OPENED, _E.CLOSE): (_O.APPLIED, _S.IDLE),
    (_S.OPENED, _E.DISCONNECT): (_O.APPLIED, _S.IDLE),

    # Open and start while running signal "in progress" instead
    (_S.RUNNING, _E.OPEN): (_O.NOOP, _S.RUNNING),
    (_S.RUNNING, _E.START): (_O.NOOP, _S.RUNNING),
    (_S.RUNNING, _E.FINISH): (_O.APPLIED, _S.IDLE),
    (_S.RUNNING, _E.CLOSE): (_O.NOOP, _S.RUNNING),
    (_S.RUNNING, _E.DISCONNECT): (_O.APPLIED, _S.IDLE),
}


@dataclass(frozen=True)
class Transition:
    event: SessionEvent
    outcome: TransitionOutcome
    previous: ControllerState
    state: ControllerState

    @property
    def applied(self) -> bool:
        return self.outcome == TransitionOutcome.APPLIED


class SessionStateMachine:
    """Thread-safe holder of the controller state."""

    def __init__(self, state: ControllerState = ControllerState.IDLE):
        self._state = state
        self._lock = threading.Lock()

    @property
    def state(self) -> ControllerState:
        return self._state

    def dispatch(self, event: SessionEvent) -> Transition:
        """
        Apply an event.

        Returns:
            The transition taken; no-ops leave the state unchanged

        Raises:
            InvalidTransitionError: If the event is not allowed in the
                current state
        """
        with self._lock:
            previous = self._state
            outcome, state = TRANSITIONS[(previous, event)]
            if outcome == TransitionOutcome.INVALID:
                raise InvalidTransitionError(
                    f"Cannot {event.value} a session that is {previous.value}")
            self._state = state
            return Transition(event, outcome, previous, state)
