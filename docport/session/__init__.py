"""
Import and export session controllers.
"""

from docport.session.state import (
    ControllerState,
    InvalidTransitionError,
    SessionEvent,
    SessionStateMachine,
    SessionStatus,
    TransitionOutcome,
)
from docport.session.base import SessionSummary
from docport.session.import_session import ImportSession
from docport.session.export_session import ExportSession

__all__ = [
    "ControllerState",
    "InvalidTransitionError",
    "SessionEvent",
    "SessionStateMachine",
    "SessionStatus",
    "TransitionOutcome",
    "SessionSummary",
    "ImportSession",
    "ExportSession",
]
