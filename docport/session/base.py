"""
Shared session plumbing: lifecycle, cancellation and error bookkeeping.
"""

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
from uuid import uuid4

from docport.common.cancellation import CancellationToken
from docport.common.logging_config import get_structured_logger
from docport.config.settings import Settings, get_settings
from docport.errors import ErrorRecord
from docport.progress import Progress
from docport.session.state import (
    ControllerState,
    SessionEvent,
    SessionStateMachine,
    SessionStatus,
    advance_status,
)
from docport.storage.adapter import DocumentStore, split_namespace

logger = get_structured_logger(__name__)


@dataclass(frozen=True)
class SessionSummary:
    """Aggregated outcome emitted once per run."""
    status: SessionStatus
    docs_processed: int
    docs_written: int
    aborted: bool
    error_count: int
    errors: Tuple[ErrorRecord, ...]
    elapsed_seconds: float
    error_log_path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "docs_processed": self.docs_processed,
            "docs_written": self.docs_written,
            "aborted": self.aborted,
            "error_count": self.error_count,
            "errors": [e.to_dict() for e in self.errors],
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "error_log_path": str(self.error_log_path) if self.error_log_path else None,
        }


class BaseSession:
    """
    One import or export controller.

    The backing store is borrowed: the session never opens, closes or
    reconnects it.
    """

    direction = "session"

    def __init__(self, store: DocumentStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.session_id = uuid4().hex
        self.machine = SessionStateMachine()
        self._lock = threading.RLock()

        self.namespace: Optional[str] = None
        self.in_progress_message = False
        self._cancel_token: Optional[CancellationToken] = None
        self._disconnected = False
        self._reset_run()
        self._on_open()

    def _reset_run(self) -> None:
        self.status = SessionStatus.UNSPECIFIED
        self.errors: List[ErrorRecord] = []
        self.error_count = 0
        self.progress = Progress()
        self.summary: Optional[SessionSummary] = None

    @property
    def state(self) -> ControllerState:
        return self.machine.state

    @property
    def is_running(self) -> bool:
        return self.machine.state == ControllerState.RUNNING

    @property
    def cancel_token(self) -> Optional[CancellationToken]:
        """Token of the active run; released when the run ends."""
        return self._cancel_token

    @property
    def run_active(self) -> bool:
        """
        True until the last run has released its token.

        Stays set after ``connection_lost`` until the interrupted run has
        actually stopped, while ``state`` is already idle.
        """
        return self._cancel_token is not None

    def _refuse_in_progress(self) -> None:
        self.in_progress_message = True
        logger.warning(
            f"{self.direction.capitalize()} already in progress",
            namespace=self.namespace,
        )

    def open(self, namespace: str) -> bool:
        """
        Open the session for a namespace, resetting any previous state.

        Returns:
            False if a run is in progress; ``in_progress_message`` is set
            instead
        """
        split_namespace(namespace)
        with self._lock:
            if self.run_active:
                self._refuse_in_progress()
                return False
            self.machine.dispatch(SessionEvent.OPEN)
            self._on_open()
            self.namespace = namespace
            self.in_progress_message = False
            self._disconnected = False
            self._reset_run()
        logger.info(f"{self.direction.capitalize()} opened", namespace=namespace)
        return True

    def _on_open(self) -> None:
        """Hook for subclasses to drop per-namespace state."""

    def close(self) -> None:
        """Close the session; a running operation keeps going."""
        with self._lock:
            self.machine.dispatch(SessionEvent.CLOSE)
            self.in_progress_message = False

    def cancel(self) -> bool:
        """
        Cancel the active run. Idempotent.

        Returns:
            True if this call cancelled a run
        """
        with self._lock:
            token = self._cancel_token
        if token is None:
            logger.debug(f"No active {self.direction} to cancel")
            return False
        cancelled = token.cancel("user")
        if cancelled:
            logger.info(f"{self.direction.capitalize()} canceled by user")
        return cancelled

    def connection_lost(self) -> None:
        """Cancel everything in flight and return to idle."""
        with self._lock:
            self._disconnected = True
            if self._cancel_token is not None:
                self._cancel_token.cancel("disconnected")
            self.machine.dispatch(SessionEvent.DISCONNECT)
        logger.warning("Backing store connection lost", direction=self.direction)

    def _begin_run(self) -> Optional[CancellationToken]:
        """
        Enter ``running`` with a fresh cancellation token.

        Returns:
            None if a run is in progress or an interrupted one has not
            stopped yet
        """
        with self._lock:
            if self.run_active:
                self._refuse_in_progress()
                return None
            self.machine.dispatch(SessionEvent.START)
            self._reset_run()
            self.status = SessionStatus.STARTED
            self._cancel_token = CancellationToken()
            return self._cancel_token

    def _end_run(self, token: CancellationToken, status: SessionStatus) -> None:
        """Record the terminal status and leave ``running``."""
        with self._lock:
            if self._cancel_token is not token:
                return
            self.status = advance_status(self.status, status)
            if self.machine.state == ControllerState.RUNNING:
                self.machine.dispatch(SessionEvent.FINISH)

    def _release_run(self, token: CancellationToken) -> None:
        """
        Release the token once the run has returned its summary.

        Until then ``open`` and ``start`` answer "in progress".
        """
        with self._lock:
            if self._cancel_token is token:
                self._cancel_token = None

    def _record_error(self, record: ErrorRecord) -> None:
        with self._lock:
            self.error_count += 1
            if len(self.errors) < self.settings.error_display_limit:
                self.errors.append(record)

    def _on_progress(self, progress: Progress) -> None:
        self.progress = progress

    def _summarize(
        self,
        start_time: float,
        docs_processed: int,
        docs_written: int,
        aborted: bool,
        error_log_path: Optional[Path] = None,
    ) -> SessionSummary:
        self.summary = SessionSummary(
            status=self.status,
            docs_processed=docs_processed,
            docs_written=docs_written,
            aborted=aborted,
            error_count=self.error_count,
            errors=tuple(self.errors),
            elapsed_seconds=time.monotonic() - start_time,
            error_log_path=error_log_path,
        )
        return self.summary
