"""
Cooperative cancellation shared by the stages of one pipeline run.

Stages check the token at every unit of work (row, chunk, batch); there is no
preemption, so a stage honours cancellation at its next checkpoint.
"""

import threading
from typing import Optional


class CancellationToken:
    """
    One-shot cancellation signal.

    Cancelling is idempotent and can happen from any thread. The first
    reason given is kept.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> bool:
        """
        Signal cancellation.

        Returns:
            True if this call flipped the token, False if it was already set
        """
        with self._lock:
            if self._event.is_set():
                return False
            self._reason = reason
            self._event.set()
            return True

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or the timeout elapses."""
        return self._event.wait(timeout)

    def __repr__(self) -> str:
        state = f"cancelled:{self._reason}" if self.cancelled else "active"
        return f"<CancellationToken {state}>"
