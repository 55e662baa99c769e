"""
Rate-limited callback wrapper.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional


class Throttle:
    """
    Invokes a callback at most once per interval.

    The first call goes through immediately. Calls arriving inside the
    interval replace a single pending payload, which is delivered by the next
    call after the interval or by ``flush()``. Callers must ``flush()`` when the
    run ends so the last update is never dropped.
    """

    _NOTHING = object()

    def __init__(
        self,
        callback: Optional[Callable[..., Any]],
        interval_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._callback = callback
        self._interval = max(0.0, interval_seconds)
        self._clock = clock
        self._last_call: Optional[float] = None
        self._pending: Any = self._NOTHING
        self._lock = threading.Lock()

    def __call__(self, payload: Any) -> None:
        if self._callback is None:
            return
        with self._lock:
            now = self._clock()
            if self._last_call is not None and now - self._last_call < self._interval:
                self._pending = payload
                return
            self._last_call = now
            self._pending = self._NOTHING
        self._callback(payload)

    def flush(self) -> None:
        """Deliver the pending payload, if any."""
        if self._callback is None:
            return
        with self._lock:
            payload = self._pending
            self._pending = self._NOTHING
            if payload is self._NOTHING:
                return
            self._last_call = self._clock()
        self._callback(payload)

    @property
    def has_pending(self) -> bool:
        return self._pending is not self._NOTHING
