"""
Retry strategies for backing store operations.

Batch writes and cursor reads are retried with exponential backoff when the
store reports a transient failure. Document-level rejections are never retried.
"""

import logging
from functools import wraps
from typing import Callable, Tuple, Type

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
    after_log,
)

logger = logging.getLogger(__name__)


def retry_store_operation(
    attempts: int = 3,
    exceptions: Tuple[Type[BaseException], ...] = (ConnectionError, TimeoutError),
    max_wait: float = 10.0,
) -> Callable:
    """
    Retry decorator for backing store round trips.

    Args:
        attempts: Total number of attempts including the first one
        exceptions: Exception types considered transient
        max_wait: Upper bound of the backoff in seconds

    Returns:
        Decorator that re-raises the last exception once attempts run out
    """
    def decorator(func: Callable) -> Callable:
        @retry(
            stop=stop_after_attempt(max(1, attempts)),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            after=after_log(logger, logging.DEBUG),
            reraise=True,
        )
        @wraps(func)
        def wrapper(*args, **kwargs):
            return func(*args, **kwargs)
        return wrapper
    return decorator
