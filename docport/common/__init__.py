"""
Shared plumbing: logging, metrics, retries, cancellation and throttling.
"""

from docport.common.cancellation import CancellationToken
from docport.common.throttle import Throttle

__all__ = ["CancellationToken", "Throttle"]
