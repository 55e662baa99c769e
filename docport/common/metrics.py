"""
Prometheus metrics for monitoring and observability.

Provides counters, histograms, and gauges for tracking:
- Import/export sessions and their outcomes
- Documents written and rejected
- Field analysis runs
"""

import time
from typing import Callable
from functools import wraps
from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CollectorRegistry,
)

REGISTRY = CollectorRegistry()

# ========== Counters ==========

sessions_total = Counter(
    "docport_sessions_total",
    "Total number of finished import/export sessions",
    ["direction", "status"],  # import/export, completed/canceled/failed/...
    registry=REGISTRY,
)

documents_written_total = Counter(
    "docport_documents_written_total",
    "Documents confirmed written to the backing store or output file",
    ["direction"],
    registry=REGISTRY,
)

documents_failed_total = Counter(
    "docport_documents_failed_total",
    "Documents rejected by parsing, casting or the backing store",
    ["direction", "kind"],  # kind: parse/cast/write
    registry=REGISTRY,
)

analyze_runs_total = Counter(
    "docport_analyze_runs_total",
    "Total number of CSV field analysis runs",
    ["outcome"],  # completed/aborted/failed
    registry=REGISTRY,
)

# ========== Histograms ==========

session_duration_seconds = Histogram(
    "docport_session_duration_seconds",
    "Time to run an import or export",
    ["direction"],
    buckets=(0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0),
    registry=REGISTRY,
)

batch_write_duration_seconds = Histogram(
    "docport_batch_write_duration_seconds",
    "Time for the backing store to acknowledge one batch",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
    registry=REGISTRY,
)

# ========== Gauges ==========

active_sessions = Gauge(
    "docport_active_sessions",
    "Number of import/export runs in progress",
    ["direction"],
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def track_session(direction: str):
    """
    Decorator to track a session run.

    The wrapped function must return an object with ``status`` and
    ``docs_written`` attributes.

    Args:
        direction: "import" or "export"
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()
            active_sessions.labels(direction=direction).inc()
            status = "failed"
            try:
                result = func(*args, **kwargs)
                if result is not None:
                    status = result.status.value
                    documents_written_total.labels(
                        direction=direction).inc(result.docs_written)
                return result
            finally:
                active_sessions.labels(direction=direction).dec()
                session_duration_seconds.labels(
                    direction=direction).observe(time.time() - start_time)
                sessions_total.labels(
                    direction=direction, status=status).inc()

        return wrapper
    return decorator


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)
