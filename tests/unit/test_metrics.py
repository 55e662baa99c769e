"""
Unit tests for Prometheus metrics.
"""

import pytest
from types import SimpleNamespace

from docport.common.metrics import (
    REGISTRY,
    active_sessions,
    analyze_runs_total,
    batch_write_duration_seconds,
    documents_failed_total,
    documents_written_total,
    get_metrics,
    session_duration_seconds,
    sessions_total,
    track_session,
)
from docport.session.state import SessionStatus


class TestMetricsCounters:
    """Tests for Prometheus counter metrics."""

    def test_documents_failed_total_increments(self):
        """Failed documents counter should increment per kind."""
        initial = documents_failed_total.labels(
            direction="import", kind="cast")._value.get()

        documents_failed_total.labels(direction="import", kind="cast").inc()

        final = documents_failed_total.labels(
            direction="import", kind="cast")._value.get()
        assert final == initial + 1

    def test_analyze_runs_total_increments(self):
        """Analyze runs counter should increment."""
        initial = analyze_runs_total.labels(outcome="completed")._value.get()

        analyze_runs_total.labels(outcome="completed").inc()

        assert analyze_runs_total.labels(outcome="completed")._value.get() > initial


class TestMetricsHistograms:
    """Tests for Prometheus histogram metrics."""

    def test_batch_write_duration_observes(self):
        """Batch write histogram should accumulate observations."""
        initial = batch_write_duration_seconds._sum.get()

        batch_write_duration_seconds.observe(0.25)

        assert batch_write_duration_seconds._sum.get() == pytest.approx(initial + 0.25)


class TestTrackSession:
    """Tests for the session tracking decorator."""

    def test_tracks_completed_run(self):
        """A returned summary is counted under its status."""
        @track_session("unit")
        def run():
            assert active_sessions.labels(direction="unit")._value.get() == 1
            return SimpleNamespace(status=SessionStatus.COMPLETED, docs_written=4)

        completed = sessions_total.labels(direction="unit", status="completed")._value.get()
        written = documents_written_total.labels(direction="unit")._value.get()
        observed = session_duration_seconds.labels(direction="unit")._sum.get()

        run()

        assert sessions_total.labels(
            direction="unit", status="completed")._value.get() == completed + 1
        assert documents_written_total.labels(direction="unit")._value.get() == written + 4
        assert session_duration_seconds.labels(direction="unit")._sum.get() >= observed
        assert active_sessions.labels(direction="unit")._value.get() == 0

    def test_tracks_failed_run(self):
        """An exception counts as failed and is re-raised."""
        @track_session("unit")
        def run():
            raise RuntimeError("boom")

        failed = sessions_total.labels(direction="unit", status="failed")._value.get()

        with pytest.raises(RuntimeError):
            run()

        assert sessions_total.labels(
            direction="unit", status="failed")._value.get() == failed + 1
        assert active_sessions.labels(direction="unit")._value.get() == 0

    def test_none_result_counts_as_failed(self):
        """A run that returns nothing did not finish."""
        @track_session("unit")
        def run():
            return None

        failed = sessions_total.labels(direction="unit", status="failed")._value.get()
        run()
        assert sessions_total.labels(
            direction="unit", status="failed")._value.get() == failed + 1


class TestMetricsExposition:
    """Tests for the text exposition helpers."""

    def test_get_metrics(self):
        """Exposition output should contain the registered families."""
        output = get_metrics()

        assert isinstance(output, bytes)
        assert b"docport_sessions_total" in output
        assert b"docport_batch_write_duration_seconds" in output

    def test_private_registry(self):
        """Metrics are registered on the package registry only."""
        names = {metric.name for metric in REGISTRY.collect()}
        assert "docport_active_sessions" in names
