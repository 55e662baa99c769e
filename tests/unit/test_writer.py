"""
Unit tests for the batched document writer.
"""

import pytest

from docport.common.cancellation import CancellationToken
from docport.errors import WriteError
from docport.ingest.writer import DocumentWriter
from docport.storage.adapter import StoreConnectionError, StoreError
from docport.storage.memory import InMemoryDocumentStore

NS = "test.people"


@pytest.fixture
def store():
    return InMemoryDocumentStore()


def seed(store, *ids):
    store.insert_many(NS, [{"_id": i} for i in ids])


class TestBatching:
    """Test batch boundaries and counters."""

    def test_batches_by_size(self, store):
        writer = DocumentWriter(store, NS, batch_size=2)
        for i in range(5):
            writer.write({"n": i}, i)

        assert writer.batches_written == 2
        assert writer.pending == 1

        writer.flush()

        assert writer.batches_written == 3
        assert writer.docs_attempted == 5
        assert writer.docs_written == 5
        assert [d["n"] for d in store.documents(NS)] == [0, 1, 2, 3, 4]

    def test_empty_flush(self, store):
        writer = DocumentWriter(store, NS)
        assert writer.flush() is True
        assert store.insert_calls == 0

    def test_invalid_batch_size(self, store):
        with pytest.raises(ValueError):
            DocumentWriter(store, NS, batch_size=0)


class TestWriteFailures:
    """Test ordered and unordered failure handling."""

    def test_stop_on_errors_stops_at_first_failure(self, store):
        seed(store, 3)
        writer = DocumentWriter(store, "test.people", batch_size=10, stop_on_errors=True)
        for i in range(1, 6):
            writer.write({"_id": i}, i - 1)

        with pytest.raises(WriteError) as exc_info:
            writer.flush()

        assert exc_info.value.index == 2
        assert writer.docs_written == 2
        assert writer.docs_attempted == 3
        assert [d["_id"] for d in store.documents(NS)] == [3, 1, 2]

    def test_unordered_reports_every_failure(self, store):
        seed(store, 2, 4)
        errors = []
        writer = DocumentWriter(store, NS, batch_size=10, error_callback=errors.append)
        for i in range(1, 6):
            writer.write({"_id": i}, i - 1)
        writer.flush()

        assert writer.docs_attempted == 5
        assert writer.docs_written == 3
        assert [(e.kind, e.index) for e in errors] == [("write", 1), ("write", 3)]
        assert errors[0].data == {"_id": 2}

    def test_connection_loss_propagates(self, store):
        writer = DocumentWriter(store, NS)
        writer.write({"n": 1}, 0)
        store.disconnect()

        with pytest.raises(StoreConnectionError):
            writer.flush()

    def test_batch_failure_is_a_write_error(self, store, monkeypatch):
        def fail(*args, **kwargs):
            raise StoreError("boom")

        monkeypatch.setattr(store, "insert_many", fail)
        writer = DocumentWriter(store, NS)
        writer.write({"n": 1}, 7)

        with pytest.raises(WriteError) as exc_info:
            writer.flush()
        assert exc_info.value.index == 7


class TestCancellation:
    """Test dropping batches after cancellation."""

    def test_cancelled_batch_is_dropped(self, store):
        token = CancellationToken()
        writer = DocumentWriter(store, NS, batch_size=10)
        writer.write({"n": 1}, 0)
        token.cancel()

        assert writer.flush(token) is False
        assert writer.docs_attempted == 0
        assert writer.docs_written == 0
        assert store.documents(NS) == []
