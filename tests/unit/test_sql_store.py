"""
Unit tests for the SQLAlchemy document store on SQLite.
"""

from datetime import datetime, timezone

import pytest
import sqlalchemy as sa

from docport.storage.sql import SQLAlchemyDocumentStore

NS = "test.items"


@pytest.fixture
def store(tmp_path):
    store = SQLAlchemyDocumentStore(url=f"sqlite:///{tmp_path / 'docs.db'}", retry_attempts=1)
    yield store
    store.dispose()


class TestSQLAlchemyDocumentStore:
    """Test the SQL backing store."""

    def test_requires_url_or_engine(self):
        with pytest.raises(ValueError):
            SQLAlchemyDocumentStore()

    def test_insert_and_find_in_order(self, store):
        result = store.insert_many(NS, [{"_id": 2, "n": "b"}, {"_id": 1, "n": "a"}, {"n": "c"}])

        assert result.inserted_count == 3
        assert [d["n"] for d in store.find(NS)] == ["b", "a", "c"]
        assert store.count(NS) == 3

    def test_generated_ids(self, store):
        store.insert_many(NS, [{"n": 1}])
        assert isinstance(next(store.find(NS))["_id"], str)

    def test_namespaces_are_separate(self, store):
        store.insert_many("test.a", [{"_id": 1}])
        store.insert_many("test.b", [{"_id": 1}])

        assert store.count("test.a") == 1
        assert store.count("test.b") == 1

    def test_ordered_insert_stops_at_duplicate(self, store):
        store.insert_many(NS, [{"_id": 2}])
        result = store.insert_many(NS, [{"_id": 1}, {"_id": 2}, {"_id": 3}], ordered=True)

        assert result.inserted_count == 1
        assert [f.index for f in result.failures] == [1]
        assert [d["_id"] for d in store.find(NS)] == [2, 1]

    def test_unordered_insert_continues(self, store):
        store.insert_many(NS, [{"_id": 2}])
        result = store.insert_many(NS, [{"_id": 1}, {"_id": 2}, {"_id": 3}], ordered=False)

        assert result.inserted_count == 2
        assert [f.index for f in result.failures] == [1]

    def test_duplicates_within_a_batch(self, store):
        result = store.insert_many(NS, [{"_id": "x"}, {"_id": "x"}], ordered=False)

        assert result.inserted_count == 1
        assert result.failures[0].code == "11000"

    def test_dates_round_trip(self, store):
        at = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
        store.insert_many(NS, [{"_id": 1, "at": at, "nested": {"at": at}}])

        doc = next(store.find(NS))
        assert doc["at"] == at
        assert doc["nested"]["at"] == at

    def test_find_pages_filters_and_projects(self, store):
        store.insert_many(NS, [{"_id": i, "even": i % 2 == 0, "v": {"x": i}} for i in range(10)])

        found = list(store.find(NS, filter={"even": True}, projection=["v.x"], batch_size=3))

        assert found == [{"_id": i, "v": {"x": i}} for i in range(0, 10, 2)]
        assert store.count(NS, {"even": False}) == 5

    def test_shared_engine(self, tmp_path):
        engine = sa.create_engine(f"sqlite:///{tmp_path / 'shared.db'}")
        first = SQLAlchemyDocumentStore(engine=engine)
        first.insert_many(NS, [{"_id": 1}])

        assert SQLAlchemyDocumentStore(engine=engine).count(NS) == 1
        engine.dispose()
