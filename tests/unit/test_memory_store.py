"""
Unit tests for the in-memory document store and shared store helpers.
"""

import pytest

from docport.storage.adapter import (
    StoreConnectionError,
    apply_projection,
    get_path,
    matches_filter,
    split_namespace,
    with_id,
)
from docport.storage.memory import InMemoryDocumentStore

NS = "test.items"


class TestHelpers:
    """Test namespace, filter and projection helpers."""

    def test_split_namespace(self):
        assert split_namespace("db.coll") == ["db", "coll"]
        assert split_namespace("db.coll.sub") == ["db", "coll.sub"]

    @pytest.mark.parametrize("namespace", ["", "db", ".coll", "db."])
    def test_invalid_namespace(self, namespace):
        with pytest.raises(ValueError):
            split_namespace(namespace)

    def test_with_id_copies(self):
        doc = {"a": {"b": 1}}
        result = with_id(doc)
        assert "_id" in result
        assert "_id" not in doc
        result["a"]["b"] = 2
        assert doc["a"]["b"] == 1

    def test_with_id_keeps_existing(self):
        assert with_id({"_id": 5})["_id"] == 5

    def test_get_path(self):
        doc = {"a": {"b": {"c": 1}}}
        assert get_path(doc, "a.b.c") == 1
        assert get_path(doc, "a.x") is None

    def test_matches_filter(self):
        doc = {"a": {"b": 1}, "c": None}
        assert matches_filter(doc, None)
        assert matches_filter(doc, {"a.b": 1})
        assert matches_filter(doc, {"c": None})
        assert not matches_filter(doc, {"missing": None})

    def test_apply_projection(self):
        doc = {"_id": 1, "a": {"b": 1, "c": 2}, "d": 3}
        assert apply_projection(doc, ["a.b"]) == {"_id": 1, "a": {"b": 1}}
        assert apply_projection(doc, None) == doc


class TestInMemoryDocumentStore:
    """Test insert, find and count."""

    def test_insert_and_find_in_order(self):
        store = InMemoryDocumentStore()
        result = store.insert_many(NS, [{"n": 1}, {"n": 2}, {"n": 3}])

        assert result.inserted_count == 3
        assert result.acknowledged
        assert [d["n"] for d in store.find(NS)] == [1, 2, 3]

    def test_find_pages_through_everything(self):
        store = InMemoryDocumentStore()
        store.insert_many(NS, [{"n": i} for i in range(25)])
        assert len(list(store.find(NS, batch_size=4))) == 25

    def test_find_with_filter_and_projection(self):
        store = InMemoryDocumentStore()
        store.insert_many(NS, [{"_id": 1, "k": "a", "v": 1}, {"_id": 2, "k": "b", "v": 2}])

        assert list(store.find(NS, {"k": "b"}, ["v"])) == [{"_id": 2, "v": 2}]
        assert store.count(NS, {"k": "a"}) == 1

    def test_ordered_insert_stops_at_duplicate(self):
        store = InMemoryDocumentStore()
        result = store.insert_many(NS, [{"_id": 1}, {"_id": 1}, {"_id": 2}], ordered=True)

        assert result.inserted_count == 1
        assert [f.index for f in result.failures] == [1]
        assert result.failures[0].code == "11000"
        assert store.count(NS) == 1

    def test_unordered_insert_continues(self):
        store = InMemoryDocumentStore()
        result = store.insert_many(NS, [{"_id": 1}, {"_id": 1}, {"_id": 2}], ordered=False)

        assert result.inserted_count == 2
        assert [f.index for f in result.failures] == [1]

    def test_ids_of_different_types_do_not_collide(self):
        store = InMemoryDocumentStore()
        result = store.insert_many(NS, [{"_id": 1}, {"_id": "1"}])
        assert result.inserted_count == 2

    def test_returned_documents_are_copies(self):
        store = InMemoryDocumentStore()
        store.insert_many(NS, [{"_id": 1, "a": {"b": 1}}])
        next(store.find(NS))["a"]["b"] = 2
        assert store.documents(NS)[0]["a"]["b"] == 1

    def test_disconnect(self):
        store = InMemoryDocumentStore()
        store.disconnect()

        with pytest.raises(StoreConnectionError):
            store.insert_many(NS, [{"n": 1}])
        with pytest.raises(StoreConnectionError):
            list(store.find(NS))

        store.reconnect()
        assert store.count(NS) == 0
