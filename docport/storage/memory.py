"""
In-process document store.

Keeps documents per namespace in insertion order with a unique ``_id`` index.
Used by tests and by ``memory://`` configurations.
"""

import copy
import threading
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from docport.storage.adapter import (
    DocumentStore,
    DocumentWriteFailure,
    InsertManyResult,
    StoreConnectionError,
    apply_projection,
    matches_filter,
    split_namespace,
    with_id,
)


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe dictionary-backed store."""

    def __init__(self):
        self._collections: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._connected = True
        self.insert_calls = 0

    def disconnect(self) -> None:
        """Simulate losing the connection; every later call fails."""
        self._connected = False

    def reconnect(self) -> None:
        self._connected = True

    def _check_connected(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Backing store is disconnected")

    def insert_many(
        self,
        namespace: str,
        documents: Sequence[Dict[str, Any]],
        ordered: bool = True,
    ) -> InsertManyResult:
        split_namespace(namespace)
        self._check_connected()

        result = InsertManyResult()
        with self._lock:
            self.insert_calls += 1
            collection = self._collections.setdefault(namespace, {})
            for index, document in enumerate(documents):
                doc = with_id(document)
                key = _id_key(doc["_id"])
                if key in collection:
                    result.failures.append(DocumentWriteFailure(
                        index=index,
                        message=f"E11000 duplicate key error collection: {namespace} "
                                f"index: _id_ dup key: {{ _id: {doc['_id']!r} }}",
                        code="11000",
                    ))
                    if ordered:
                        break
                    continue
                collection[key] = doc
                result.inserted_count += 1
        return result

    def find(
        self,
        namespace: str,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Sequence[str]] = None,
        batch_size: int = 1000,
    ) -> Iterator[Dict[str, Any]]:
        split_namespace(namespace)
        self._check_connected()

        offset = 0
        while True:
            self._check_connected()
            with self._lock:
                documents = list(self._collections.get(namespace, {}).values())
            page: List[Dict[str, Any]] = documents[offset:offset + batch_size]
            if not page:
                return
            offset += len(page)
            for doc in page:
                if matches_filter(doc, filter):
                    yield apply_projection(copy.deepcopy(doc), projection)

    def count(self, namespace: str, filter: Optional[Mapping[str, Any]] = None) -> int:
        self._check_connected()
        with self._lock:
            documents = list(self._collections.get(namespace, {}).values())
        return sum(1 for doc in documents if matches_filter(doc, filter))

    def documents(self, namespace: str) -> List[Dict[str, Any]]:
        """Snapshot of a namespace, for inspection."""
        with self._lock:
            return [copy.deepcopy(d) for d in self._collections.get(namespace, {}).values()]


def _id_key(value: Any) -> Any:
    try:
        hash(value)
        return (type(value).__name__, value)
    except TypeError:
        return (type(value).__name__, repr(value))
