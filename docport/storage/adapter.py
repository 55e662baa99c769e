"""
Abstract base class for backing stores.

A backing store is the document database an import writes to and an export
reads from. The pipeline borrows it for the duration of one run and never opens
or closes it.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence
from uuid import uuid4


class StoreError(Exception):
    """Exception raised for backing store errors."""
    pass


class StoreConnectionError(StoreError, ConnectionError):
    """The connection to the backing store is gone or unusable."""
    pass


@dataclass(frozen=True)
class DocumentWriteFailure:
    """One document rejected by the store, by position in the submitted batch."""
    index: int
    message: str
    code: Optional[str] = None


@dataclass
class InsertManyResult:
    """Outcome of a batched insert."""
    inserted_count: int = 0
    failures: List[DocumentWriteFailure] = field(default_factory=list)

    @property
    def acknowledged(self) -> bool:
        return not self.failures


class DocumentStore(ABC):
    """
    Abstract base class for document stores.

    Namespaces are ``database.collection`` strings.
    """

    @abstractmethod
    def insert_many(
        self,
        namespace: str,
        documents: Sequence[Dict[str, Any]],
        ordered: bool = True,
    ) -> InsertManyResult:
        """
        Insert a batch of documents.

        Args:
            namespace: Target namespace
            documents: Documents to insert; an ``_id`` is generated when absent
            ordered: Stop at the first rejected document if True, otherwise
                attempt every document

        Returns:
            InsertManyResult with the confirmed count and per-document failures

        Raises:
            StoreConnectionError: If the store cannot be reached
            StoreError: For any other batch-level failure
        """
        pass

    @abstractmethod
    def find(
        self,
        namespace: str,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Sequence[str]] = None,
        batch_size: int = 1000,
    ) -> Iterator[Dict[str, Any]]:
        """
        Iterate documents of a namespace in insertion order.

        Args:
            namespace: Source namespace
            filter: Equality filter on (dotted) field paths
            projection: Dotted field paths to keep; ``_id`` is always kept
            batch_size: Documents fetched per round trip

        Raises:
            StoreConnectionError: If the store cannot be reached
        """
        pass

    @abstractmethod
    def count(self, namespace: str, filter: Optional[Mapping[str, Any]] = None) -> int:
        """Count documents of a namespace matching the filter."""
        pass


def split_namespace(namespace: str) -> List[str]:
    """Split ``db.collection`` into its two parts."""
    database, sep, collection = namespace.partition(".")
    if not sep or not database or not collection:
        raise ValueError(f"Invalid namespace: {namespace!r}")
    return [database, collection]


def with_id(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy a document, generating an ``_id`` if it has none."""
    result = copy.deepcopy(dict(document))
    if "_id" not in result:
        result["_id"] = uuid4().hex
    return result


def get_path(document: Mapping[str, Any], path: str, default: Any = None) -> Any:
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


_MISSING = object()


def matches_filter(document: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
    if not filter:
        return True
    return all(
        get_path(document, path, _MISSING) == value
        for path, value in filter.items()
    )


def apply_projection(
    document: Mapping[str, Any], projection: Optional[Iterable[str]]
) -> Dict[str, Any]:
    if not projection:
        return dict(document)
    result: Dict[str, Any] = {}
    if "_id" in document:
        result["_id"] = document["_id"]
    for path in projection:
        value = get_path(document, path, _MISSING)
        if value is _MISSING:
            continue
        parts = path.split(".")
        target = result
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = value
    return result
