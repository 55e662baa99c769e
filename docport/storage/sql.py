"""
SQLAlchemy-backed document store.

Stores every namespace in a single table:
- namespace: ``database.collection``
- doc_key: canonical JSON of the document ``_id`` (unique per namespace)
- body: the document as JSON
"""

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from docport.common import jsonutil
from docport.common.resilience import retry_store_operation
from docport.storage.adapter import (
    DocumentStore,
    DocumentWriteFailure,
    InsertManyResult,
    StoreConnectionError,
    StoreError,
    apply_projection,
    matches_filter,
    split_namespace,
    with_id,
)

logger = logging.getLogger(__name__)

metadata = sa.MetaData()

documents_table = sa.Table(
    "documents",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("namespace", sa.String(255), nullable=False, index=True),
    sa.Column("doc_key", sa.String(512), nullable=False),
    sa.Column("body", sa.JSON, nullable=False),
    sa.UniqueConstraint("namespace", "doc_key", name="uq_documents_namespace_key"),
)

# Keep IN (...) lists well under driver parameter limits
_KEY_LOOKUP_CHUNK = 500


class SQLAlchemyDocumentStore(DocumentStore):
    """
    Document store on any SQLAlchemy-supported database.

    The engine is owned by the caller when passed in; when built from a URL
    the store owns it and ``dispose()`` releases it.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        engine: Optional[sa.engine.Engine] = None,
        retry_attempts: int = 3,
    ):
        if engine is None and url is None:
            raise ValueError("Either url or engine is required")
        if engine is None:
            engine = sa.create_engine(
                url,
                json_serializer=jsonutil.dumps,
                json_deserializer=jsonutil.loads,
                pool_pre_ping=True,
                future=True,
            )
        self.engine = engine
        self._retry = retry_store_operation(
            attempts=retry_attempts, exceptions=(StoreConnectionError,))
        metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    def insert_many(
        self,
        namespace: str,
        documents: Sequence[Dict[str, Any]],
        ordered: bool = True,
    ) -> InsertManyResult:
        split_namespace(namespace)
        return self._retry(self._insert_many)(namespace, documents, ordered)

    def _insert_many(
        self,
        namespace: str,
        documents: Sequence[Dict[str, Any]],
        ordered: bool,
    ) -> InsertManyResult:
        prepared = [with_id(doc) for doc in documents]
        keys = [jsonutil.dumps(doc["_id"], sort_keys=True) for doc in prepared]

        result = InsertManyResult()
        try:
            with self.engine.begin() as conn:
                existing = self._existing_keys(conn, namespace, keys)
                rows: List[Dict[str, Any]] = []
                seen = set()
                for index, (doc, key) in enumerate(zip(prepared, keys)):
                    if key in existing or key in seen:
                        result.failures.append(DocumentWriteFailure(
                            index=index,
                            message=f"duplicate key error namespace: {namespace} "
                                    f"dup key: {{ _id: {key} }}",
                            code="11000",
                        ))
                        if ordered:
                            break
                        continue
                    seen.add(key)
                    rows.append({"namespace": namespace, "doc_key": key, "body": doc})

                if rows:
                    conn.execute(documents_table.insert(), rows)
                result.inserted_count = len(rows)
            logger.debug(
                f"Inserted {result.inserted_count}/{len(prepared)} documents into {namespace}")
        except IntegrityError as e:
            # A concurrent writer took one of the keys; nothing in this batch
            # was committed.
            raise StoreError(f"Batch insert into {namespace} conflicted: {e.orig}") from e
        except OperationalError as e:
            raise StoreConnectionError(f"Backing store unavailable: {e.orig}") from e
        except DBAPIError as e:
            raise StoreError(f"Batch insert into {namespace} failed: {e.orig}") from e

        return result

    def _existing_keys(self, conn, namespace: str, keys: List[str]) -> set:
        found = set()
        unique_keys = list(dict.fromkeys(keys))
        for start in range(0, len(unique_keys), _KEY_LOOKUP_CHUNK):
            chunk = unique_keys[start:start + _KEY_LOOKUP_CHUNK]
            stmt = sa.select(documents_table.c.doc_key).where(
                documents_table.c.namespace == namespace,
                documents_table.c.doc_key.in_(chunk),
            )
            found.update(conn.execute(stmt).scalars())
        return found

    def find(
        self,
        namespace: str,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Sequence[str]] = None,
        batch_size: int = 1000,
    ) -> Iterator[Dict[str, Any]]:
        split_namespace(namespace)
        last_id = 0
        while True:
            page = self._retry(self._fetch_page)(namespace, last_id, batch_size)
            if not page:
                return
            last_id = page[-1][0]
            for _, body in page:
                if matches_filter(body, filter):
                    yield apply_projection(body, projection)

    def _fetch_page(self, namespace: str, after_id: int, limit: int) -> List[tuple]:
        stmt = (
            sa.select(documents_table.c.id, documents_table.c.body)
            .where(
                documents_table.c.namespace == namespace,
                documents_table.c.id > after_id,
            )
            .order_by(documents_table.c.id)
            .limit(limit)
        )
        try:
            with self.engine.connect() as conn:
                return [(row.id, row.body) for row in conn.execute(stmt)]
        except OperationalError as e:
            raise StoreConnectionError(f"Backing store unavailable: {e.orig}") from e

    def count(self, namespace: str, filter: Optional[Mapping[str, Any]] = None) -> int:
        if not filter:
            stmt = sa.select(sa.func.count()).select_from(documents_table).where(
                documents_table.c.namespace == namespace)
            try:
                with self.engine.connect() as conn:
                    return conn.execute(stmt).scalar_one()
            except OperationalError as e:
                raise StoreConnectionError(f"Backing store unavailable: {e.orig}") from e
        return sum(1 for _ in self.find(namespace, filter=filter))
