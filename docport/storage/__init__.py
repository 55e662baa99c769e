"""
Backing store abstraction for document reads and batched writes.

Provides in-memory and SQLAlchemy document stores.
"""

from docport.storage.adapter import (
    DocumentStore,
    DocumentWriteFailure,
    InsertManyResult,
    StoreConnectionError,
    StoreError,
)
from docport.storage.memory import InMemoryDocumentStore
from docport.storage.sql import SQLAlchemyDocumentStore
from docport.storage.factory import get_document_store, reset_document_store

__all__ = [
    "DocumentStore",
    "DocumentWriteFailure",
    "InsertManyResult",
    "StoreConnectionError",
    "StoreError",
    "InMemoryDocumentStore",
    "SQLAlchemyDocumentStore",
    "get_document_store",
    "reset_document_store",
]
