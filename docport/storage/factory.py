"""
Document store factory.

Provides singleton access to the configured backing store.
"""

from typing import Optional

from docport.config.settings import get_settings
from docport.storage.adapter import DocumentStore
from docport.storage.memory import InMemoryDocumentStore
from docport.storage.sql import SQLAlchemyDocumentStore


_store_instance: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """
    Get or create the document store instance.

    ``memory://`` selects the in-process store; any other value is treated as
    an SQLAlchemy database URL.
    """
    global _store_instance

    if _store_instance is None:
        settings = get_settings()
        if settings.store_url.startswith("memory://"):
            _store_instance = InMemoryDocumentStore()
        else:
            _store_instance = SQLAlchemyDocumentStore(
                url=settings.store_url,
                retry_attempts=settings.store_retry_attempts,
            )

    return _store_instance


def reset_document_store() -> None:
    """Reset the document store instance (useful for testing)."""
    global _store_instance
    if isinstance(_store_instance, SQLAlchemyDocumentStore):
        _store_instance.dispose()
    _store_instance = None
