"""
Storage Services Package

Provides the abstract document store interface and concrete implementations.
Google Sheets is the persistent backend; the in-memory store serves tests
and local runs. Business logic only ever sees DocumentStore.
"""

from typing import Optional

from household_ledger.config import Settings, get_settings
from household_ledger.services.storage.interface import (
    BatchConflictError,
    BatchWriteError,
    ConnectionError,
    Document,
    DocumentStore,
    FieldFilter,
    NotFoundError,
    StorageError,
    WriteBatch,
    new_document_id,
    where,
)
from household_ledger.services.storage.memory import InMemoryDocumentStore


def create_document_store(settings: Optional[Settings] = None) -> DocumentStore:
    """Build the store selected by LEDGER_STORE_BACKEND."""
    settings = settings or get_settings()
    if settings.store.backend == "google_sheets":
        # Imported lazily so the memory backend works without Google credentials
        from household_ledger.services.storage.google_sheets import (
            GoogleSheetsClient,
            GoogleSheetsDocumentStore,
        )
        return GoogleSheetsDocumentStore(GoogleSheetsClient(settings.google_sheets))
    return InMemoryDocumentStore()


__all__ = [
    # Interface
    "Document",
    "DocumentStore",
    "FieldFilter",
    "WriteBatch",
    "new_document_id",
    "where",
    # Exceptions
    "BatchConflictError",
    "BatchWriteError",
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryDocumentStore",
    "create_document_store",
]
