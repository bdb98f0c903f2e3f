"""Services package."""

from household_ledger.services.relations import RelationsDirectory, StoreRelationsDirectory
from household_ledger.services.reminders import (
    ReminderScheduler,
    ReminderTrigger,
    build_reminder,
    sync_obligation_reminders,
)
from household_ledger.services.repositories import MalformedRecordError
from household_ledger.services.storage import (
    BatchWriteError,
    ConnectionError,
    DocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    create_document_store,
)

__all__ = [
    # Collaborators
    "RelationsDirectory",
    "StoreRelationsDirectory",
    "ReminderScheduler",
    "ReminderTrigger",
    "build_reminder",
    "sync_obligation_reminders",
    # Storage
    "BatchWriteError",
    "ConnectionError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "MalformedRecordError",
    "NotFoundError",
    "StorageError",
    "create_document_store",
]
