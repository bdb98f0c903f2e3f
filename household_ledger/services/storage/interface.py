"""
Abstract Document Store Interface

DESIGN DECISION: We define an abstract interface for the document store.
This allows us to:
1. Swap Google Sheets for another document database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The model is a set of named collections holding JSON-compatible documents
keyed by a generated string id. Values that must be range-compared (dates)
are stored as ISO-8601 strings, which order correctly as plain strings.
"""

from abc import ABC, abstractmethod
from typing import Any, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


Document = dict[str, Any]
FilterOp = Literal["==", "in", ">=", "<="]


def new_document_id() -> str:
    """Generate an id for a document that does not exist yet."""
    return uuid4().hex


class FieldFilter(BaseModel):
    """
    One condition of a query.

    field may be a dotted path into nested documents ("settlement.entry_id").
    """
    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1)
    op: FilterOp
    value: Any


def where(field: str, op: FilterOp, value: Any) -> FieldFilter:
    return FieldFilter(field=field, op=op, value=value)


def resolve_field(document: Document, path: str) -> Any:
    """Follow a dotted path through nested dicts. Missing keys give None."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def matches(document: Document, filters: list[FieldFilter]) -> bool:
    """Evaluate all filters against a document (logical AND)."""
    for condition in filters:
        value = resolve_field(document, condition.field)
        if condition.op == "==":
            if value != condition.value:
                return False
        elif condition.op == "in":
            if value not in condition.value:
                return False
        else:
            if value is None:
                return False
            try:
                if condition.op == ">=" and not value >= condition.value:
                    return False
                if condition.op == "<=" and not value <= condition.value:
                    return False
            except TypeError:
                return False
    return True


def check_expected(operation: "BatchOperation", current: Document) -> None:
    """Raise BatchConflictError unless current still holds operation.expect."""
    for path, value in (operation.expect or {}).items():
        if resolve_field(current, path) != value:
            raise BatchConflictError(
                f"{operation.collection}/{operation.document_id}: {path} changed"
            )


def select_documents(
    documents: list[Document],
    filters: Optional[list[FieldFilter]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> list[Document]:
    """
    Filter, sort and limit documents in Python.

    Documents lacking the order_by field sort last in either direction.
    """
    selected = [document for document in documents if matches(document, filters or [])]

    if order_by:
        present = [d for d in selected if resolve_field(d, order_by) is not None]
        missing = [d for d in selected if resolve_field(d, order_by) is None]
        present.sort(key=lambda d: resolve_field(d, order_by), reverse=descending)
        selected = present + missing

    if limit is not None:
        selected = selected[:limit]
    return selected


class BatchOperation(BaseModel):
    """A single write queued in a WriteBatch."""

    kind: Literal["create", "set", "update", "delete"]
    collection: str
    document_id: str
    data: Optional[Document] = None
    expect: Optional[Document] = None


class WriteBatch:
    """
    A set of writes committed all-or-nothing by DocumentStore.commit_batch.

    Ids for created documents are generated when the write is queued so
    documents in the same batch can reference each other.
    """

    def __init__(self):
        self._operations: list[BatchOperation] = []

    @property
    def operations(self) -> list[BatchOperation]:
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def create(
        self,
        collection: str,
        data: Document,
        document_id: Optional[str] = None,
    ) -> str:
        document_id = document_id or new_document_id()
        self._operations.append(BatchOperation(
            kind="create",
            collection=collection,
            document_id=document_id,
            data=dict(data),
        ))
        return document_id

    def set(self, collection: str, document_id: str, data: Document) -> None:
        self._operations.append(BatchOperation(
            kind="set",
            collection=collection,
            document_id=document_id,
            data=dict(data),
        ))

    def update(
        self,
        collection: str,
        document_id: str,
        data: Document,
        expect: Optional[Document] = None,
    ) -> None:
        """
        Merge fields into an existing document. Fails the batch if missing.

        expect maps dotted paths to the values they must still hold when the
        batch is applied; any mismatch fails the batch with BatchConflictError.
        """
        self._operations.append(BatchOperation(
            kind="update",
            collection=collection,
            document_id=document_id,
            data=dict(data),
            expect=dict(expect) if expect else None,
        ))

    def delete(self, collection: str, document_id: str) -> None:
        """Delete a document. Fails the batch if missing."""
        self._operations.append(BatchOperation(
            kind="delete",
            collection=collection,
            document_id=document_id,
        ))


class DocumentStore(ABC):
    """
    Abstract interface for document storage operations.

    Any storage implementation (Google Sheets, in-memory, etc.)
    must implement these methods. Returned documents always carry their
    id under the "id" key.
    """

    @abstractmethod
    async def get(self, collection: str, document_id: str) -> Optional[Document]:
        """
        Retrieve a document by its id.

        Returns:
            The document if found, None otherwise

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def get_all(self, collection: str) -> list[Document]:
        """Return every document in a collection."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """
        Find documents matching every filter.

        Args:
            collection: Collection name
            filters: Conditions combined with AND
            order_by: Field (dotted path allowed) to sort by
            descending: Sort direction
            limit: Maximum number of results after sorting

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    async def create(self, collection: str, data: Document) -> str:
        """
        Create a document with a generated id.

        Returns:
            The new document id
        """
        pass

    @abstractmethod
    async def set(self, collection: str, document_id: str, data: Document) -> None:
        """Create or fully replace a document under a known id."""
        pass

    @abstractmethod
    async def merge_update(self, collection: str, document_id: str, data: Document) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, document_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted, False if none existed
        """
        pass

    @abstractmethod
    async def commit_batch(self, batch: WriteBatch) -> None:
        """
        Apply every write in the batch, or none of them.

        Raises:
            BatchWriteError: If any write is invalid; nothing is applied
            StorageError: If the backend fails
        """
        pass

    def new_batch(self) -> WriteBatch:
        return WriteBatch()


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class BatchWriteError(StorageError):
    """A batch could not be applied; no write in it took effect."""
    pass


class BatchConflictError(BatchWriteError):
    """A document changed since it was read; the batch was not applied."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
