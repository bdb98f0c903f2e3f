"""
In-Memory Document Store

Keeps every collection in a dict. Used by the test-suite and for local runs
without Google credentials. Documents are deep-copied on the way in and out
so callers can never mutate stored state by accident.
"""

import asyncio
import copy
from typing import Optional

from household_ledger.services.storage.interface import (
    Document,
    DocumentStore,
    BatchWriteError,
    FieldFilter,
    NotFoundError,
    WriteBatch,
    check_expected,
    new_document_id,
    select_documents,
)


class InMemoryDocumentStore(DocumentStore):
    """Dictionary-backed implementation of DocumentStore."""

    def __init__(self):
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    @staticmethod
    def _with_id(document_id: str, data: Document) -> Document:
        document = copy.deepcopy(data)
        document["id"] = document_id
        return document

    @staticmethod
    def _strip_id(data: Document) -> Document:
        stored = copy.deepcopy(data)
        stored.pop("id", None)
        return stored

    async def get(self, collection: str, document_id: str) -> Optional[Document]:
        data = self._collection(collection).get(document_id)
        if data is None:
            return None
        return self._with_id(document_id, data)

    async def get_all(self, collection: str) -> list[Document]:
        return [
            self._with_id(document_id, data)
            for document_id, data in self._collection(collection).items()
        ]

    async def query(
        self,
        collection: str,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        return select_documents(
            await self.get_all(collection),
            filters=filters,
            order_by=order_by,
            descending=descending,
            limit=limit,
        )

    async def create(self, collection: str, data: Document) -> str:
        document_id = new_document_id()
        self._collection(collection)[document_id] = self._strip_id(data)
        return document_id

    async def set(self, collection: str, document_id: str, data: Document) -> None:
        self._collection(collection)[document_id] = self._strip_id(data)

    async def merge_update(self, collection: str, document_id: str, data: Document) -> None:
        existing = self._collection(collection).get(document_id)
        if existing is None:
            raise NotFoundError(f"{collection}/{document_id} not found")
        existing.update(self._strip_id(data))

    async def delete(self, collection: str, document_id: str) -> bool:
        return self._collection(collection).pop(document_id, None) is not None

    async def commit_batch(self, batch: WriteBatch) -> None:
        """Validate every write against a staged copy, then swap it in."""
        async with self._lock:
            staged = copy.deepcopy(self._collections)

            for operation in batch.operations:
                target = staged.setdefault(operation.collection, {})
                exists = operation.document_id in target

                if operation.kind == "create":
                    if exists:
                        raise BatchWriteError(
                            f"{operation.collection}/{operation.document_id} already exists"
                        )
                    target[operation.document_id] = self._strip_id(operation.data or {})
                elif operation.kind == "set":
                    target[operation.document_id] = self._strip_id(operation.data or {})
                elif operation.kind == "update":
                    if not exists:
                        raise BatchWriteError(
                            f"{operation.collection}/{operation.document_id} not found"
                        )
                    check_expected(operation, target[operation.document_id])
                    target[operation.document_id].update(self._strip_id(operation.data or {}))
                elif operation.kind == "delete":
                    if not exists:
                        raise BatchWriteError(
                            f"{operation.collection}/{operation.document_id} not found"
                        )
                    del target[operation.document_id]

            self._collections = staged

    def count(self, collection: str) -> int:
        """Number of documents in a collection."""
        return len(self._collection(collection))
