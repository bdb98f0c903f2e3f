"""
Typed Repositories

Every document crossing the store boundary is parsed into its entity model
here. A document that does not parse is never handed to business logic:
the repository raises MalformedRecordError instead (fail closed).
"""

from datetime import datetime
from typing import Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from household_ledger.models.entities import (
    Account,
    EntryKind,
    Investment,
    LedgerEntry,
    MonthlyBalanceSnapshot,
    ObligationTemplate,
    PersonRelation,
    Tag,
    Transfer,
)
from household_ledger.services.storage import (
    Document,
    DocumentStore,
    FieldFilter,
    StorageError,
    WriteBatch,
    where,
)


# Collection names
ACCOUNTS = "accounts"
TAGS = "tags"
RELATIONS = "personRelations"
TRANSFERS = "transfers"
OBLIGATIONS = "obligationTemplates"
MONTHLY_BALANCES = "monthlyBalances"
INVESTMENTS = "investments"

ENTRY_COLLECTIONS: dict[EntryKind, str] = {
    EntryKind.EXPENSE: "expenses",
    EntryKind.GAIN: "gains",
    EntryKind.CASH_WITHDRAWAL: "cashWithdrawals",
}

ModelT = TypeVar("ModelT", bound=BaseModel)

_datetime_adapter = TypeAdapter(datetime)

logger = structlog.get_logger(__name__)


class MalformedRecordError(StorageError):
    """A stored document does not match its entity schema."""

    def __init__(self, collection: str, document_id: Optional[str], detail: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"Malformed record {collection}/{document_id}: {detail}")


def iso(value: datetime) -> str:
    """Serialize a datetime exactly as stored documents do, for range filters."""
    return _datetime_adapter.dump_python(value, mode="json")


def to_document(model: BaseModel) -> Document:
    """JSON-compatible body of an entity, without its id."""
    return model.model_dump(mode="json", exclude={"id"})


class Repository(Generic[ModelT]):
    """Generic typed access to one collection."""

    model: type[ModelT]
    collection: str

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    def parse(self, document: Document) -> ModelT:
        try:
            return self.model.model_validate(document)
        except ValidationError as e:
            logger.warning(
                "malformed_record",
                collection=self.collection,
                document_id=document.get("id"),
                errors=e.error_count(),
            )
            raise MalformedRecordError(self.collection, document.get("id"), str(e))

    async def get(self, document_id: str) -> Optional[ModelT]:
        document = await self._store.get(self.collection, document_id)
        if document is None:
            return None
        return self.parse(document)

    async def find(
        self,
        filters: Optional[list[FieldFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[ModelT]:
        documents = await self._store.query(
            self.collection,
            filters=filters,
            order_by=order_by,
            descending=descending,
            limit=limit,
        )
        return [self.parse(document) for document in documents]

    async def save(self, entity: ModelT) -> None:
        await self._store.set(self.collection, entity.id, to_document(entity))

    async def update_fields(self, document_id: str, fields: Document) -> None:
        await self._store.merge_update(self.collection, document_id, fields)

    async def delete(self, document_id: str) -> bool:
        return await self._store.delete(self.collection, document_id)

    def stage_create(self, batch: WriteBatch, entity: ModelT) -> str:
        return batch.create(self.collection, to_document(entity), document_id=entity.id)

    def stage_update(
        self,
        batch: WriteBatch,
        document_id: str,
        fields: Document,
        expect: Optional[Document] = None,
    ) -> None:
        batch.update(self.collection, document_id, fields, expect=expect)

    def stage_delete(self, batch: WriteBatch, document_id: str) -> None:
        batch.delete(self.collection, document_id)


class AccountRepository(Repository[Account]):
    model = Account
    collection = ACCOUNTS

    async def for_owners(self, owners: set[str]) -> list[Account]:
        accounts = await self.find([where("person_id", "in", sorted(owners))])
        return sorted(accounts, key=lambda a: a.name.lower())


class TagRepository(Repository[Tag]):
    model = Tag
    collection = TAGS


class RelationRepository(Repository[PersonRelation]):
    model = PersonRelation
    collection = RELATIONS


class TransferRepository(Repository[Transfer]):
    model = Transfer
    collection = TRANSFERS


class ObligationRepository(Repository[ObligationTemplate]):
    model = ObligationTemplate
    collection = OBLIGATIONS

    async def settled_by_entry(self, entry_id: str) -> list[ObligationTemplate]:
        return await self.find([where("settlement.entry_id", "==", entry_id)])


class MonthlyBalanceRepository(Repository[MonthlyBalanceSnapshot]):
    model = MonthlyBalanceSnapshot
    collection = MONTHLY_BALANCES

    async def for_key(
        self,
        owners: set[str],
        account_id: str,
        year: int,
        month: int,
    ) -> Optional[MonthlyBalanceSnapshot]:
        snapshots = await self.find([
            where("person_id", "in", sorted(owners)),
            where("account_id", "==", account_id),
            where("year", "==", year),
            where("month", "==", month),
        ])
        return snapshots[0] if snapshots else None


class InvestmentRepository(Repository[Investment]):
    model = Investment
    collection = INVESTMENTS


class LedgerEntryRepository(Repository[LedgerEntry]):
    """
    Ledger entries live in one collection per kind.

    The collection attribute is set per instance; see entry_repositories().
    """
    model = LedgerEntry

    def __init__(self, store: DocumentStore, kind: EntryKind):
        super().__init__(store)
        self.kind = kind
        self.collection = ENTRY_COLLECTIONS[kind]

    async def in_range(
        self,
        owners: set[str],
        account_ids: Optional[list[str]],
        start: datetime,
        end: datetime,
    ) -> list[LedgerEntry]:
        filters = [
            where("person_id", "in", sorted(owners)),
            where("occurred_at", ">=", iso(start)),
            where("occurred_at", "<=", iso(end)),
        ]
        if account_ids is None:
            filters.append(where("account_id", "==", None))
        else:
            filters.append(where("account_id", "in", list(account_ids)))
        return await self.find(filters, order_by="occurred_at")


def entry_repositories(store: DocumentStore) -> dict[EntryKind, LedgerEntryRepository]:
    return {kind: LedgerEntryRepository(store, kind) for kind in EntryKind}
