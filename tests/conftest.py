"""
Shared fixtures.

Every test runs against a fresh InMemoryDocumentStore and a clock frozen
at FIXED_NOW, so cycle keys and balances are deterministic.
"""

from datetime import datetime
from typing import Optional

import pytest

from household_ledger.models.entities import (
    Account,
    EntryKind,
    LedgerEntry,
    ObligationKind,
    ObligationTemplate,
    Tag,
    TagUsage,
)
from household_ledger.services.relations import StoreRelationsDirectory
from household_ledger.services.repositories import (
    AccountRepository,
    LedgerEntryRepository,
    ObligationRepository,
    TagRepository,
)
from household_ledger.services.storage import InMemoryDocumentStore, new_document_id


FIXED_NOW = datetime(2024, 3, 15, 10, 30)

PERSON = "alice"
PARTNER = "bob"
STRANGER = "mallory"


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def relations(store) -> StoreRelationsDirectory:
    return StoreRelationsDirectory(store)


@pytest.fixture
def make_account(store):
    async def _make(name: str = "Checking", person_id: str = PERSON) -> Account:
        account = Account(id=new_document_id(), person_id=person_id, name=name, created_at=FIXED_NOW)
        await AccountRepository(store).save(account)
        return account
    return _make


@pytest.fixture
def make_tag(store):
    async def _make(name: str = "Housing", usage: TagUsage = TagUsage.BOTH) -> Tag:
        tag = Tag(id=new_document_id(), name=name, usage=usage)
        await TagRepository(store).save(tag)
        return tag
    return _make


@pytest.fixture
def make_entry(store):
    async def _make(
        kind: EntryKind,
        amount_cents: int,
        occurred_at: datetime = FIXED_NOW,
        account_id: Optional[str] = None,
        person_id: str = PERSON,
        name: str = "Entry",
    ) -> LedgerEntry:
        entry = LedgerEntry(
            id=new_document_id(),
            kind=kind,
            name=name,
            amount_cents=amount_cents,
            occurred_at=occurred_at,
            account_id=account_id,
            person_id=person_id,
        )
        await LedgerEntryRepository(store, kind).save(entry)
        return entry
    return _make


@pytest.fixture
def make_template(store, make_tag):
    async def _make(
        name: str = "Rent",
        kind: ObligationKind = ObligationKind.EXPENSE,
        amount_cents: int = 150000,
        due_day: int = 10,
        person_id: str = PERSON,
    ) -> ObligationTemplate:
        tag = await make_tag()
        template = ObligationTemplate(
            id=new_document_id(),
            kind=kind,
            person_id=person_id,
            name=name,
            amount_cents=amount_cents,
            due_day=due_day,
            tag_id=tag.id,
        )
        await ObligationRepository(store).save(template)
        return template
    return _make
