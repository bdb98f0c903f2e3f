"""
Ledger Aggregation and Write Path

Reads expenses, gains and cash withdrawals for a set of owners and a date
range, and registers, edits or removes single entries.

DESIGN DECISION: Aggregation returns the raw entries, never only sums.
Callers re-derive whatever subset they need (one account, one tag) from
the same snapshot instead of querying again.

Transfer legs are ordinary entries here. A transfer's expense leg lowers
its source account exactly like any other expense.
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from household_ledger.finance.cancellation import CancellationToken, checkpoint
from household_ledger.finance.cycle import Clock, end_of_day, is_current, start_of_day
from household_ledger.finance.errors import failure_from, refuse
from household_ledger.models.entities import Account, EntryKind, LedgerEntry
from household_ledger.models.results import FailureReason, OperationResult
from household_ledger.services.relations import RelationsDirectory
from household_ledger.services.repositories import (
    AccountRepository,
    LedgerEntryRepository,
    ObligationRepository,
    TagRepository,
    entry_repositories,
)
from household_ledger.services.storage import DocumentStore, new_document_id


logger = structlog.get_logger(__name__)

# Fields an edit may touch. Kind, owner and cross references are fixed.
EDITABLE_FIELDS = frozenset({
    "name",
    "amount_cents",
    "account_id",
    "occurred_at",
    "tag_id",
    "note",
    "paid_in_cash",
})


def _total(entries: list[LedgerEntry]) -> int:
    return sum(max(entry.amount_cents, 0) for entry in entries)


class LedgerTotals(BaseModel):
    """Raw entries of one aggregation, with totals derived on demand."""

    expenses: list[LedgerEntry] = Field(default_factory=list)
    gains: list[LedgerEntry] = Field(default_factory=list)
    cash_withdrawals: list[LedgerEntry] = Field(default_factory=list)

    @property
    def total_expenses_cents(self) -> int:
        return _total(self.expenses)

    @property
    def total_gains_cents(self) -> int:
        return _total(self.gains)

    @property
    def total_cash_withdrawals_cents(self) -> int:
        return _total(self.cash_withdrawals)

    @property
    def net_cents(self) -> int:
        """Gains minus every outflow."""
        return self.total_gains_cents - (
            self.total_expenses_cents + self.total_cash_withdrawals_cents
        )

    def for_account(self, account_id: Optional[str]) -> "LedgerTotals":
        """The subset booked against one account (None = cash)."""
        return LedgerTotals(
            expenses=[e for e in self.expenses if e.account_id == account_id],
            gains=[e for e in self.gains if e.account_id == account_id],
            cash_withdrawals=[e for e in self.cash_withdrawals if e.account_id == account_id],
        )

    def by_account(self) -> dict[Optional[str], "LedgerTotals"]:
        """Split into one LedgerTotals per account id present in the entries."""
        grouped: dict[Optional[str], dict[str, list[LedgerEntry]]] = defaultdict(
            lambda: {"expenses": [], "gains": [], "cash_withdrawals": []}
        )
        for field in ("expenses", "gains", "cash_withdrawals"):
            for entry in getattr(self, field):
                grouped[entry.account_id][field].append(entry)
        return {account_id: LedgerTotals(**lists) for account_id, lists in grouped.items()}


class EntryDraft(BaseModel):
    """User input for a new ledger entry."""

    kind: EntryKind
    name: str = Field(..., min_length=1, max_length=200)
    amount_cents: int
    occurred_at: datetime
    account_id: Optional[str] = None
    tag_id: Optional[str] = None
    note: Optional[str] = None
    paid_in_cash: bool = False
    is_investment_flow: bool = False
    is_investment_redemption: bool = False
    investment_id: Optional[str] = None


def build_entry(
    person_id: str,
    draft: EntryDraft,
    now: datetime,
    entry_id: Optional[str] = None,
) -> LedgerEntry:
    """Materialize a draft into a LedgerEntry with fresh timestamps."""
    return LedgerEntry(
        id=entry_id or new_document_id(),
        person_id=person_id,
        created_at=now,
        updated_at=now,
        **draft.model_dump(),
    )


async def require_account(
    accounts: AccountRepository,
    owners: set[str],
    account_id: str,
) -> Account:
    """Load an account, refusing when it is missing or outside the household."""
    account = await accounts.get(account_id)
    if account is None:
        raise refuse(FailureReason.NOT_FOUND, f"Account {account_id} not found")
    if account.person_id not in owners:
        raise refuse(
            FailureReason.ACCOUNT_NOT_ACCESSIBLE,
            f"Account {account_id} is not accessible",
        )
    return account


async def ensure_entry_unlocked(
    obligations: ObligationRepository,
    entry_id: str,
    now: datetime,
) -> None:
    """Refuse when entry_id settles some template in the current cycle."""
    for template in await obligations.settled_by_entry(entry_id):
        if template.settlement is not None and is_current(template.settlement.cycle_key, now):
            raise refuse(
                FailureReason.OBLIGATION_LOCKED,
                f"Entry settles '{template.name}' this month; reclaim it instead",
            )


class LedgerAggregator:
    """Concurrent range reads over the three entry collections."""

    def __init__(self, store: DocumentStore):
        self._entries = entry_repositories(store)

    async def collect(
        self,
        owners: set[str],
        account_ids: Optional[list[str]],
        start: datetime,
        end: datetime,
        token: Optional[CancellationToken] = None,
    ) -> LedgerTotals:
        """
        Raising variant of sum_by_account_and_range, for composition.

        Raises:
            LedgerOperationError: end before start (the store is not touched)
            OperationCancelled: token cancelled at an await point
        """
        if end < start:
            raise refuse(
                FailureReason.INVALID_DATE_RANGE,
                "End date must not be before start date",
            )
        checkpoint(token)

        if not owners or (account_ids is not None and not account_ids):
            return LedgerTotals()

        lower, upper = start_of_day(start), end_of_day(end)
        expenses, gains, withdrawals = await asyncio.gather(
            self._entries[EntryKind.EXPENSE].in_range(owners, account_ids, lower, upper),
            self._entries[EntryKind.GAIN].in_range(owners, account_ids, lower, upper),
            self._entries[EntryKind.CASH_WITHDRAWAL].in_range(owners, account_ids, lower, upper),
        )
        checkpoint(token)
        return LedgerTotals(expenses=expenses, gains=gains, cash_withdrawals=withdrawals)

    async def sum_by_account_and_range(
        self,
        owners: set[str],
        account_ids: Optional[list[str]],
        start: datetime,
        end: datetime,
        token: Optional[CancellationToken] = None,
    ) -> OperationResult:
        """
        Entries of owners between start and end, both days inclusive.

        account_ids None selects cash movements only (no account).

        Returns:
            OperationResult with LedgerTotals as data
        """
        try:
            totals = await self.collect(owners, account_ids, start, end, token)
        except Exception as e:
            return failure_from(e, "sum_by_account_and_range")
        return OperationResult.ok(totals)


class LedgerService:
    """Single-entry writes, guarded by the settlement lock."""

    def __init__(
        self,
        store: DocumentStore,
        relations: RelationsDirectory,
        clock: Clock = datetime.now,
    ):
        self._entries = entry_repositories(store)
        self._accounts = AccountRepository(store)
        self._tags = TagRepository(store)
        self._obligations = ObligationRepository(store)
        self._relations = relations
        self._clock = clock

    def repository(self, kind: EntryKind) -> LedgerEntryRepository:
        return self._entries[kind]

    async def validate_draft(self, owners: set[str], draft: EntryDraft) -> None:
        """Business checks on a draft. Raises LedgerOperationError."""
        if draft.amount_cents <= 0:
            raise refuse(FailureReason.NON_POSITIVE_AMOUNT, "Amount must be greater than zero")

        if draft.kind == EntryKind.CASH_WITHDRAWAL and draft.account_id is None:
            raise refuse(FailureReason.INVALID_INPUT, "A cash withdrawal needs a source account")

        if draft.paid_in_cash and draft.account_id is not None:
            raise refuse(FailureReason.INVALID_INPUT, "Cash payments are not booked on an account")

        if draft.account_id is not None:
            await require_account(self._accounts, owners, draft.account_id)

        if draft.tag_id is not None:
            tag = await self._tags.get(draft.tag_id)
            if tag is None:
                raise refuse(FailureReason.NOT_FOUND, f"Tag {draft.tag_id} not found")
            if not tag.applies_to(draft.kind):
                raise refuse(
                    FailureReason.INVALID_INPUT,
                    f"Tag '{tag.name}' cannot be used for {draft.kind.value} entries",
                )

    async def register_entry(self, person_id: str, draft: EntryDraft) -> OperationResult:
        """Create an expense, gain or cash withdrawal."""
        try:
            owners = await self._relations.allowed_owner_ids(person_id)
            await self.validate_draft(owners, draft)
            entry = build_entry(person_id, draft, self._clock())
            await self._entries[entry.kind].save(entry)
        except Exception as e:
            return failure_from(e, "register_entry")

        logger.info(
            "entry_registered",
            entry_id=entry.id,
            kind=entry.kind.value,
            amount_cents=entry.amount_cents,
        )
        return OperationResult.ok(entry)

    async def find_entry(self, entry_id: str, kind: Optional[EntryKind] = None) -> Optional[LedgerEntry]:
        """Look an entry up by id, in one collection or in all three."""
        if kind is not None:
            return await self._entries[kind].get(entry_id)
        found = await asyncio.gather(*(repo.get(entry_id) for repo in self._entries.values()))
        return next((entry for entry in found if entry is not None), None)

    async def get_entry(
        self,
        person_id: str,
        entry_id: str,
        kind: Optional[EntryKind] = None,
    ) -> OperationResult:
        try:
            entry = await self._visible_entry(person_id, entry_id, kind)
        except Exception as e:
            return failure_from(e, "get_entry")
        return OperationResult.ok(entry)

    async def update_entry(
        self,
        person_id: str,
        entry_id: str,
        changes: dict[str, Any],
        kind: Optional[EntryKind] = None,
    ) -> OperationResult:
        """
        Edit an entry in place.

        Refused with OBLIGATION_LOCKED while the entry settles a template
        in the current cycle.
        """
        try:
            unknown = set(changes) - EDITABLE_FIELDS
            if unknown:
                raise refuse(
                    FailureReason.INVALID_INPUT,
                    f"Fields cannot be edited: {', '.join(sorted(unknown))}",
                )

            entry = await self._visible_entry(person_id, entry_id, kind)
            await ensure_entry_unlocked(self._obligations, entry.id, self._clock())

            owners = await self._relations.allowed_owner_ids(person_id)
            merged = entry.model_dump(include=set(EntryDraft.model_fields))
            merged.update(changes)
            await self.validate_draft(owners, EntryDraft.model_validate(merged))

            updated = entry.model_copy(update={**changes, "updated_at": self._clock()})
            updated = LedgerEntry.model_validate(updated.model_dump())
            await self._entries[entry.kind].save(updated)
        except Exception as e:
            return failure_from(e, "update_entry")

        logger.info("entry_updated", entry_id=entry_id, fields=sorted(changes))
        return OperationResult.ok(updated)

    async def delete_entry(
        self,
        person_id: str,
        entry_id: str,
        kind: Optional[EntryKind] = None,
    ) -> OperationResult:
        """Remove an entry. A current settlement can only go through reclaim."""
        try:
            entry = await self._visible_entry(person_id, entry_id, kind)
            await ensure_entry_unlocked(self._obligations, entry.id, self._clock())
            await self._entries[entry.kind].delete(entry.id)
        except Exception as e:
            return failure_from(e, "delete_entry")

        logger.info("entry_deleted", entry_id=entry_id, kind=entry.kind.value)
        return OperationResult.ok(entry)

    async def _visible_entry(
        self,
        person_id: str,
        entry_id: str,
        kind: Optional[EntryKind],
    ) -> LedgerEntry:
        entry, owners = await asyncio.gather(
            self.find_entry(entry_id, kind),
            self._relations.allowed_owner_ids(person_id),
        )
        if entry is None or entry.person_id not in owners:
            raise refuse(FailureReason.NOT_FOUND, f"Entry {entry_id} not found")
        return entry
