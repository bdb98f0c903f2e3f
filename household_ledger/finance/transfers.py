"""
Transfers Between Accounts

A transfer is stored as three documents: the Transfer itself, an expense
leg on the source account and a gain leg on the target account. Each leg
carries the transfer id and the id of its sibling.

DESIGN DECISION: The three documents are written in ONE batch. Either
all of them exist or none does; a lonely leg would silently move money
out of (or into) an account.

Sufficient funds are NOT checked here. The calling workflow asks the
BalanceReconciler first, keeping validation apart from the atomic write.
"""

import asyncio
from datetime import datetime
from typing import Optional

import structlog

from household_ledger.finance.cycle import Clock
from household_ledger.finance.errors import failure_from, refuse
from household_ledger.finance.ledger import require_account
from household_ledger.models.entities import EntryKind, LedgerEntry, Transfer
from household_ledger.models.results import FailureReason, OperationResult, TransferReceipt
from household_ledger.services.relations import RelationsDirectory
from household_ledger.services.repositories import (
    AccountRepository,
    LedgerEntryRepository,
    TransferRepository,
)
from household_ledger.services.storage import DocumentStore, new_document_id


logger = structlog.get_logger(__name__)


class TransferOrchestrator:
    """Builds and commits transfer triples."""

    def __init__(
        self,
        store: DocumentStore,
        relations: RelationsDirectory,
        clock: Clock = datetime.now,
    ):
        self._store = store
        self._accounts = AccountRepository(store)
        self._transfers = TransferRepository(store)
        self._expenses = LedgerEntryRepository(store, EntryKind.EXPENSE)
        self._gains = LedgerEntryRepository(store, EntryKind.GAIN)
        self._relations = relations
        self._clock = clock

    async def transfer(
        self,
        person_id: str,
        source_account_id: str,
        target_account_id: str,
        amount_cents: int,
        occurred_at: datetime,
        description: Optional[str] = None,
    ) -> OperationResult:
        """
        Move amount_cents from one household account to another.

        Returns:
            OperationResult with a TransferReceipt (the three new ids)
        """
        try:
            if source_account_id == target_account_id:
                raise refuse(FailureReason.SAME_ACCOUNT, "Choose two different accounts")
            if amount_cents <= 0:
                raise refuse(FailureReason.NON_POSITIVE_AMOUNT, "Amount must be greater than zero")

            owners = await self._relations.allowed_owner_ids(person_id)
            source, target = await asyncio.gather(
                require_account(self._accounts, owners, source_account_id),
                require_account(self._accounts, owners, target_account_id),
            )

            now = self._clock()
            description = (description or "").strip() or f"Transfer from {source.name} to {target.name}"
            transfer_id = new_document_id()
            expense_id = new_document_id()
            gain_id = new_document_id()

            legs = {
                "person_id": person_id,
                "amount_cents": amount_cents,
                "occurred_at": occurred_at,
                "note": description,
                "is_transfer_leg": True,
                "transfer_id": transfer_id,
                "created_at": now,
                "updated_at": now,
            }
            expense = LedgerEntry(
                id=expense_id,
                kind=EntryKind.EXPENSE,
                name=f"Transfer to {target.name}",
                account_id=source.id,
                counterpart_entry_id=gain_id,
                **legs,
            )
            gain = LedgerEntry(
                id=gain_id,
                kind=EntryKind.GAIN,
                name=f"Transfer from {source.name}",
                account_id=target.id,
                counterpart_entry_id=expense_id,
                **legs,
            )
            record = Transfer(
                id=transfer_id,
                person_id=person_id,
                source_account_id=source.id,
                target_account_id=target.id,
                amount_cents=amount_cents,
                occurred_at=occurred_at,
                description=description,
                expense_entry_id=expense_id,
                gain_entry_id=gain_id,
                created_at=now,
            )

            batch = self._store.new_batch()
            self._transfers.stage_create(batch, record)
            self._expenses.stage_create(batch, expense)
            self._gains.stage_create(batch, gain)
            await self._store.commit_batch(batch)
        except Exception as e:
            return failure_from(e, "transfer")

        logger.info(
            "transfer_completed",
            transfer_id=transfer_id,
            source_account_id=source_account_id,
            target_account_id=target_account_id,
            amount_cents=amount_cents,
        )
        return OperationResult.ok(TransferReceipt(
            transfer_id=transfer_id,
            expense_entry_id=expense_id,
            gain_entry_id=gain_id,
        ))

    async def get_transfer(self, person_id: str, transfer_id: str) -> OperationResult:
        try:
            owners, record = await asyncio.gather(
                self._relations.allowed_owner_ids(person_id),
                self._transfers.get(transfer_id),
            )
            if record is None or record.person_id not in owners:
                raise refuse(FailureReason.NOT_FOUND, f"Transfer {transfer_id} not found")
        except Exception as e:
            return failure_from(e, "get_transfer")
        return OperationResult.ok(record)
