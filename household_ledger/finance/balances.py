"""
Balance Reconciliation

The balance of an account in a month is its recorded opening balance plus
everything that came in, minus everything that went out:

    opening + gains - (expenses + invested)

where "invested" is the base value of the investments opened at that
account during the month. Cash withdrawals are reported alongside but do
not enter the balance.

DESIGN DECISION: An account without an opening balance for the month has
NO balance, never a balance of zero. Callers show it as "not registered"
rather than a silently wrong number.
"""

import asyncio
from datetime import datetime
from typing import Optional

import structlog
from pydantic import BaseModel

from household_ledger.finance.cancellation import CancellationToken, checkpoint
from household_ledger.finance.cycle import Clock, DateLike, month_bounds
from household_ledger.finance.errors import failure_from, refuse
from household_ledger.finance.investments import InvestmentService, base_value
from household_ledger.finance.ledger import LedgerAggregator, LedgerTotals, require_account
from household_ledger.models.entities import Account, Investment, MonthlyBalanceSnapshot
from household_ledger.models.results import FailureReason, OperationResult
from household_ledger.services.relations import RelationsDirectory
from household_ledger.services.repositories import AccountRepository, MonthlyBalanceRepository
from household_ledger.services.storage import DocumentStore, new_document_id


logger = structlog.get_logger(__name__)


class BalanceBreakdown(BaseModel):
    """The parts of one account's monthly balance."""

    account_id: str
    account_name: Optional[str] = None
    year: int
    month: int
    opening_cents: Optional[int] = None
    gains_cents: int = 0
    expenses_cents: int = 0
    cash_withdrawals_cents: int = 0
    invested_cents: int = 0

    @property
    def registered(self) -> bool:
        return self.opening_cents is not None

    @property
    def balance_cents(self) -> Optional[int]:
        if self.opening_cents is None:
            return None
        return self.opening_cents + self.gains_cents - (
            self.expenses_cents + self.invested_cents
        )


def breakdown(
    account: Account,
    year: int,
    month: int,
    snapshot: Optional[MonthlyBalanceSnapshot],
    totals: LedgerTotals,
    investments: list[Investment],
) -> BalanceBreakdown:
    """Combine one account's snapshot, ledger totals and investments."""
    scoped = totals.for_account(account.id)
    return BalanceBreakdown(
        account_id=account.id,
        account_name=account.name,
        year=year,
        month=month,
        opening_cents=snapshot.amount_cents if snapshot is not None else None,
        gains_cents=scoped.total_gains_cents,
        expenses_cents=scoped.total_expenses_cents,
        cash_withdrawals_cents=scoped.total_cash_withdrawals_cents,
        invested_cents=sum(base_value(inv) for inv in investments if inv.account_id == account.id),
    )


class BalanceReconciler:
    """Opening balances and the current balance derived from them."""

    def __init__(
        self,
        store: DocumentStore,
        relations: RelationsDirectory,
        aggregator: Optional[LedgerAggregator] = None,
        investments: Optional[InvestmentService] = None,
        clock: Clock = datetime.now,
    ):
        self._accounts = AccountRepository(store)
        self._snapshots = MonthlyBalanceRepository(store)
        self._relations = relations
        self._aggregator = aggregator or LedgerAggregator(store)
        self._investments = investments or InvestmentService(store, relations, clock)
        self._clock = clock

    async def compute(
        self,
        person_id: str,
        account_id: str,
        period: Optional[DateLike] = None,
        token: Optional[CancellationToken] = None,
    ) -> BalanceBreakdown:
        """Raising variant of current_balance, for composition."""
        period = period or self._clock()
        owners = await self._relations.allowed_owner_ids(person_id)
        checkpoint(token)
        account = await require_account(self._accounts, owners, account_id)

        start, end = month_bounds(period.year, period.month)
        snapshot, totals, investments = await asyncio.gather(
            self._snapshots.for_key(owners, account_id, period.year, period.month),
            self._aggregator.collect(owners, [account_id], start, end, token),
            self._investments.collect_by_period(owners, account_id, start, end, token),
        )
        checkpoint(token)
        return breakdown(account, period.year, period.month, snapshot, totals, investments)

    async def current_balance(
        self,
        person_id: str,
        account_id: str,
        period: Optional[DateLike] = None,
        token: Optional[CancellationToken] = None,
    ) -> OperationResult:
        """
        Balance of one account in the month of period (default: now).

        Returns:
            OperationResult whose data is a BalanceBreakdown, or None when
            no opening balance was recorded for that month
        """
        try:
            result = await self.compute(person_id, account_id, period, token)
        except Exception as e:
            return failure_from(e, "current_balance")
        if not result.registered:
            return OperationResult.ok(None, message="Opening balance not registered for this month")
        return OperationResult.ok(result)

    async def upsert_opening_balance(
        self,
        person_id: str,
        account_id: str,
        year: int,
        month: int,
        amount_cents: int,
    ) -> OperationResult:
        """
        Record the opening balance of an account for a month.

        Replaces the existing value for the same account and month. The
        creation time is kept from the first insert.
        """
        try:
            if not 1 <= month <= 12:
                raise refuse(FailureReason.INVALID_INPUT, f"Invalid month: {month}")
            owners = await self._relations.allowed_owner_ids(person_id)
            await require_account(self._accounts, owners, account_id)

            now = self._clock()
            existing = await self._snapshots.for_key(owners, account_id, year, month)
            if existing is None:
                snapshot = MonthlyBalanceSnapshot(
                    id=new_document_id(),
                    person_id=person_id,
                    account_id=account_id,
                    year=year,
                    month=month,
                    amount_cents=amount_cents,
                    created_at=now,
                    updated_at=now,
                )
            else:
                snapshot = existing.model_copy(update={"amount_cents": amount_cents, "updated_at": now})
            await self._snapshots.save(snapshot)
        except Exception as e:
            return failure_from(e, "upsert_opening_balance")

        logger.info(
            "opening_balance_recorded",
            snapshot_id=snapshot.id,
            account_id=account_id,
            year=year,
            month=month,
            inserted=existing is None,
        )
        return OperationResult.ok(snapshot)

    async def monthly_summary(
        self,
        person_id: str,
        year: int,
        month: int,
        token: Optional[CancellationToken] = None,
    ) -> OperationResult:
        """
        One BalanceBreakdown per account of the household for a month.

        Accounts without an opening balance are listed with balance None.
        """
        try:
            if not 1 <= month <= 12:
                raise refuse(FailureReason.INVALID_INPUT, f"Invalid month: {month}")
            owners = await self._relations.allowed_owner_ids(person_id)
            checkpoint(token)
            accounts = await self._accounts.for_owners(owners)
            if not accounts:
                return OperationResult.ok([])

            start, end = month_bounds(year, month)
            account_ids = [account.id for account in accounts]
            totals, snapshots, *investments = await asyncio.gather(
                self._aggregator.collect(owners, account_ids, start, end, token),
                asyncio.gather(*(
                    self._snapshots.for_key(owners, account.id, year, month)
                    for account in accounts
                )),
                *(
                    self._investments.collect_by_period(owners, account.id, start, end, token)
                    for account in accounts
                ),
            )
            checkpoint(token)
        except Exception as e:
            return failure_from(e, "monthly_summary")

        return OperationResult.ok([
            breakdown(account, year, month, snapshot, totals, account_investments)
            for account, snapshot, account_investments in zip(accounts, snapshots, investments)
        ])
