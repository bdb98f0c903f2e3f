"""
Investment Projection

Estimates what an investment is worth today by compounding its base value
daily at a percentage of a fixed annual reference rate. The base is the
last manual-sync checkpoint when there is one, else the principal.

DESIGN DECISION: The projector functions are pure and never touch the
store. Deposits and redemptions are applied by InvestmentService as a
signed adjustment of the base value followed by a re-sync, so growth
before the adjustment is never rewritten.

This is an estimate, not a market feed.
"""

import math
from datetime import datetime
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from household_ledger.finance.cancellation import CancellationToken, checkpoint
from household_ledger.finance.cycle import Clock, end_of_day, start_of_day
from household_ledger.finance.errors import failure_from, refuse
from household_ledger.finance.ledger import EntryDraft, build_entry, require_account
from household_ledger.models.entities import (
    EntryKind,
    Investment,
    InvestmentCheckpoint,
    RedemptionTerm,
)
from household_ledger.models.results import FailureReason, OperationResult
from household_ledger.services.relations import RelationsDirectory
from household_ledger.services.repositories import (
    AccountRepository,
    InvestmentRepository,
    LedgerEntryRepository,
    iso,
    to_document,
)
from household_ledger.services.storage import DocumentStore, new_document_id, where


logger = structlog.get_logger(__name__)

BASE_ANNUAL_REFERENCE_RATE = 0.1375
DAYS_IN_YEAR = 365
SECONDS_IN_DAY = 24 * 60 * 60

# Fields edit_investment may change. Value changes go through sync/adjust.
EDITABLE_FIELDS = frozenset({"name", "annual_percent", "redemption_term", "description", "account_id"})


# =============================================================================
# PURE PROJECTION
# =============================================================================

def base_value(investment: Investment) -> int:
    """Checkpoint amount if synced, else principal."""
    if investment.checkpoint is not None:
        return investment.checkpoint.amount_cents
    return investment.principal_cents


def base_date(investment: Investment) -> datetime:
    """Checkpoint date if synced, else creation date."""
    if investment.checkpoint is not None:
        return investment.checkpoint.synced_at
    return investment.created_at


def daily_rate(
    annual_percent: float,
    reference_rate: float = BASE_ANNUAL_REFERENCE_RATE,
    days_in_year: int = DAYS_IN_YEAR,
) -> float:
    """
    Daily rate for a percentage of the reference rate.

    110 means 110% of the reference, i.e. 0.1375 * 1.10 per year.
    Zero, negative and non-finite percentages yield 0.
    """
    if not math.isfinite(annual_percent) or annual_percent <= 0:
        return 0.0
    return reference_rate * (annual_percent / 100) / days_in_year


def days_elapsed(investment: Investment, now: datetime) -> int:
    """Whole days since the base date, never negative."""
    seconds = (now - base_date(investment)).total_seconds()
    if seconds <= 0:
        return 0
    return math.floor(seconds / SECONDS_IN_DAY)


def projected_value(
    investment: Investment,
    now: datetime,
    reference_rate: float = BASE_ANNUAL_REFERENCE_RATE,
    days_in_year: int = DAYS_IN_YEAR,
) -> float:
    """base * (1 + daily rate) ** whole days elapsed, in cents."""
    rate = daily_rate(investment.annual_percent, reference_rate, days_in_year)
    value = base_value(investment)
    if rate <= 0:
        return value
    return value * (1 + rate) ** days_elapsed(investment, now)


def daily_yield(
    investment: Investment,
    reference_rate: float = BASE_ANNUAL_REFERENCE_RATE,
    days_in_year: int = DAYS_IN_YEAR,
) -> float:
    rate = daily_rate(investment.annual_percent, reference_rate, days_in_year)
    return base_value(investment) * rate if rate > 0 else 0.0


def sync(investment: Investment, new_amount_cents: int, now: datetime) -> Investment:
    """A copy of investment whose checkpoint is reset to new_amount_cents at now."""
    return investment.model_copy(update={
        "checkpoint": InvestmentCheckpoint(amount_cents=new_amount_cents, synced_at=now),
        "updated_at": now,
    })


def adjust(investment: Investment, delta_cents: int, now: datetime) -> Investment:
    """Apply a signed delta to the base value, then re-sync at now."""
    return sync(investment, base_value(investment) + delta_cents, now)


# =============================================================================
# WORKFLOW
# =============================================================================

class InvestmentDraft(BaseModel):
    """User input for a new investment."""

    account_id: str
    name: str = Field(..., min_length=1, max_length=200)
    principal_cents: int
    annual_percent: float
    redemption_term: RedemptionTerm = RedemptionTerm.ANYTIME
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class InvestmentProjection(BaseModel):
    """An investment together with its estimate at a point in time."""

    investment: Investment
    base_value_cents: int
    projected_value_cents: int
    daily_yield_cents: float
    days_elapsed: int


class InvestmentService:
    """Register, edit, sync and move money in and out of investments."""

    def __init__(
        self,
        store: DocumentStore,
        relations: RelationsDirectory,
        clock: Clock = datetime.now,
        reference_rate: float = BASE_ANNUAL_REFERENCE_RATE,
        days_in_year: int = DAYS_IN_YEAR,
        recent_limit: int = 50,
    ):
        self._store = store
        self._investments = InvestmentRepository(store)
        self._accounts = AccountRepository(store)
        self._expenses = LedgerEntryRepository(store, EntryKind.EXPENSE)
        self._gains = LedgerEntryRepository(store, EntryKind.GAIN)
        self._relations = relations
        self._clock = clock
        self._reference_rate = reference_rate
        self._days_in_year = days_in_year
        self._recent_limit = recent_limit

    def project(self, investment: Investment, now: Optional[datetime] = None) -> InvestmentProjection:
        now = now or self._clock()
        return InvestmentProjection(
            investment=investment,
            base_value_cents=base_value(investment),
            projected_value_cents=round(
                projected_value(investment, now, self._reference_rate, self._days_in_year)
            ),
            daily_yield_cents=daily_yield(investment, self._reference_rate, self._days_in_year),
            days_elapsed=days_elapsed(investment, now),
        )

    async def register(self, person_id: str, draft: InvestmentDraft) -> OperationResult:
        """
        Create an investment.

        The checkpoint starts at the principal, stamped with the creation
        time, so the first projection compounds from the principal.
        """
        try:
            if draft.principal_cents <= 0:
                raise refuse(FailureReason.NON_POSITIVE_AMOUNT, "Principal must be greater than zero")
            owners = await self._relations.allowed_owner_ids(person_id)
            await require_account(self._accounts, owners, draft.account_id)

            now = self._clock()
            created_at = draft.created_at or now
            investment = Investment(
                id=new_document_id(),
                person_id=person_id,
                account_id=draft.account_id,
                name=draft.name,
                principal_cents=draft.principal_cents,
                annual_percent=draft.annual_percent,
                redemption_term=draft.redemption_term,
                description=draft.description,
                created_at=created_at,
                checkpoint=InvestmentCheckpoint(
                    amount_cents=draft.principal_cents,
                    synced_at=created_at,
                ),
                updated_at=now,
            )
            await self._investments.save(investment)
        except Exception as e:
            return failure_from(e, "register_investment")

        logger.info("investment_registered", investment_id=investment.id)
        return OperationResult.ok(investment)

    async def edit(self, person_id: str, investment_id: str, changes: dict[str, Any]) -> OperationResult:
        try:
            unknown = set(changes) - EDITABLE_FIELDS
            if unknown:
                raise refuse(
                    FailureReason.INVALID_INPUT,
                    f"Fields cannot be edited: {', '.join(sorted(unknown))}",
                )
            owners = await self._relations.allowed_owner_ids(person_id)
            investment = await self._require(owners, investment_id)
            if "account_id" in changes:
                await require_account(self._accounts, owners, changes["account_id"])

            updated = Investment.model_validate({
                **investment.model_dump(),
                **changes,
                "updated_at": self._clock(),
            })
            await self._investments.save(updated)
        except Exception as e:
            return failure_from(e, "edit_investment")
        return OperationResult.ok(updated)

    async def delete(self, person_id: str, investment_id: str) -> OperationResult:
        try:
            owners = await self._relations.allowed_owner_ids(person_id)
            investment = await self._require(owners, investment_id)
            await self._investments.delete(investment.id)
        except Exception as e:
            return failure_from(e, "delete_investment")
        logger.info("investment_deleted", investment_id=investment_id)
        return OperationResult.ok(investment)

    async def sync_value(self, person_id: str, investment_id: str, amount_cents: int) -> OperationResult:
        """Record the real value reported by the bank as the new checkpoint."""
        try:
            if amount_cents < 0:
                raise refuse(FailureReason.INVALID_INPUT, "Synced value cannot be negative")
            owners = await self._relations.allowed_owner_ids(person_id)
            investment = await self._require(owners, investment_id)
            synced = sync(investment, amount_cents, self._clock())
            await self._investments.update_fields(synced.id, self._checkpoint_fields(synced))
        except Exception as e:
            return failure_from(e, "sync_investment")

        logger.info("investment_synced", investment_id=investment_id, amount_cents=amount_cents)
        return OperationResult.ok(synced)

    async def deposit(
        self,
        person_id: str,
        investment_id: str,
        amount_cents: int,
        occurred_at: Optional[datetime] = None,
        tag_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Put more money into an investment.

        Writes an expense flagged as an investment flow on the investment's
        account and raises the base value, in one batch.
        """
        return await self._move(
            person_id, investment_id, amount_cents, occurred_at, tag_id, redeem=False,
        )

    async def redeem(
        self,
        person_id: str,
        investment_id: str,
        amount_cents: int,
        occurred_at: Optional[datetime] = None,
        tag_id: Optional[str] = None,
    ) -> OperationResult:
        """
        Take money out of an investment.

        Writes a gain flagged as a redemption and lowers the base value, in
        one batch. Cannot take out more than the current base value.
        """
        return await self._move(
            person_id, investment_id, amount_cents, occurred_at, tag_id, redeem=True,
        )

    async def list_with_projections(self, person_id: str) -> OperationResult:
        """Newest investments of the household, each with its estimate."""
        try:
            owners = await self._relations.allowed_owner_ids(person_id)
            investments = await self._investments.find(
                [where("person_id", "in", sorted(owners))],
                order_by="created_at",
                descending=True,
                limit=self._recent_limit,
            )
        except Exception as e:
            return failure_from(e, "list_investments")
        now = self._clock()
        return OperationResult.ok([self.project(investment, now) for investment in investments])

    async def collect_by_period(
        self,
        owners: set[str],
        account_id: str,
        start: datetime,
        end: datetime,
        token: Optional[CancellationToken] = None,
    ) -> list[Investment]:
        """Investments created at account_id between the two days, inclusive."""
        if end < start:
            raise refuse(FailureReason.INVALID_DATE_RANGE, "End date must not be before start date")
        checkpoint(token)
        if not owners:
            return []
        investments = await self._investments.find([
            where("account_id", "==", account_id),
            where("person_id", "in", sorted(owners)),
            where("created_at", ">=", iso(start_of_day(start))),
            where("created_at", "<=", iso(end_of_day(end))),
        ])
        checkpoint(token)
        return investments

    async def by_period(
        self,
        person_id: str,
        account_id: str,
        start: datetime,
        end: datetime,
        token: Optional[CancellationToken] = None,
    ) -> OperationResult:
        try:
            owners = await self._relations.allowed_owner_ids(person_id)
            investments = await self.collect_by_period(owners, account_id, start, end, token)
        except Exception as e:
            return failure_from(e, "investments_by_period")
        return OperationResult.ok(investments)

    async def _move(
        self,
        person_id: str,
        investment_id: str,
        amount_cents: int,
        occurred_at: Optional[datetime],
        tag_id: Optional[str],
        redeem: bool,
    ) -> OperationResult:
        operation = "redeem_investment" if redeem else "deposit_investment"
        try:
            if amount_cents <= 0:
                raise refuse(FailureReason.NON_POSITIVE_AMOUNT, "Amount must be greater than zero")
            owners = await self._relations.allowed_owner_ids(person_id)
            investment = await self._require(owners, investment_id)
            if redeem and amount_cents > base_value(investment):
                raise refuse(
                    FailureReason.INVALID_INPUT,
                    "Cannot redeem more than the invested value",
                )

            now = self._clock()
            draft = EntryDraft(
                kind=EntryKind.GAIN if redeem else EntryKind.EXPENSE,
                name=f"{'Redemption' if redeem else 'Investment'} - {investment.name}",
                amount_cents=amount_cents,
                occurred_at=occurred_at or now,
                account_id=investment.account_id,
                tag_id=tag_id,
                is_investment_flow=True,
                is_investment_redemption=redeem,
                investment_id=investment.id,
            )
            entry = build_entry(person_id, draft, now)
            adjusted = adjust(investment, -amount_cents if redeem else amount_cents, now)

            batch = self._store.new_batch()
            repository = self._gains if redeem else self._expenses
            repository.stage_create(batch, entry)
            self._investments.stage_update(batch, adjusted.id, self._checkpoint_fields(adjusted))
            await self._store.commit_batch(batch)
        except Exception as e:
            return failure_from(e, operation)

        logger.info(
            "investment_adjusted",
            investment_id=investment_id,
            entry_id=entry.id,
            delta_cents=-amount_cents if redeem else amount_cents,
        )
        return OperationResult.ok({"investment": adjusted, "entry": entry})

    async def _require(self, owners: set[str], investment_id: str) -> Investment:
        investment = await self._investments.get(investment_id)
        if investment is None or investment.person_id not in owners:
            raise refuse(FailureReason.NOT_FOUND, f"Investment {investment_id} not found")
        return investment

    @staticmethod
    def _checkpoint_fields(investment: Investment) -> dict[str, Any]:
        document = to_document(investment)
        return {"checkpoint": document["checkpoint"], "updated_at": document["updated_at"]}
