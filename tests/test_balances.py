"""Tests for opening balances and balance reconciliation."""

from datetime import date, datetime

import pytest

from household_ledger.finance.balances import BalanceBreakdown, BalanceReconciler
from household_ledger.finance.investments import InvestmentDraft, InvestmentService
from household_ledger.models.entities import EntryKind
from household_ledger.models.results import FailureReason
from household_ledger.services.repositories import MonthlyBalanceRepository

from tests.conftest import FIXED_NOW, PARTNER, PERSON, STRANGER


@pytest.fixture
def reconciler(store, relations, clock):
    return BalanceReconciler(store, relations, clock=clock)


class TestBreakdown:
    """Tests for the balance formula."""

    def test_formula(self):
        """Opening plus gains minus expenses and invested money."""
        result = BalanceBreakdown(
            account_id="a1", year=2024, month=3,
            opening_cents=100000, gains_cents=20000, expenses_cents=5000,
            cash_withdrawals_cents=3000, invested_cents=10000,
        )
        assert result.balance_cents == 105000

    def test_unregistered_has_no_balance(self):
        """No opening balance means no balance at all, not zero."""
        result = BalanceBreakdown(account_id="a1", year=2024, month=3, gains_cents=500)
        assert not result.registered
        assert result.balance_cents is None


class TestCurrentBalance:
    """Tests for BalanceReconciler.current_balance."""

    async def test_not_registered_returns_none(self, reconciler, make_account, make_entry):
        """Without a snapshot the data is None even when entries exist."""
        account = await make_account()
        await make_entry(EntryKind.GAIN, 5000, account_id=account.id)
        result = await reconciler.current_balance(PERSON, account.id)
        assert result.success
        assert result.data is None

    async def test_opening_gains_expenses(self, reconciler, make_account, make_entry):
        """100000 + 20000 - 5000 = 115000."""
        account = await make_account()
        await reconciler.upsert_opening_balance(PERSON, account.id, 2024, 3, 100000)
        await make_entry(EntryKind.GAIN, 20000, datetime(2024, 3, 5), account.id)
        await make_entry(EntryKind.EXPENSE, 5000, datetime(2024, 3, 8), account.id)

        result = await reconciler.current_balance(PERSON, account.id)
        assert result.data.balance_cents == 115000

    async def test_other_months_and_accounts_ignored(self, reconciler, make_account, make_entry):
        """Only this account's entries of this month count."""
        account = await make_account()
        other = await make_account("Savings")
        await reconciler.upsert_opening_balance(PERSON, account.id, 2024, 3, 1000)
        await make_entry(EntryKind.EXPENSE, 400, datetime(2024, 2, 28), account.id)
        await make_entry(EntryKind.EXPENSE, 300, datetime(2024, 3, 2), other.id)
        await make_entry(EntryKind.EXPENSE, 200, datetime(2024, 3, 2), None)

        result = await reconciler.current_balance(PERSON, account.id)
        assert result.data.balance_cents == 1000

    async def test_investments_reduce_balance_withdrawals_are_reported(
        self, store, relations, clock, reconciler, make_account, make_entry,
    ):
        """Invested money leaves the account; cash withdrawals are only reported."""
        account = await make_account()
        await reconciler.upsert_opening_balance(PERSON, account.id, 2024, 3, 100000)
        await make_entry(EntryKind.CASH_WITHDRAWAL, 10000, datetime(2024, 3, 3), account.id)
        await InvestmentService(store, relations, clock).register(PERSON, InvestmentDraft(
            account_id=account.id,
            name="CDB",
            principal_cents=30000,
            annual_percent=100,
            created_at=datetime(2024, 3, 4),
        ))

        result = await reconciler.current_balance(PERSON, account.id)
        breakdown = result.data
        assert breakdown.cash_withdrawals_cents == 10000
        assert breakdown.invested_cents == 30000
        assert breakdown.balance_cents == 70000

    async def test_period_selects_month(self, reconciler, make_account, make_entry):
        """A past period uses that month's snapshot."""
        account = await make_account()
        await reconciler.upsert_opening_balance(PERSON, account.id, 2024, 1, 7000)
        await make_entry(EntryKind.GAIN, 500, datetime(2024, 1, 31, 22, 0), account.id)

        result = await reconciler.current_balance(PERSON, account.id, period=date(2024, 1, 1))
        assert result.data.balance_cents == 7500
        assert (result.data.year, result.data.month) == (2024, 1)

    async def test_foreign_account(self, reconciler, make_account):
        """Balances of accounts outside the household are refused."""
        account = await make_account(person_id=STRANGER)
        result = await reconciler.current_balance(PERSON, account.id)
        assert result.reason == FailureReason.ACCOUNT_NOT_ACCESSIBLE

    async def test_partner_entries_count(self, relations, reconciler, make_account, make_entry):
        """Entries by a related person on a shared account are included."""
        await relations.link(PERSON, PARTNER)
        account = await make_account()
        await reconciler.upsert_opening_balance(PERSON, account.id, 2024, 3, 1000)
        await make_entry(EntryKind.EXPENSE, 250, account_id=account.id, person_id=PARTNER)

        result = await reconciler.current_balance(PERSON, account.id)
        assert result.data.balance_cents == 750


class TestOpeningBalance:
    """Tests for upsert_opening_balance."""

    async def test_upsert_replaces_value(self, store, relations, reconciler, make_account):
        """A second value for the same month replaces the first."""
        account = await make_account()
        first = await reconciler.upsert_opening_balance(PERSON, account.id, 2024, 3, 1000)

        later = datetime(2024, 3, 20, 8, 0)
        again = BalanceReconciler(store, relations, clock=lambda: later)
        second = await again.upsert_opening_balance(PERSON, account.id, 2024, 3, 2500)

        assert second.data.id == first.data.id
        assert second.data.amount_cents == 2500
        assert second.data.created_at == FIXED_NOW
        assert second.data.updated_at == later
        assert store.count("monthlyBalances") == 1
        stored = await MonthlyBalanceRepository(store).get(first.data.id)
        assert stored.amount_cents == 2500

    @pytest.mark.parametrize("month", [0, 13])
    async def test_invalid_month(self, reconciler, make_account, month):
        """Months outside 1..12 are refused."""
        account = await make_account()
        result = await reconciler.upsert_opening_balance(PERSON, account.id, 2024, month, 1000)
        assert result.reason == FailureReason.INVALID_INPUT

    async def test_unknown_account(self, reconciler):
        """A missing account is NOT_FOUND."""
        result = await reconciler.upsert_opening_balance(PERSON, "missing", 2024, 3, 1000)
        assert result.reason == FailureReason.NOT_FOUND


class TestMonthlySummary:
    """Tests for monthly_summary."""

    async def test_one_row_per_account(self, reconciler, make_account, make_entry):
        """Registered accounts get a balance; the rest get None."""
        checking = await make_account("Checking")
        savings = await make_account("Savings")
        await reconciler.upsert_opening_balance(PERSON, checking.id, 2024, 3, 1000)
        await make_entry(EntryKind.EXPENSE, 100, account_id=checking.id)
        await make_entry(EntryKind.GAIN, 900, account_id=savings.id)

        result = await reconciler.monthly_summary(PERSON, 2024, 3)
        rows = {row.account_name: row for row in result.data}
        assert rows["Checking"].balance_cents == 900
        assert rows["Savings"].balance_cents is None
        assert rows["Savings"].gains_cents == 900

    async def test_no_accounts(self, reconciler):
        """A person without accounts gets an empty summary."""
        result = await reconciler.monthly_summary(PERSON, 2024, 3)
        assert result.success
        assert result.data == []
