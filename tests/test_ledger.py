"""Tests for ledger aggregation and the single-entry write path."""

from datetime import datetime

import pytest

from household_ledger.finance.cancellation import CancellationToken
from household_ledger.finance.ledger import EntryDraft, LedgerAggregator, LedgerService
from household_ledger.models.entities import EntryKind, TagUsage
from household_ledger.models.results import FailureReason
from household_ledger.services.storage import InMemoryDocumentStore

from tests.conftest import PARTNER, PERSON, STRANGER


class CountingStore(InMemoryDocumentStore):
    """Counts queries so tests can prove the store was not touched."""

    def __init__(self):
        super().__init__()
        self.queries = 0

    async def query(self, *args, **kwargs):
        self.queries += 1
        return await super().query(*args, **kwargs)


class TestAggregation:
    """Tests for LedgerAggregator.sum_by_account_and_range."""

    async def test_totals_per_kind(self, store, make_account, make_entry):
        """Expenses, gains and withdrawals are returned raw and summed."""
        account = await make_account()
        await make_entry(EntryKind.EXPENSE, 5000, datetime(2024, 3, 2), account.id)
        await make_entry(EntryKind.EXPENSE, 2500, datetime(2024, 3, 20), account.id)
        await make_entry(EntryKind.GAIN, 20000, datetime(2024, 3, 5), account.id)
        await make_entry(EntryKind.CASH_WITHDRAWAL, 1000, datetime(2024, 3, 6), account.id)

        result = await LedgerAggregator(store).sum_by_account_and_range(
            {PERSON}, [account.id], datetime(2024, 3, 1), datetime(2024, 3, 31),
        )
        totals = result.data
        assert result.success
        assert len(totals.expenses) == 2
        assert totals.total_expenses_cents == 7500
        assert totals.total_gains_cents == 20000
        assert totals.total_cash_withdrawals_cents == 1000
        assert totals.net_cents == 20000 - 8500

    async def test_bounds_are_whole_days(self, store, make_account, make_entry):
        """An entry late on the end day is inside; the next day is outside."""
        account = await make_account()
        await make_entry(EntryKind.EXPENSE, 100, datetime(2024, 3, 31, 23, 59, 59), account.id)
        await make_entry(EntryKind.EXPENSE, 200, datetime(2024, 4, 1, 0, 0), account.id)
        await make_entry(EntryKind.EXPENSE, 400, datetime(2024, 3, 1, 0, 0), account.id)

        result = await LedgerAggregator(store).sum_by_account_and_range(
            {PERSON}, [account.id], datetime(2024, 3, 1, 18, 0), datetime(2024, 3, 31, 8, 0),
        )
        assert result.data.total_expenses_cents == 500

    async def test_none_means_cash_only(self, store, make_account, make_entry):
        """account_ids None selects entries without an account."""
        account = await make_account()
        await make_entry(EntryKind.EXPENSE, 100, account_id=None)
        await make_entry(EntryKind.EXPENSE, 900, account_id=account.id)

        result = await LedgerAggregator(store).sum_by_account_and_range(
            {PERSON}, None, datetime(2024, 3, 1), datetime(2024, 3, 31),
        )
        assert result.data.total_expenses_cents == 100

    async def test_only_allowed_owners(self, store, make_account, make_entry):
        """Entries of persons outside the owner set are ignored."""
        account = await make_account()
        await make_entry(EntryKind.GAIN, 100, account_id=account.id, person_id=PARTNER)
        await make_entry(EntryKind.GAIN, 999, account_id=account.id, person_id=STRANGER)

        result = await LedgerAggregator(store).sum_by_account_and_range(
            {PERSON, PARTNER}, [account.id], datetime(2024, 3, 1), datetime(2024, 3, 31),
        )
        assert result.data.total_gains_cents == 100

    async def test_invalid_range_does_not_query(self):
        """End before start fails without touching the store."""
        store = CountingStore()
        result = await LedgerAggregator(store).sum_by_account_and_range(
            {PERSON}, None, datetime(2024, 3, 10), datetime(2024, 3, 1),
        )
        assert result.reason == FailureReason.INVALID_DATE_RANGE
        assert result.is_validation_failure
        assert store.queries == 0

    async def test_cancelled_token(self, store):
        """A cancelled token yields CANCELLED."""
        token = CancellationToken()
        token.cancel("screen closed")
        result = await LedgerAggregator(store).sum_by_account_and_range(
            {PERSON}, None, datetime(2024, 3, 1), datetime(2024, 3, 31), token,
        )
        assert result.reason == FailureReason.CANCELLED

    async def test_split_by_account(self, store, make_account, make_entry):
        """by_account groups entries by their account id."""
        first = await make_account("First")
        second = await make_account("Second")
        await make_entry(EntryKind.EXPENSE, 100, account_id=first.id)
        await make_entry(EntryKind.EXPENSE, 300, account_id=second.id)
        await make_entry(EntryKind.GAIN, 50, account_id=second.id)

        result = await LedgerAggregator(store).sum_by_account_and_range(
            {PERSON}, [first.id, second.id], datetime(2024, 3, 1), datetime(2024, 3, 31),
        )
        split = result.data.by_account()
        assert split[first.id].total_expenses_cents == 100
        assert split[second.id].total_expenses_cents == 300
        assert split[second.id].total_gains_cents == 50


class TestLedgerService:
    """Tests for registering, editing and deleting entries."""

    @pytest.fixture
    def ledger(self, store, relations, clock):
        return LedgerService(store, relations, clock)

    async def test_register_expense(self, store, ledger, make_account):
        """A valid expense is stored in the expenses collection."""
        account = await make_account()
        result = await ledger.register_entry(PERSON, EntryDraft(
            kind=EntryKind.EXPENSE, name="Groceries", amount_cents=4590,
            occurred_at=datetime(2024, 3, 14), account_id=account.id,
        ))
        assert result.success
        assert store.count("expenses") == 1

    async def test_register_cash_withdrawal(self, store, ledger, make_account):
        """A cash withdrawal is stored against its account."""
        account = await make_account()
        result = await ledger.register_entry(PERSON, EntryDraft(
            kind=EntryKind.CASH_WITHDRAWAL, name="ATM", amount_cents=10000,
            occurred_at=datetime(2024, 3, 14), account_id=account.id,
        ))
        assert result.success
        assert store.count("cashWithdrawals") == 1

    async def test_withdrawal_needs_account(self, ledger):
        """Cash cannot be withdrawn from nowhere."""
        result = await ledger.register_entry(PERSON, EntryDraft(
            kind=EntryKind.CASH_WITHDRAWAL, name="ATM", amount_cents=10000,
            occurred_at=datetime(2024, 3, 14),
        ))
        assert result.reason == FailureReason.INVALID_INPUT

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, ledger, amount):
        """Zero and negative amounts are refused."""
        result = await ledger.register_entry(PERSON, EntryDraft(
            kind=EntryKind.EXPENSE, name="X", amount_cents=amount, occurred_at=datetime(2024, 3, 14),
        ))
        assert result.reason == FailureReason.NON_POSITIVE_AMOUNT

    async def test_foreign_account_refused(self, ledger, make_account):
        """Accounts outside the household are not accessible."""
        account = await make_account(person_id=STRANGER)
        result = await ledger.register_entry(PERSON, EntryDraft(
            kind=EntryKind.EXPENSE, name="X", amount_cents=100,
            occurred_at=datetime(2024, 3, 14), account_id=account.id,
        ))
        assert result.reason == FailureReason.ACCOUNT_NOT_ACCESSIBLE

    async def test_partner_account_accessible(self, relations, ledger, make_account):
        """Related persons share accounts."""
        await relations.link(PERSON, PARTNER)
        account = await make_account(person_id=PARTNER)
        result = await ledger.register_entry(PERSON, EntryDraft(
            kind=EntryKind.EXPENSE, name="X", amount_cents=100,
            occurred_at=datetime(2024, 3, 14), account_id=account.id,
        ))
        assert result.success

    async def test_tag_usage_enforced(self, ledger, make_tag):
        """An expense-only tag cannot label a gain."""
        tag = await make_tag("Food", TagUsage.EXPENSE)
        result = await ledger.register_entry(PERSON, EntryDraft(
            kind=EntryKind.GAIN, name="X", amount_cents=100,
            occurred_at=datetime(2024, 3, 14), tag_id=tag.id,
        ))
        assert result.reason == FailureReason.INVALID_INPUT

    async def test_update_in_place(self, store, ledger, make_entry):
        """Editing keeps the id and changes the fields."""
        entry = await make_entry(EntryKind.EXPENSE, 100)
        result = await ledger.update_entry(PERSON, entry.id, {"amount_cents": 250, "note": "fixed"})
        assert result.success
        fetched = await ledger.get_entry(PERSON, entry.id)
        assert fetched.data.amount_cents == 250
        assert fetched.data.note == "fixed"
        assert store.count("expenses") == 1

    async def test_update_rejects_fixed_fields(self, ledger, make_entry):
        """Kind and owner cannot be edited."""
        entry = await make_entry(EntryKind.EXPENSE, 100)
        result = await ledger.update_entry(PERSON, entry.id, {"kind": "gain"})
        assert result.reason == FailureReason.INVALID_INPUT

    async def test_delete_unknown_entry(self, ledger):
        """Deleting a missing entry is NOT_FOUND."""
        result = await ledger.delete_entry(PERSON, "missing")
        assert result.reason == FailureReason.NOT_FOUND

    async def test_malformed_document_fails_closed(self, store, ledger):
        """A document that does not parse is reported, never returned."""
        await store.set("expenses", "bad", {"name": "Broken", "amount_cents": "lots"})
        result = await ledger.get_entry(PERSON, "bad", EntryKind.EXPENSE)
        assert result.reason == FailureReason.MALFORMED_RECORD
