"""Reconciliation and recurring-obligation engine."""

from household_ledger.finance.accounts import AccountRegistry, TagRegistry
from household_ledger.finance.balances import BalanceBreakdown, BalanceReconciler
from household_ledger.finance.cancellation import CancellationToken, OperationCancelled
from household_ledger.finance.errors import LedgerOperationError
from household_ledger.finance.investments import (
    BASE_ANNUAL_REFERENCE_RATE,
    InvestmentDraft,
    InvestmentProjection,
    InvestmentService,
)
from household_ledger.finance.ledger import (
    EntryDraft,
    LedgerAggregator,
    LedgerService,
    LedgerTotals,
)
from household_ledger.finance.obligations import (
    ObligationDraft,
    ObligationStatus,
    ObligationTracker,
    SettlementOverrides,
)
from household_ledger.finance.transfers import TransferOrchestrator

__all__ = [
    "AccountRegistry",
    "BASE_ANNUAL_REFERENCE_RATE",
    "BalanceBreakdown",
    "BalanceReconciler",
    "CancellationToken",
    "EntryDraft",
    "InvestmentDraft",
    "InvestmentProjection",
    "InvestmentService",
    "LedgerAggregator",
    "LedgerOperationError",
    "LedgerService",
    "LedgerTotals",
    "ObligationDraft",
    "ObligationStatus",
    "ObligationTracker",
    "OperationCancelled",
    "SettlementOverrides",
    "TagRegistry",
    "TransferOrchestrator",
]
