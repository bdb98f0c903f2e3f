"""
Data Models Package

This package contains all Pydantic models used by the household ledger.
Every document read from the store is parsed into one of these before
business logic touches it.
"""

from household_ledger.models.entities import (
    Account,
    EntryKind,
    Investment,
    InvestmentCheckpoint,
    LedgerEntry,
    MonthlyBalanceSnapshot,
    ObligationKind,
    ObligationTemplate,
    PersonRelation,
    RedemptionTerm,
    Settlement,
    Tag,
    TagUsage,
    Transfer,
)
from household_ledger.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)
from household_ledger.models.results import (
    FailureReason,
    OperationResult,
    TransferReceipt,
)

__all__ = [
    # Entities
    "Account",
    "EntryKind",
    "Investment",
    "InvestmentCheckpoint",
    "LedgerEntry",
    "MonthlyBalanceSnapshot",
    "ObligationKind",
    "ObligationTemplate",
    "PersonRelation",
    "RedemptionTerm",
    "Settlement",
    "Tag",
    "TagUsage",
    "Transfer",
    # Events
    "EventSeverity",
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
    # Results
    "FailureReason",
    "OperationResult",
    "TransferReceipt",
]
