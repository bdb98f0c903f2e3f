"""
Operation Results

DESIGN DECISION: Nothing in the ledger core throws across its public
boundary. Every operation returns an OperationResult: either a success
carrying data, or a failure carrying a machine-readable reason and a
human-readable message.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class FailureReason(str, Enum):
    """Why an operation was refused or failed."""
    # Validation - caught before any write
    INVALID_DATE_RANGE = "invalid_date_range"
    NON_POSITIVE_AMOUNT = "non_positive_amount"
    SAME_ACCOUNT = "same_account"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    BALANCE_NOT_REGISTERED = "balance_not_registered"
    ACCOUNT_NOT_ACCESSIBLE = "account_not_accessible"
    INVALID_INPUT = "invalid_input"

    # Conflict - same-cycle business rules
    ALREADY_SETTLED_THIS_CYCLE = "already_settled_this_cycle"
    OBLIGATION_LOCKED = "obligation_locked"
    NOT_SETTLED = "not_settled"

    # Not found
    NOT_FOUND = "not_found"
    MALFORMED_RECORD = "malformed_record"

    # Transport
    STORE_FAILURE = "store_failure"
    CANCELLED = "cancelled"


VALIDATION_REASONS = frozenset({
    FailureReason.INVALID_DATE_RANGE,
    FailureReason.NON_POSITIVE_AMOUNT,
    FailureReason.SAME_ACCOUNT,
    FailureReason.INSUFFICIENT_BALANCE,
    FailureReason.BALANCE_NOT_REGISTERED,
    FailureReason.ACCOUNT_NOT_ACCESSIBLE,
    FailureReason.INVALID_INPUT,
})

CONFLICT_REASONS = frozenset({
    FailureReason.ALREADY_SETTLED_THIS_CYCLE,
    FailureReason.OBLIGATION_LOCKED,
    FailureReason.NOT_SETTLED,
})


class OperationResult(BaseModel):
    """
    Outcome of a ledger operation.

    Callers may retry failed reads freely. A failed write with reason
    STORE_FAILURE must be checked before retrying, since generated ids make
    a duplicated create possible.
    """
    success: bool
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    data: Any = None
    completed_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def ok(cls, data: Any = None, message: Optional[str] = None) -> "OperationResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, reason: FailureReason, message: str) -> "OperationResult":
        return cls(success=False, reason=reason, message=message)

    @property
    def is_validation_failure(self) -> bool:
        return self.reason in VALIDATION_REASONS

    @property
    def is_conflict(self) -> bool:
        return self.reason in CONFLICT_REASONS


class TransferReceipt(BaseModel):
    """Ids created by a successful transfer."""

    transfer_id: str
    expense_entry_id: str
    gain_entry_id: str
