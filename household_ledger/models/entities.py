"""
Core Data Models for Household Ledger

These models define the strict schemas for every record the ledger reads
from or writes to the document store. They are designed to:
1. Enforce type safety at the store boundary
2. Provide clear validation error messages for malformed documents
3. Serialize to JSON-compatible documents for any store backend

DESIGN DECISION: Money is ALWAYS an integer number of minor currency units
(cents). Formatting for display is somebody else's problem.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class EntryKind(str, Enum):
    """Variants of a ledger entry."""
    EXPENSE = "expense"
    GAIN = "gain"
    CASH_WITHDRAWAL = "cash_withdrawal"


class ObligationKind(str, Enum):
    """A recurring obligation either costs money or brings it in."""
    EXPENSE = "expense"
    GAIN = "gain"


class RedemptionTerm(str, Enum):
    """When an investment can be redeemed."""
    ANYTIME = "anytime"
    ONE_MONTH = "1m"
    THREE_MONTHS = "3m"
    SIX_MONTHS = "6m"
    ONE_YEAR = "1y"
    TWO_YEARS = "2y"
    THREE_YEARS = "3y"


class TagUsage(str, Enum):
    """Which kind of movement a category tag may be attached to."""
    EXPENSE = "expense"
    GAIN = "gain"
    BOTH = "both"


# =============================================================================
# ACCOUNTS, TAGS, RELATIONS
# =============================================================================

class Account(BaseModel):
    """
    A bank account.

    Deleting an account does not cascade: ledger entries that point at it
    are left orphaned.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    person_id: str
    name: str = Field(..., min_length=1, max_length=120)
    color_hex: Optional[str] = Field(
        default=None,
        pattern=r"^#[0-9A-Fa-f]{6}$",
        description="Optional color tag, e.g. #1A2B3C"
    )
    created_at: datetime = Field(default_factory=datetime.now)


class Tag(BaseModel):
    """Category tag referenced by entries and obligation templates."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    name: str = Field(..., min_length=1, max_length=80)
    usage: TagUsage = TagUsage.BOTH
    person_id: Optional[str] = None

    def applies_to(self, kind: EntryKind) -> bool:
        if self.usage == TagUsage.BOTH:
            return True
        if kind == EntryKind.GAIN:
            return self.usage == TagUsage.GAIN
        return self.usage == TagUsage.EXPENSE


class PersonRelation(BaseModel):
    """Declares that two persons share a household ledger (both ways)."""

    id: str
    person_id: str
    related_person_id: str

    @model_validator(mode='after')
    def validate_distinct(self) -> 'PersonRelation':
        if self.person_id == self.related_person_id:
            raise ValueError("A person cannot be related to themselves")
        return self


# =============================================================================
# LEDGER
# =============================================================================

class LedgerEntry(BaseModel):
    """
    A single money movement: expense, gain or cash withdrawal.

    account_id None means the movement happened in cash.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    kind: EntryKind
    name: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    account_id: Optional[str] = None
    person_id: str
    occurred_at: datetime
    tag_id: Optional[str] = None
    note: Optional[str] = Field(default=None, max_length=1000)

    # Flags
    paid_in_cash: bool = False
    is_investment_flow: bool = False
    is_investment_redemption: bool = False
    is_transfer_leg: bool = False

    # Cross references
    transfer_id: Optional[str] = None
    counterpart_entry_id: Optional[str] = None
    investment_id: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode='after')
    def validate_transfer_leg(self) -> 'LedgerEntry':
        """A transfer leg must know its transfer and its sibling."""
        if self.is_transfer_leg and not (self.transfer_id and self.counterpart_entry_id):
            raise ValueError("Transfer legs must reference their transfer and counterpart entry")
        return self


class Transfer(BaseModel):
    """Links the outgoing expense and incoming gain produced by one transfer."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    person_id: str
    source_account_id: str
    target_account_id: str
    amount_cents: int = Field(..., gt=0)
    occurred_at: datetime
    description: str = Field(..., min_length=1, max_length=500)
    expense_entry_id: str
    gain_entry_id: str
    created_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode='after')
    def validate_accounts(self) -> 'Transfer':
        if self.source_account_id == self.target_account_id:
            raise ValueError("Source and target account must differ")
        return self


# =============================================================================
# RECURRING OBLIGATIONS
# =============================================================================

class Settlement(BaseModel):
    """
    The lock linking an obligation template to the entry that settled it.

    The three values only ever exist together: a template either has a
    complete Settlement or none at all.
    """
    model_config = ConfigDict(frozen=True)

    entry_id: str = Field(..., min_length=1)
    cycle_key: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    settled_at: datetime


class ObligationTemplate(BaseModel):
    """
    Blueprint of a recurring monthly expense or gain (rent, salary...).

    due_day is stored exactly as entered. It may exceed the length of some
    months (31 in April); clamping happens only when suggesting a date.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    kind: ObligationKind
    person_id: str
    name: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    due_day: int = Field(..., ge=1, le=31)
    tag_id: str
    description: Optional[str] = Field(default=None, max_length=1000)

    reminder_enabled: bool = True
    reminder_hour: int = Field(default=9, ge=0, le=23)
    reminder_minute: int = Field(default=0, ge=0, le=59)

    settlement: Optional[Settlement] = None

    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def entry_kind(self) -> EntryKind:
        """Kind of ledger entry that settles this template."""
        if self.kind == ObligationKind.GAIN:
            return EntryKind.GAIN
        return EntryKind.EXPENSE


# =============================================================================
# BALANCES AND INVESTMENTS
# =============================================================================

class MonthlyBalanceSnapshot(BaseModel):
    """Opening balance of an account for one calendar month."""

    id: str
    person_id: str
    account_id: str
    year: int = Field(..., ge=1900, le=9999)
    month: int = Field(..., ge=1, le=12)
    amount_cents: int
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class InvestmentCheckpoint(BaseModel):
    """A user-supplied real value that resets the compounding base."""
    model_config = ConfigDict(frozen=True)

    amount_cents: int
    synced_at: datetime


class Investment(BaseModel):
    """An investment held at an account, simulated against the reference rate."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str
    account_id: str
    person_id: str
    name: str = Field(..., min_length=1, max_length=200)
    principal_cents: int = Field(..., ge=0)
    annual_percent: float = Field(
        ...,
        description="Percentage of the annual reference rate, e.g. 110 for 110%"
    )
    redemption_term: RedemptionTerm = RedemptionTerm.ANYTIME
    created_at: datetime = Field(default_factory=datetime.now)
    checkpoint: Optional[InvestmentCheckpoint] = None
    description: Optional[str] = Field(default=None, max_length=1000)
    updated_at: datetime = Field(default_factory=datetime.now)

    @field_validator('annual_percent')
    @classmethod
    def validate_finite(cls, v: float) -> float:
        if v != v or v in (float("inf"), float("-inf")):
            raise ValueError("annual_percent must be a finite number")
        return v
