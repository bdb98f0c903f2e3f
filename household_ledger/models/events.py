"""
Event Models for Household Ledger

Every completed or refused write produces a LedgerEvent that the
application shell publishes on its EventBus. Subscribers decide what to do
with it (show a toast, refresh a screen, write a log line).

DESIGN DECISION: Core modules never publish events themselves. They return
results; the shell turns results into events.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class LedgerEventType(str, Enum):
    """Types of events the shell publishes."""
    # Ledger
    ENTRY_REGISTERED = "entry_registered"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"

    # Obligations
    OBLIGATION_SETTLED = "obligation_settled"
    OBLIGATION_RECLAIMED = "obligation_reclaimed"

    # Transfers and balances
    TRANSFER_COMPLETED = "transfer_completed"
    OPENING_BALANCE_RECORDED = "opening_balance_recorded"

    # Investments
    INVESTMENT_REGISTERED = "investment_registered"
    INVESTMENT_SYNCED = "investment_synced"
    INVESTMENT_ADJUSTED = "investment_adjusted"

    # Failures
    OPERATION_REFUSED = "operation_refused"
    STORE_ERROR = "store_error"


class EventSeverity(str, Enum):
    """Severity level, used by subscribers to pick a presentation."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class LedgerEvent(BaseModel):
    """A single event emitted by the application shell."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=datetime.now)

    event_type: LedgerEventType
    severity: EventSeverity = EventSeverity.INFO

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g. 'entry', 'obligation', 'transfer')"
    )
    entity_id: Optional[str] = None
    person_id: Optional[str] = None

    message: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "person_id": self.person_id,
            "message": self.message,
            "details": self.details,
        }


class LedgerEventBuilder:
    """
    Helper class to build events with common patterns.

    Usage:
        event = LedgerEventBuilder.obligation_settled(template_id, entry_id, cycle_key, person_id)
    """

    @staticmethod
    def entry_registered(
        entry_id: str,
        kind: str,
        amount_cents: int,
        person_id: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.ENTRY_REGISTERED,
            severity=EventSeverity.SUCCESS,
            entity_type="entry",
            entity_id=entry_id,
            person_id=person_id,
            message=f"{kind.replace('_', ' ').capitalize()} registered",
            details={"kind": kind, "amount_cents": amount_cents},
        )

    @staticmethod
    def entry_updated(entry_id: str, person_id: Optional[str] = None) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.ENTRY_UPDATED,
            severity=EventSeverity.SUCCESS,
            entity_type="entry",
            entity_id=entry_id,
            person_id=person_id,
            message="Entry updated",
        )

    @staticmethod
    def entry_deleted(entry_id: str, person_id: Optional[str] = None) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.ENTRY_DELETED,
            severity=EventSeverity.SUCCESS,
            entity_type="entry",
            entity_id=entry_id,
            person_id=person_id,
            message="Entry deleted",
        )

    @staticmethod
    def obligation_settled(
        template_id: str,
        entry_id: str,
        cycle_key: str,
        person_id: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.OBLIGATION_SETTLED,
            severity=EventSeverity.SUCCESS,
            entity_type="obligation",
            entity_id=template_id,
            person_id=person_id,
            message=f"Obligation settled for {cycle_key}",
            details={"entry_id": entry_id, "cycle_key": cycle_key},
        )

    @staticmethod
    def obligation_reclaimed(
        template_id: str,
        removed_entry_id: str,
        person_id: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.OBLIGATION_RECLAIMED,
            severity=EventSeverity.SUCCESS,
            entity_type="obligation",
            entity_id=template_id,
            person_id=person_id,
            message="Settlement reclaimed. Register it again when needed.",
            details={"removed_entry_id": removed_entry_id},
        )

    @staticmethod
    def transfer_completed(
        transfer_id: str,
        source_account_id: str,
        target_account_id: str,
        amount_cents: int,
        person_id: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TRANSFER_COMPLETED,
            severity=EventSeverity.SUCCESS,
            entity_type="transfer",
            entity_id=transfer_id,
            person_id=person_id,
            message="Transfer registered",
            details={
                "source_account_id": source_account_id,
                "target_account_id": target_account_id,
                "amount_cents": amount_cents,
            },
        )

    @staticmethod
    def opening_balance_recorded(
        snapshot_id: str,
        account_id: str,
        year: int,
        month: int,
        person_id: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.OPENING_BALANCE_RECORDED,
            severity=EventSeverity.SUCCESS,
            entity_type="monthly_balance",
            entity_id=snapshot_id,
            person_id=person_id,
            message=f"Opening balance recorded for {year}-{month:02d}",
            details={"account_id": account_id, "year": year, "month": month},
        )

    @staticmethod
    def investment_registered(investment_id: str, person_id: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.INVESTMENT_REGISTERED,
            severity=EventSeverity.SUCCESS,
            entity_type="investment",
            entity_id=investment_id,
            person_id=person_id,
            message="Investment registered",
        )

    @staticmethod
    def investment_synced(investment_id: str, amount_cents: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.INVESTMENT_SYNCED,
            severity=EventSeverity.SUCCESS,
            entity_type="investment",
            entity_id=investment_id,
            message="Investment value synced",
            details={"amount_cents": amount_cents},
        )

    @staticmethod
    def investment_adjusted(investment_id: str, delta_cents: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.INVESTMENT_ADJUSTED,
            severity=EventSeverity.SUCCESS,
            entity_type="investment",
            entity_id=investment_id,
            message="Investment value adjusted",
            details={"delta_cents": delta_cents},
        )

    @staticmethod
    def operation_refused(
        operation: str,
        reason: str,
        message: str,
        person_id: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.OPERATION_REFUSED,
            severity=EventSeverity.WARNING,
            person_id=person_id,
            message=message[:500] or f"{operation} refused",
            details={"operation": operation, "reason": reason},
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        person_id: Optional[str] = None,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STORE_ERROR,
            severity=EventSeverity.ERROR,
            person_id=person_id,
            message=f"Could not complete {operation}. Try again.",
            details={"operation": operation, "error": error_message},
        )
