"""
Application Shell for Household Ledger

This module ties the finance components together and defines the
end-to-end household workflows:
1. Ledger (register / edit / delete an entry)
2. Obligations (settle with entry / reclaim / keep reminders in sync)
3. Transfer (check funds -> write the triple)
4. Balances and investments

DESIGN DECISION: The shell is the only place that publishes events.
Finance components return OperationResults; the shell turns each result
into a LedgerEvent on the injected EventBus, so subscribers (UI toasts,
refresh hooks) never need to reach into the core.

Validation that needs more than one component lives here, e.g. a
transfer is only attempted once the source account has a registered
balance that covers the amount.
"""

from datetime import datetime
from typing import Any, Callable, Optional

import structlog

from household_ledger.config import FinanceSettings, Settings, get_settings, validate_all_settings
from household_ledger.events import EventBus
from household_ledger.finance import (
    AccountRegistry,
    BalanceReconciler,
    EntryDraft,
    InvestmentDraft,
    InvestmentService,
    LedgerAggregator,
    LedgerService,
    ObligationDraft,
    ObligationTracker,
    SettlementOverrides,
    TagRegistry,
    TransferOrchestrator,
)
from household_ledger.finance.cycle import Clock
from household_ledger.logging_setup import configure_logging
from household_ledger.models.entities import ObligationTemplate, TagUsage
from household_ledger.models.events import LedgerEvent, LedgerEventBuilder
from household_ledger.models.results import FailureReason, OperationResult
from household_ledger.services.relations import RelationsDirectory, StoreRelationsDirectory
from household_ledger.services.reminders import ReminderScheduler, sync_obligation_reminders
from household_ledger.services.storage import DocumentStore, create_document_store


logger = structlog.get_logger(__name__)


class HouseholdWorkflows:
    """
    Orchestrates the household flows on top of one DocumentStore.

    Every public method returns an OperationResult. Refusals and store
    failures are always published; successes where an event type exists.
    """

    def __init__(
        self,
        store: DocumentStore,
        relations: Optional[RelationsDirectory] = None,
        event_bus: Optional[EventBus] = None,
        reminders: Optional[ReminderScheduler] = None,
        finance_settings: Optional[FinanceSettings] = None,
        clock: Clock = datetime.now,
    ):
        self._store = store
        self._relations = relations or StoreRelationsDirectory(store)
        self._event_bus = event_bus or EventBus()
        self._reminders = reminders
        self._finance = finance_settings or FinanceSettings()
        self._clock = clock

        self.accounts = AccountRegistry(store, self._relations, clock)
        self.tags = TagRegistry(store)
        self.aggregator = LedgerAggregator(store)
        self.ledger = LedgerService(store, self._relations, clock)
        self.obligations = ObligationTracker(store, self._relations, self.ledger, clock)
        self.investments = InvestmentService(
            store,
            self._relations,
            clock,
            reference_rate=self._finance.base_annual_reference_rate,
            days_in_year=self._finance.days_in_year,
            recent_limit=self._finance.recent_investments_limit,
        )
        self.balances = BalanceReconciler(
            store, self._relations, self.aggregator, self.investments, clock,
        )
        self.transfers = TransferOrchestrator(store, self._relations, clock)

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    @property
    def store(self) -> DocumentStore:
        return self._store

    # -------------------------------------------------------------------------
    # Ledger
    # -------------------------------------------------------------------------

    async def register_entry(self, person_id: str, draft: EntryDraft) -> OperationResult:
        result = await self.ledger.register_entry(person_id, draft)
        return await self._report(
            "register_entry",
            person_id,
            result,
            lambda entry: LedgerEventBuilder.entry_registered(
                entry.id, entry.kind.value, entry.amount_cents, person_id,
            ),
        )

    async def update_entry(self, person_id: str, entry_id: str, changes: dict[str, Any]) -> OperationResult:
        result = await self.ledger.update_entry(person_id, entry_id, changes)
        return await self._report(
            "update_entry",
            person_id,
            result,
            lambda entry: LedgerEventBuilder.entry_updated(entry.id, person_id),
        )

    async def delete_entry(self, person_id: str, entry_id: str) -> OperationResult:
        result = await self.ledger.delete_entry(person_id, entry_id)
        return await self._report(
            "delete_entry",
            person_id,
            result,
            lambda entry: LedgerEventBuilder.entry_deleted(entry.id, person_id),
        )

    # -------------------------------------------------------------------------
    # Obligations
    # -------------------------------------------------------------------------

    async def create_obligation(self, person_id: str, draft: ObligationDraft) -> OperationResult:
        """Create a template, filling reminder time defaults from settings."""
        defaults = {}
        if "reminder_hour" not in draft.model_fields_set:
            defaults["reminder_hour"] = self._finance.default_reminder_hour
        if "reminder_minute" not in draft.model_fields_set:
            defaults["reminder_minute"] = self._finance.default_reminder_minute
        if defaults:
            draft = draft.model_copy(update=defaults)

        result = await self.obligations.create_template(person_id, draft)
        if result.success:
            await self._sync_reminder(result.data)
        return await self._report("create_obligation", person_id, result)

    async def update_obligation(
        self,
        person_id: str,
        template_id: str,
        changes: dict[str, Any],
    ) -> OperationResult:
        result = await self.obligations.update_template(person_id, template_id, changes)
        if result.success:
            await self._sync_reminder(result.data)
        return await self._report("update_obligation", person_id, result)

    async def delete_obligation(self, person_id: str, template_id: str) -> OperationResult:
        result = await self.obligations.delete_template(person_id, template_id)
        if result.success:
            await self._sync_reminder(result.data.model_copy(update={"reminder_enabled": False}))
        return await self._report("delete_obligation", person_id, result)

    async def settle_obligation(
        self,
        person_id: str,
        template_id: str,
        overrides: Optional[SettlementOverrides] = None,
    ) -> OperationResult:
        """Register this month's entry for a template and lock it, atomically."""
        found = await self.obligations.get_template(person_id, template_id)
        if not found.success:
            return await self._report("settle_obligation", person_id, found)

        result = await self.obligations.settle_with_entry(person_id, found.data, overrides)
        return await self._report(
            "settle_obligation",
            person_id,
            result,
            lambda data: LedgerEventBuilder.obligation_settled(
                template_id,
                data["entry"].id,
                data["template"].settlement.cycle_key,
                person_id,
            ),
        )

    async def reclaim_obligation(self, person_id: str, template_id: str) -> OperationResult:
        found = await self.obligations.get_template(person_id, template_id)
        if not found.success:
            return await self._report("reclaim_obligation", person_id, found)

        removed_entry_id = (
            found.data.settlement.entry_id if found.data.settlement is not None else None
        )
        result = await self.obligations.reclaim(found.data)
        return await self._report(
            "reclaim_obligation",
            person_id,
            result,
            lambda template: LedgerEventBuilder.obligation_reclaimed(
                template.id, removed_entry_id, person_id,
            ),
        )

    async def sync_reminders(self, person_id: str) -> OperationResult:
        """Re-schedule (or cancel) the reminder of every household template."""
        if self._reminders is None:
            return OperationResult.ok({}, message="No reminder scheduler configured")

        listed = await self.obligations.list_templates(person_id)
        if not listed.success:
            return await self._report("sync_reminders", person_id, listed)
        try:
            outcome = await sync_obligation_reminders(listed.data, self._reminders)
        except Exception as e:
            logger.error("reminder_sync_failed", person_id=person_id, error=str(e))
            result = OperationResult.fail(FailureReason.STORE_FAILURE, f"Reminder sync failed: {e}")
            return await self._report("sync_reminders", person_id, result)
        return OperationResult.ok(outcome)

    # -------------------------------------------------------------------------
    # Balances and transfers
    # -------------------------------------------------------------------------

    async def record_opening_balance(
        self,
        person_id: str,
        account_id: str,
        year: int,
        month: int,
        amount_cents: int,
    ) -> OperationResult:
        result = await self.balances.upsert_opening_balance(
            person_id, account_id, year, month, amount_cents,
        )
        return await self._report(
            "record_opening_balance",
            person_id,
            result,
            lambda snapshot: LedgerEventBuilder.opening_balance_recorded(
                snapshot.id, account_id, year, month, person_id,
            ),
        )

    async def transfer_between_accounts(
        self,
        person_id: str,
        source_account_id: str,
        target_account_id: str,
        amount_cents: int,
        occurred_at: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> OperationResult:
        """
        Check the source account can cover the amount, then transfer.

        The source must have an opening balance this month
        (BALANCE_NOT_REGISTERED) and a current balance of at least
        amount_cents (INSUFFICIENT_BALANCE).
        """
        operation = "transfer_between_accounts"
        if source_account_id != target_account_id and amount_cents > 0:
            balance = await self.balances.current_balance(person_id, source_account_id)
            if not balance.success:
                return await self._report(operation, person_id, balance)
            if balance.data is None:
                refused = OperationResult.fail(
                    FailureReason.BALANCE_NOT_REGISTERED,
                    "Register the opening balance of the source account before transferring",
                )
                return await self._report(operation, person_id, refused)

            available = balance.data.balance_cents
            if available <= 0 or amount_cents > available:
                refused = OperationResult.fail(
                    FailureReason.INSUFFICIENT_BALANCE,
                    "Insufficient balance to complete the transfer",
                )
                return await self._report(operation, person_id, refused)

        result = await self.transfers.transfer(
            person_id,
            source_account_id,
            target_account_id,
            amount_cents,
            occurred_at or self._clock(),
            description,
        )
        return await self._report(
            operation,
            person_id,
            result,
            lambda receipt: LedgerEventBuilder.transfer_completed(
                receipt.transfer_id,
                source_account_id,
                target_account_id,
                amount_cents,
                person_id,
            ),
        )

    # -------------------------------------------------------------------------
    # Investments
    # -------------------------------------------------------------------------

    async def register_investment(self, person_id: str, draft: InvestmentDraft) -> OperationResult:
        result = await self.investments.register(person_id, draft)
        return await self._report(
            "register_investment",
            person_id,
            result,
            lambda investment: LedgerEventBuilder.investment_registered(investment.id, person_id),
        )

    async def sync_investment(self, person_id: str, investment_id: str, amount_cents: int) -> OperationResult:
        result = await self.investments.sync_value(person_id, investment_id, amount_cents)
        return await self._report(
            "sync_investment",
            person_id,
            result,
            lambda investment: LedgerEventBuilder.investment_synced(investment.id, amount_cents),
        )

    async def deposit_to_investment(
        self,
        person_id: str,
        investment_id: str,
        amount_cents: int,
        occurred_at: Optional[datetime] = None,
    ) -> OperationResult:
        tag = await self.tags.find_or_create("Investment", TagUsage.EXPENSE)
        tag_id = tag.data.id if tag.success else None
        result = await self.investments.deposit(person_id, investment_id, amount_cents, occurred_at, tag_id)
        return await self._report(
            "deposit_to_investment",
            person_id,
            result,
            lambda data: LedgerEventBuilder.investment_adjusted(investment_id, amount_cents),
        )

    async def redeem_from_investment(
        self,
        person_id: str,
        investment_id: str,
        amount_cents: int,
        occurred_at: Optional[datetime] = None,
    ) -> OperationResult:
        tag = await self.tags.find_or_create("Investment", TagUsage.GAIN)
        tag_id = tag.data.id if tag.success else None
        result = await self.investments.redeem(person_id, investment_id, amount_cents, occurred_at, tag_id)
        return await self._report(
            "redeem_from_investment",
            person_id,
            result,
            lambda data: LedgerEventBuilder.investment_adjusted(investment_id, -amount_cents),
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _sync_reminder(self, template: ObligationTemplate) -> None:
        if self._reminders is None:
            return
        try:
            await sync_obligation_reminders([template], self._reminders)
        except Exception as e:
            # Template already saved
            logger.warning("reminder_sync_failed", template_id=template.id, error=str(e))

    async def _report(
        self,
        operation: str,
        person_id: str,
        result: OperationResult,
        on_success: Optional[Callable[[Any], LedgerEvent]] = None,
    ) -> OperationResult:
        """Publish the event matching result and hand result back."""
        event: Optional[LedgerEvent] = None
        if result.success:
            if on_success is not None:
                event = on_success(result.data)
        elif result.reason == FailureReason.STORE_FAILURE:
            event = LedgerEventBuilder.store_error(operation, result.message or "", person_id)
        elif result.reason != FailureReason.CANCELLED:
            event = LedgerEventBuilder.operation_refused(
                operation, result.reason.value, result.message or "", person_id,
            )

        if event is not None:
            await self._event_bus.publish(event)
        return result


def create_app_components(
    settings: Optional[Settings] = None,
    reminders: Optional[ReminderScheduler] = None,
) -> tuple[HouseholdWorkflows, DocumentStore]:
    """
    Factory function to create all application components.

    Args:
        settings: Application settings (defaults to get_settings())
        reminders: Host notification scheduler, if the host has one

    Returns:
        (workflows, store)
    """
    settings = settings or get_settings()
    configure_logging(settings.app)
    checks = validate_all_settings(settings)
    failed = sorted(name for name, ok in checks.items() if ok is False)
    if failed:
        logger.warning(
            "settings_invalid",
            sections=failed,
            errors={name: checks.get(f"{name}_error") for name in failed},
        )
    store = create_document_store(settings)
    workflows = HouseholdWorkflows(
        store,
        event_bus=EventBus(),
        reminders=reminders,
        finance_settings=settings.finance,
    )
    logger.info(
        "app_components_created",
        backend=settings.store.backend,
        environment=settings.app.app_environment,
    )
    return workflows, store
