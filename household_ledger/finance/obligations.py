"""
Recurring Obligations

Each ObligationTemplate (rent, salary...) is settled at most once per
calendar month. Settling links the template to the ledger entry that paid
or received it; reclaiming deletes that entry and unlinks it again.

States, per template:
    Unsettled (settlement None)
        -> settle -> Settled(cycle key)
        -> reclaim -> Unsettled

A settlement from a past month does not block settling again: only a
cycle key equal to the current one means "already settled this month".

DESIGN DECISION: Creating the settling entry and setting the lock happen
in ONE batch (settle_with_entry). A paid obligation can never look
unpaid because the second of two writes failed.
"""

import asyncio
from datetime import date, datetime
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from household_ledger.finance.cycle import (
    Clock,
    DateLike,
    is_current,
    key_for,
    suggested_occurrence_date,
)
from household_ledger.finance.errors import failure_from, refuse
from household_ledger.finance.ledger import (
    EntryDraft,
    LedgerService,
    build_entry,
    ensure_entry_unlocked,
)
from household_ledger.models.entities import (
    ObligationKind,
    ObligationTemplate,
    Settlement,
)
from household_ledger.models.results import FailureReason, OperationResult
from household_ledger.services.relations import RelationsDirectory
from household_ledger.services.repositories import (
    LedgerEntryRepository,
    ObligationRepository,
    TagRepository,
    iso,
)
from household_ledger.services.storage import (
    BatchConflictError,
    DocumentStore,
    WriteBatch,
    new_document_id,
    where,
)


logger = structlog.get_logger(__name__)

EDITABLE_FIELDS = frozenset({
    "name",
    "amount_cents",
    "due_day",
    "tag_id",
    "description",
    "reminder_enabled",
    "reminder_hour",
    "reminder_minute",
})


def can_settle(template: ObligationTemplate, now: Optional[datetime] = None) -> bool:
    """True unless the template is already settled in the month of now."""
    if template.settlement is None:
        return True
    return not is_current(template.settlement.cycle_key, now)


class ObligationDraft(BaseModel):
    """User input for a new obligation template."""

    kind: ObligationKind
    name: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    due_day: int = Field(..., ge=1, le=31)
    tag_id: str
    description: Optional[str] = None
    reminder_enabled: bool = True
    reminder_hour: int = Field(default=9, ge=0, le=23)
    reminder_minute: int = Field(default=0, ge=0, le=59)


class SettlementOverrides(BaseModel):
    """What the user may change on the entry that settles a template."""

    amount_cents: Optional[int] = None
    occurred_at: Optional[datetime] = None
    account_id: Optional[str] = None
    paid_in_cash: bool = False
    note: Optional[str] = None


class ObligationStatus(BaseModel):
    """One row of the monthly obligation checklist."""

    template: ObligationTemplate
    settled_this_cycle: bool
    suggested_date: date


class ObligationTracker:
    """Settlement state machine and template registry."""

    def __init__(
        self,
        store: DocumentStore,
        relations: RelationsDirectory,
        ledger: Optional[LedgerService] = None,
        clock: Clock = datetime.now,
    ):
        self._store = store
        self._templates = ObligationRepository(store)
        self._tags = TagRepository(store)
        self._relations = relations
        self._ledger = ledger or LedgerService(store, relations, clock)
        self._clock = clock

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    def can_settle(self, template: ObligationTemplate, now: Optional[datetime] = None) -> bool:
        return can_settle(template, now or self._clock())

    async def settle(
        self,
        template: ObligationTemplate,
        entry_id: str,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Lock template to an entry that was already persisted.

        Fails with ALREADY_SETTLED_THIS_CYCLE when the stored template is
        settled in the current month. The whole Settlement is written at once.
        """
        now = now or self._clock()
        try:
            current = await self._require(template.id)
            if not can_settle(current, now):
                raise self._already_settled(current)

            settlement = Settlement(entry_id=entry_id, cycle_key=key_for(now), settled_at=now)
            batch = self._store.new_batch()
            self._stage_settlement(batch, current, settlement, now)
            await self._commit_settlement(batch, current)
        except Exception as e:
            return failure_from(e, "settle_obligation")

        logger.info(
            "obligation_settled",
            template_id=current.id,
            entry_id=entry_id,
            cycle_key=settlement.cycle_key,
        )
        return OperationResult.ok(current.model_copy(update={"settlement": settlement}))

    async def settle_with_entry(
        self,
        person_id: str,
        template: ObligationTemplate,
        overrides: Optional[SettlementOverrides] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """
        Register the settling entry and lock the template in one batch.

        The entry copies name, amount and tag from the template. Unless
        overridden, it is dated on the template's due day in this month
        (clamped to the month length).

        Returns:
            OperationResult with {"template", "entry"} as data
        """
        now = now or self._clock()
        overrides = overrides or SettlementOverrides()
        try:
            current = await self._visible(person_id, template.id)
            if not can_settle(current, now):
                raise self._already_settled(current)

            draft = EntryDraft(
                kind=current.entry_kind,
                name=current.name,
                amount_cents=(
                    overrides.amount_cents
                    if overrides.amount_cents is not None
                    else current.amount_cents
                ),
                occurred_at=overrides.occurred_at or datetime.combine(
                    suggested_occurrence_date(current.due_day, now),
                    now.time(),
                    tzinfo=now.tzinfo,
                ),
                account_id=overrides.account_id,
                tag_id=current.tag_id,
                note=overrides.note,
                paid_in_cash=overrides.paid_in_cash,
            )
            owners = await self._relations.allowed_owner_ids(person_id)
            await self._ledger.validate_draft(owners, draft)
            entry = build_entry(person_id, draft, now)
            settlement = Settlement(entry_id=entry.id, cycle_key=key_for(now), settled_at=now)

            batch = self._store.new_batch()
            self._ledger.repository(entry.kind).stage_create(batch, entry)
            self._stage_settlement(batch, current, settlement, now)
            await self._commit_settlement(batch, current)
        except Exception as e:
            return failure_from(e, "settle_obligation_with_entry")

        logger.info(
            "obligation_settled",
            template_id=current.id,
            entry_id=entry.id,
            cycle_key=settlement.cycle_key,
        )
        return OperationResult.ok({
            "template": current.model_copy(update={"settlement": settlement}),
            "entry": entry,
        })

    async def reclaim(self, template: ObligationTemplate) -> OperationResult:
        """
        Undo a settlement: delete the linked entry, then clear the lock.

        If deleting the entry fails, the lock stays exactly as it was.
        An entry that is already gone does not block clearing the lock.
        """
        try:
            current = await self._require(template.id)
            if current.settlement is None:
                raise refuse(FailureReason.NOT_SETTLED, f"'{current.name}' is not settled")

            entry_id = current.settlement.entry_id
            entries: LedgerEntryRepository = self._ledger.repository(current.entry_kind)
            removed = await entries.delete(entry_id)
            if not removed:
                logger.warning("settlement_entry_missing", template_id=current.id, entry_id=entry_id)

            batch = self._store.new_batch()
            self._templates.stage_update(
                batch,
                current.id,
                {"settlement": None, "updated_at": iso(self._clock())},
                expect={"settlement.entry_id": entry_id},
            )
            try:
                await self._store.commit_batch(batch)
            except BatchConflictError:
                raise refuse(FailureReason.NOT_SETTLED, f"'{current.name}' was reclaimed meanwhile")
        except Exception as e:
            return failure_from(e, "reclaim_obligation")

        logger.info("obligation_reclaimed", template_id=current.id, entry_id=entry_id)
        return OperationResult.ok(current.model_copy(update={"settlement": None}))

    async def assert_entry_editable(self, entry_id: str, now: Optional[datetime] = None) -> OperationResult:
        """Fails with OBLIGATION_LOCKED if entry_id settles a template this month."""
        try:
            await ensure_entry_unlocked(self._templates, entry_id, now or self._clock())
        except Exception as e:
            return failure_from(e, "assert_entry_editable")
        return OperationResult.ok()

    def suggested_date(self, template: ObligationTemplate, reference: Optional[DateLike] = None) -> date:
        return suggested_occurrence_date(template.due_day, reference or self._clock())

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    async def create_template(self, person_id: str, draft: ObligationDraft) -> OperationResult:
        try:
            await self._require_tag(draft.tag_id)
            now = self._clock()
            template = ObligationTemplate(
                id=new_document_id(),
                person_id=person_id,
                created_at=now,
                updated_at=now,
                **draft.model_dump(),
            )
            await self._templates.save(template)
        except Exception as e:
            return failure_from(e, "create_obligation")

        logger.info("obligation_created", template_id=template.id, kind=template.kind.value)
        return OperationResult.ok(template)

    async def update_template(
        self,
        person_id: str,
        template_id: str,
        changes: dict[str, Any],
    ) -> OperationResult:
        """Edit a template. The settlement is untouched; due_day is stored as given."""
        try:
            unknown = set(changes) - EDITABLE_FIELDS
            if unknown:
                raise refuse(
                    FailureReason.INVALID_INPUT,
                    f"Fields cannot be edited: {', '.join(sorted(unknown))}",
                )
            template = await self._visible(person_id, template_id)
            if "tag_id" in changes:
                await self._require_tag(changes["tag_id"])

            updated = ObligationTemplate.model_validate({
                **template.model_dump(),
                **changes,
                "updated_at": self._clock(),
            })
            await self._templates.save(updated)
        except Exception as e:
            return failure_from(e, "update_obligation")
        return OperationResult.ok(updated)

    async def delete_template(self, person_id: str, template_id: str) -> OperationResult:
        """Delete a template. Entries that settled it stay in the ledger."""
        try:
            template = await self._visible(person_id, template_id)
            await self._templates.delete(template.id)
        except Exception as e:
            return failure_from(e, "delete_obligation")
        logger.info("obligation_deleted", template_id=template_id)
        return OperationResult.ok(template)

    async def get_template(self, person_id: str, template_id: str) -> OperationResult:
        try:
            template = await self._visible(person_id, template_id)
        except Exception as e:
            return failure_from(e, "get_obligation")
        return OperationResult.ok(template)

    async def list_templates(
        self,
        person_id: str,
        kind: Optional[ObligationKind] = None,
    ) -> OperationResult:
        """Templates of the household, sorted by name ignoring case."""
        try:
            templates = await self._household_templates(person_id, kind)
        except Exception as e:
            return failure_from(e, "list_obligations")
        return OperationResult.ok(templates)

    async def settlement_status(
        self,
        person_id: str,
        kind: Optional[ObligationKind] = None,
        now: Optional[datetime] = None,
    ) -> OperationResult:
        """Checklist of this month: which templates are settled, with suggested dates."""
        now = now or self._clock()
        try:
            templates = await self._household_templates(person_id, kind)
        except Exception as e:
            return failure_from(e, "obligation_status")
        return OperationResult.ok([
            ObligationStatus(
                template=template,
                settled_this_cycle=not can_settle(template, now),
                suggested_date=suggested_occurrence_date(template.due_day, now),
            )
            for template in templates
        ])

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _household_templates(
        self,
        person_id: str,
        kind: Optional[ObligationKind],
    ) -> list[ObligationTemplate]:
        owners = await self._relations.allowed_owner_ids(person_id)
        filters = [where("person_id", "in", sorted(owners))]
        if kind is not None:
            filters.append(where("kind", "==", kind.value))
        templates = await self._templates.find(filters)
        return sorted(templates, key=lambda t: t.name.lower())

    async def _require(self, template_id: str) -> ObligationTemplate:
        template = await self._templates.get(template_id)
        if template is None:
            raise refuse(FailureReason.NOT_FOUND, f"Obligation {template_id} not found")
        return template

    async def _visible(self, person_id: str, template_id: str) -> ObligationTemplate:
        template, owners = await asyncio.gather(
            self._templates.get(template_id),
            self._relations.allowed_owner_ids(person_id),
        )
        if template is None or template.person_id not in owners:
            raise refuse(FailureReason.NOT_FOUND, f"Obligation {template_id} not found")
        return template

    async def _require_tag(self, tag_id: str) -> None:
        if await self._tags.get(tag_id) is None:
            raise refuse(FailureReason.NOT_FOUND, f"Tag {tag_id} not found")

    def _stage_settlement(
        self,
        batch: WriteBatch,
        current: ObligationTemplate,
        settlement: Settlement,
        now: datetime,
    ) -> None:
        """Stage the lock, conditional on the stored lock still being the one read."""
        self._templates.stage_update(
            batch,
            current.id,
            {"settlement": settlement.model_dump(mode="json"), "updated_at": iso(now)},
            expect={
                "settlement.cycle_key": (
                    current.settlement.cycle_key if current.settlement else None
                ),
            },
        )

    async def _commit_settlement(self, batch: WriteBatch, current: ObligationTemplate) -> None:
        try:
            await self._store.commit_batch(batch)
        except BatchConflictError:
            raise self._already_settled(current)

    @staticmethod
    def _already_settled(template: ObligationTemplate):
        return refuse(
            FailureReason.ALREADY_SETTLED_THIS_CYCLE,
            f"'{template.name}' was already settled this month",
        )
