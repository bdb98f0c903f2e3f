"""
Obligation Reminders

Delivery of push notifications belongs to the host application. The ledger
only decides WHAT to schedule: one monthly reminder per obligation template,
keyed by the template id. Disabling a reminder cancels it; the template
itself is never deleted for that.
"""

from abc import ABC, abstractmethod
from typing import Iterable

import structlog
from pydantic import BaseModel, Field

from household_ledger.models.entities import ObligationKind, ObligationTemplate


logger = structlog.get_logger(__name__)


class ReminderTrigger(BaseModel):
    """When a reminder fires."""

    day: int = Field(..., ge=1, le=31)
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)
    repeats_monthly: bool = True


class ReminderScheduler(ABC):
    """Notification collaborator implemented by the host application."""

    @abstractmethod
    async def schedule(
        self,
        template_id: str,
        title: str,
        body: str,
        trigger: ReminderTrigger,
    ) -> bool:
        """
        Schedule (or replace) the reminder for a template.

        Returns:
            False if the host refused, e.g. permissions denied
        """
        pass

    @abstractmethod
    async def cancel(self, template_id: str) -> None:
        pass


def build_reminder(template: ObligationTemplate) -> tuple[str, str, ReminderTrigger]:
    """Title, body and trigger for a template's monthly reminder."""
    if template.kind == ObligationKind.GAIN:
        title = "Recurring gain"
        body = f"{template.name} is expected today."
    else:
        title = "Recurring expense"
        body = f"{template.name} is due today."
    if template.description:
        body = f"{body} Note: {template.description}"

    trigger = ReminderTrigger(
        day=min(max(template.due_day, 1), 31),
        hour=template.reminder_hour,
        minute=template.reminder_minute,
    )
    return title, body, trigger


async def sync_obligation_reminders(
    templates: Iterable[ObligationTemplate],
    scheduler: ReminderScheduler,
) -> dict[str, bool]:
    """
    Bring scheduled reminders in line with the templates.

    Returns a map of template id -> whether a reminder is now scheduled.
    """
    outcome: dict[str, bool] = {}
    for template in templates:
        if not template.reminder_enabled:
            await scheduler.cancel(template.id)
            outcome[template.id] = False
            continue

        title, body, trigger = build_reminder(template)
        await scheduler.cancel(template.id)
        scheduled = await scheduler.schedule(template.id, title, body, trigger)
        if not scheduled:
            logger.warning("reminder_not_scheduled", template_id=template.id)
        outcome[template.id] = scheduled
    return outcome
