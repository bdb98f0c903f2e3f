"""Tests for obligation reminder scheduling."""

from household_ledger.models.entities import ObligationKind, ObligationTemplate
from household_ledger.services.reminders import (
    ReminderScheduler,
    build_reminder,
    sync_obligation_reminders,
)

from tests.conftest import PERSON


class RecordingScheduler(ReminderScheduler):
    """Remembers what was scheduled; can refuse like a host without permission."""

    def __init__(self, allow: bool = True):
        self.allow = allow
        self.scheduled = {}
        self.cancelled = []

    async def schedule(self, template_id, title, body, trigger):
        if not self.allow:
            return False
        self.scheduled[template_id] = (title, body, trigger)
        return True

    async def cancel(self, template_id):
        self.cancelled.append(template_id)
        self.scheduled.pop(template_id, None)


def template(**overrides) -> ObligationTemplate:
    fields = dict(
        id="o1",
        kind=ObligationKind.EXPENSE,
        person_id=PERSON,
        name="Rent",
        amount_cents=150000,
        due_day=31,
        tag_id="t1",
        reminder_hour=8,
        reminder_minute=15,
    )
    fields.update(overrides)
    return ObligationTemplate(**fields)


class TestBuildReminder:
    """Tests for reminder content."""

    def test_expense_reminder(self):
        """Expense reminders say the bill is due."""
        title, body, trigger = build_reminder(template())
        assert title == "Recurring expense"
        assert body == "Rent is due today."
        assert (trigger.day, trigger.hour, trigger.minute) == (31, 8, 15)
        assert trigger.repeats_monthly

    def test_gain_reminder_with_description(self):
        """Gain reminders mention the note."""
        title, body, _ = build_reminder(template(kind=ObligationKind.GAIN, name="Salary", description="net"))
        assert title == "Recurring gain"
        assert body == "Salary is expected today. Note: net"


class TestSyncReminders:
    """Tests for sync_obligation_reminders."""

    async def test_enabled_are_rescheduled(self):
        """Enabled templates are cancelled then scheduled again."""
        scheduler = RecordingScheduler()
        outcome = await sync_obligation_reminders([template()], scheduler)
        assert outcome == {"o1": True}
        assert "o1" in scheduler.scheduled
        assert scheduler.cancelled == ["o1"]

    async def test_disabled_are_cancelled(self):
        """Disabling a reminder cancels it."""
        scheduler = RecordingScheduler()
        await sync_obligation_reminders([template()], scheduler)
        outcome = await sync_obligation_reminders([template(reminder_enabled=False)], scheduler)
        assert outcome == {"o1": False}
        assert scheduler.scheduled == {}

    async def test_refused_by_host(self):
        """A host refusal is reported, not raised."""
        outcome = await sync_obligation_reminders([template()], RecordingScheduler(allow=False))
        assert outcome == {"o1": False}
