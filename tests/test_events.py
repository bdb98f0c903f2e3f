"""Tests for the event bus."""

from household_ledger.events.bus import EventBus
from household_ledger.models.events import LedgerEventBuilder, LedgerEventType


class TestEventBus:
    """Tests for subscribe / publish."""

    async def test_typed_and_wildcard_subscribers(self):
        """A typed handler sees its type; a wildcard handler sees everything."""
        bus = EventBus()
        typed, everything = [], []
        bus.subscribe(typed.append, LedgerEventType.ENTRY_DELETED)
        bus.subscribe(everything.append)

        await bus.publish(LedgerEventBuilder.entry_deleted("e1", "alice"))
        await bus.publish(LedgerEventBuilder.investment_synced("i1", 100))

        assert [e.entity_id for e in typed] == ["e1"]
        assert len(everything) == 2

    async def test_async_handlers_are_awaited(self):
        """Coroutine handlers run to completion."""
        bus = EventBus()
        seen = []

        async def handler(event):
            seen.append(event.event_type)

        bus.subscribe(handler)
        delivered = await bus.publish(LedgerEventBuilder.investment_adjusted("i1", -500))
        assert delivered == 1
        assert seen == [LedgerEventType.INVESTMENT_ADJUSTED]

    async def test_failing_handler_does_not_stop_others(self):
        """A raising handler is logged and skipped."""
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        delivered = await bus.publish(LedgerEventBuilder.store_error("transfer", "timeout"))

        assert delivered == 1
        assert len(seen) == 1

    async def test_unsubscribe(self):
        """The returned callable removes the subscription."""
        bus = EventBus()
        seen = []
        remove = bus.subscribe(seen.append, LedgerEventType.ENTRY_UPDATED)
        remove()
        delivered = await bus.publish(LedgerEventBuilder.entry_updated("e1"))
        assert delivered == 0
        assert seen == []
