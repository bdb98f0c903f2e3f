"""Event publishing package."""

from household_ledger.events.bus import EventBus, EventHandler

__all__ = ["EventBus", "EventHandler"]
