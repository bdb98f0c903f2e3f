"""
Event Bus

DESIGN DECISION: Notifications about completed or refused operations flow
through an EventBus instance owned by the application shell and injected
wherever it is needed. There is no module-level listener registry.

The bus:
- Always logs the event locally
- Delivers it to every subscriber of its type (and to wildcard subscribers)
- Never lets a failing subscriber break the main flow
"""

import inspect
from collections import defaultdict
from typing import Awaitable, Callable, Optional, Union

import structlog

from household_ledger.models.events import (
    EventSeverity,
    LedgerEvent,
    LedgerEventType,
)


EventHandler = Callable[[LedgerEvent], Union[None, Awaitable[None]]]


class EventBus:
    """
    Publish/subscribe hub for LedgerEvents.

    Handlers may be plain functions or coroutine functions.
    Subscribing with event_type=None receives every event.
    """

    def __init__(self):
        self._subscribers: dict[Optional[LedgerEventType], list[EventHandler]] = defaultdict(list)
        self._logger = structlog.get_logger(__name__)

    def subscribe(
        self,
        handler: EventHandler,
        event_type: Optional[LedgerEventType] = None,
    ) -> Callable[[], None]:
        """
        Register a handler.

        Returns a callable that removes the subscription again.
        """
        self._subscribers[event_type].append(handler)

        def unsubscribe() -> None:
            self.unsubscribe(handler, event_type)

        return unsubscribe

    def unsubscribe(
        self,
        handler: EventHandler,
        event_type: Optional[LedgerEventType] = None,
    ) -> None:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    async def publish(self, event: LedgerEvent) -> int:
        """
        Log an event and deliver it to subscribers.

        Returns the number of handlers that ran without raising.
        """
        log_dict = event.to_log_dict()
        if event.severity == EventSeverity.ERROR:
            self._logger.error("ledger_event", **log_dict)
        elif event.severity == EventSeverity.WARNING:
            self._logger.warning("ledger_event", **log_dict)
        else:
            self._logger.info("ledger_event", **log_dict)

        handlers = [
            *self._subscribers.get(event.event_type, []),
            *self._subscribers.get(None, []),
        ]

        delivered = 0
        for handler in handlers:
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
                delivered += 1
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "event_handler_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                    event_type=event.event_type.value,
                )
        return delivered
