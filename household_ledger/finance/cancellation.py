"""
Cooperative cancellation for long-running reads.

A CancellationToken is handed to aggregation calls by whoever owns the
request. When that owner goes away it cancels the token; the aggregation
stops at its next await point and its result is discarded. Writes never
look at the token once issued.
"""

from typing import Optional


class OperationCancelled(Exception):
    """Raised inside an aggregation when its token was cancelled."""
    pass


class CancellationToken:
    """A one-way cancelled flag with an optional reason."""

    def __init__(self):
        self._cancelled = False
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled(self._reason or "Operation cancelled")


def checkpoint(token: Optional[CancellationToken]) -> None:
    """Honor a token if one was given."""
    if token is not None:
        token.raise_if_cancelled()
