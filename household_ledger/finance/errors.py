"""
Failure Mapping

DESIGN DECISION: Inside the finance package, helpers raise. At every
public method the exception is caught once and turned into an
OperationResult, so nothing escapes the core as an exception.
"""

import structlog
from pydantic import ValidationError

from household_ledger.finance.cancellation import OperationCancelled
from household_ledger.models.results import FailureReason, OperationResult
from household_ledger.services.repositories import MalformedRecordError
from household_ledger.services.storage import NotFoundError


logger = structlog.get_logger(__name__)


class LedgerOperationError(Exception):
    """A business rule refused the operation."""

    def __init__(self, reason: FailureReason, message: str):
        self.reason = reason
        self.message = message
        super().__init__(message)


def refuse(reason: FailureReason, message: str) -> LedgerOperationError:
    """Shorthand for raise refuse(...)."""
    return LedgerOperationError(reason, message)


def failure_from(error: Exception, operation: str) -> OperationResult:
    """
    Translate an exception into a failed OperationResult.

    Business refusals keep their reason. Anything else raised by the store
    is reported as STORE_FAILURE carrying the cause text.
    """
    if isinstance(error, LedgerOperationError):
        logger.info(
            "operation_refused",
            operation=operation,
            reason=error.reason.value,
            message=error.message,
        )
        return OperationResult.fail(error.reason, error.message)

    if isinstance(error, OperationCancelled):
        logger.debug("operation_cancelled", operation=operation, detail=str(error))
        return OperationResult.fail(FailureReason.CANCELLED, str(error))

    if isinstance(error, MalformedRecordError):
        logger.warning(
            "malformed_record_refused",
            operation=operation,
            collection=error.collection,
            document_id=error.document_id,
        )
        return OperationResult.fail(FailureReason.MALFORMED_RECORD, str(error))

    if isinstance(error, ValidationError):
        return OperationResult.fail(
            FailureReason.INVALID_INPUT,
            f"Invalid input: {error.error_count()} field error(s)",
        )

    if isinstance(error, NotFoundError):
        return OperationResult.fail(FailureReason.NOT_FOUND, str(error))

    logger.error(
        "store_failure",
        operation=operation,
        error=str(error),
        error_type=type(error).__name__,
    )
    return OperationResult.fail(
        FailureReason.STORE_FAILURE,
        f"{operation} failed: {error}",
    )
