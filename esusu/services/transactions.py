"""Transaction boundary for ledger mutations.

Every mutating operation runs its reads and writes through
``run_ledger_operation`` so that a business failure or an infrastructure error
rolls the whole unit back. Transient conflicts (serialization failures,
deadlocks, locked SQLite files) are retried a bounded number of times.
"""

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from esusu.config import settings
from esusu.services.errors import LedgerError, OperationResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE codes for serialization failure and deadlock
TRANSIENT_SQLSTATES = {"40001", "40P01"}


def is_transient_error(error: SQLAlchemyError) -> bool:
    """Return True for conflicts that are worth retrying."""
    if isinstance(error, DBAPIError):
        if error.connection_invalidated:
            return True
        orig = error.orig
        sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if sqlstate in TRANSIENT_SQLSTATES:
            return True
    return isinstance(error, OperationalError)


def run_in_transaction(
    db: Session,
    operation: Callable[[Session], T],
    retries: int | None = None,
) -> T:
    """Run operation and commit, or roll back everything it did.

    Args:
        db: Database session
        operation: Callable doing the reads and writes of one unit of work
        retries: Retry budget for transient conflicts (default from settings)

    Returns:
        Whatever operation returned

    Raises:
        LedgerError: Business rule failure (never retried)
        SQLAlchemyError: Non-transient failure or retries exhausted
    """
    max_retries = settings.max_transaction_retries if retries is None else retries
    attempt = 0
    while True:
        try:
            value = operation(db)
            db.commit()
            return value
        except LedgerError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            if attempt < max_retries and is_transient_error(e):
                attempt += 1
                logger.warning("Transient transaction conflict, retry %d/%d: %s", attempt, max_retries, e)
                time.sleep(settings.transaction_retry_backoff * attempt)
                continue
            raise


def run_ledger_operation(
    db: Session,
    name: str,
    operation: Callable[[Session], OperationResult],
    retries: int | None = None,
) -> OperationResult:
    """Run a mutating operation and convert failures into results.

    Args:
        db: Database session
        name: Operation name used in log messages
        operation: Unit of work returning a successful OperationResult
        retries: Retry budget for transient conflicts

    Returns:
        The operation's result, a failed result for business errors, or an
        INTERNAL_ERROR result for infrastructure errors
    """
    try:
        return run_in_transaction(db, operation, retries)
    except LedgerError as e:
        logger.warning("%s rejected: %s - %s", name, e.code.value, e.message)
        return OperationResult.fail(e)
    except SQLAlchemyError as e:
        logger.error("%s failed: %s", name, e, exc_info=True)
        return OperationResult.internal_error()


__all__ = ["is_transient_error", "run_in_transaction", "run_ledger_operation"]
