"""
Retrying transaction runner.

All writes of one service operation run inside a single ``engine.begin()``
block. When the database aborts that block for a reason that a fresh attempt
can fix (serialization failure, deadlock, SQLite busy, or a compare-and-set
that lost its race) the whole unit of work is run again, a bounded number of
times with linear backoff. Business errors are never retried.
"""

from __future__ import annotations

import time
from typing import Callable, TypeVar

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from rentaly.config import TX_BACKOFF_SECONDS, TX_MAX_ATTEMPTS
from rentaly.exceptions import ConcurrentModificationError, TransientStorageError
from rentaly.metrics import transaction_duration, transaction_retries

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
TRANSIENT_PGCODES = {"40001", "40P01", "55P03"}
TRANSIENT_MESSAGES = ("database is locked", "deadlock detected", "could not serialize access")


def is_transient_error(err: BaseException) -> bool:
    """
    Determine whether a failed transaction is worth running again.

    Args:
        err: Exception raised from the unit of work or from COMMIT

    Returns:
        bool: True for lost races and lock/serialization aborts
    """
    if isinstance(err, ConcurrentModificationError):
        return True
    if isinstance(err, IntegrityError) or not isinstance(err, DBAPIError):
        return False

    pgcode = getattr(err.orig, "pgcode", None)
    if pgcode in TRANSIENT_PGCODES:
        return True

    message = str(err.orig).lower()
    return any(fragment in message for fragment in TRANSIENT_MESSAGES)


def run_in_transaction(
    db_engine: Engine,
    operation: str,
    work: Callable[[Connection], T],
    max_attempts: int = TX_MAX_ATTEMPTS,
) -> T:
    """
    Run work(conn) in one transaction, retrying transient failures.

    Args:
        db_engine: SQLAlchemy Engine
        operation: Name used in logs and metrics
        work: Unit of work; receives the transactional connection
        max_attempts: Total attempts before giving up

    Returns:
        Whatever work returns from the committed attempt

    Raises:
        TransientStorageError: If every attempt hit a transient failure
        RentalError: Business errors raised by work, unchanged
    """
    attempt = 0

    while True:
        attempt += 1
        start_time = time.time()
        try:
            with db_engine.begin() as conn:
                result = work(conn)
            transaction_duration.labels(operation=operation).observe(time.time() - start_time)
            return result

        except (DBAPIError, ConcurrentModificationError) as err:
            if not is_transient_error(err):
                raise

            transaction_retries.labels(operation=operation).inc()
            logger.warning(
                "transaction_aborted",
                operation=operation,
                attempt=attempt,
                max_attempts=max_attempts,
                error=str(err).splitlines()[0] if str(err) else type(err).__name__,
            )
            if attempt >= max_attempts:
                raise TransientStorageError(
                    "The booking store is busy, please try again",
                    details={"operation": operation},
                ) from err
            time.sleep(TX_BACKOFF_SECONDS * attempt)
