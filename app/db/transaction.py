"""
Scoped transaction helper for multi-row writes.

Every write path that touches more than one row (regularization decisions,
device batches, day close) goes through run_in_transaction so the session is
committed on success and rolled back on every exit path, including exceptions.
"""
import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE codes for serialization failure and deadlock (PostgreSQL)
_TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
_TRANSIENT_MESSAGES = (
    "deadlock",
    "could not serialize",
    "database is locked",
    "lock wait timeout",
)


def is_transient_error(exc: BaseException, retry_on: Tuple[Type[BaseException], ...]) -> bool:
    """
    Decide whether a failed attempt may be re-run from scratch.

    IntegrityError is only transient when the caller opted in via ``retry_on``
    (unique-key races on natural keys). OperationalError is transient for
    deadlocks, serialization failures, lock timeouts and dropped connections.
    """
    if not isinstance(exc, retry_on):
        return False
    if isinstance(exc, IntegrityError):
        return True
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        sqlstate = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
        if sqlstate in _TRANSIENT_SQLSTATES:
            return True
        message = str(exc.orig).lower()
        return any(fragment in message for fragment in _TRANSIENT_MESSAGES)
    return False


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    *,
    max_retries: Optional[int] = None,
    retry_on: Tuple[Type[BaseException], ...] = (OperationalError,),
    ctx: Optional[str] = None,
) -> T:
    """
    Run ``work(db)`` in one transaction and commit it.

    Args:
        db: Database session (a transaction is begun implicitly on first use)
        work: Callable doing the reads and writes; must not commit itself
        max_retries: Attempts before giving up (default settings.TRANSACTION_MAX_RETRIES)
        retry_on: Exception classes eligible for a retry, see is_transient_error
        ctx: Label used in the transaction log lines

    Returns:
        Whatever ``work`` returned

    Raises:
        TransientError: A retryable failure persisted through every attempt
        Exception: Any other error raised by ``work`` or the commit, after rollback
    """
    attempts = max_retries if max_retries is not None else settings.TRANSACTION_MAX_RETRIES
    label = ctx or getattr(work, "__name__", "transaction")

    for attempt in range(1, attempts + 1):
        logger.debug("TXN_START: ctx=%s attempt=%s", label, attempt)
        try:
            result = work(db)
            db.commit()
        except Exception as exc:
            logger.info(
                "TXN_ERROR: ctx=%s attempt=%s error=%s: %s",
                label, attempt, type(exc).__name__, exc,
            )
            db.rollback()
            logger.debug("TXN_ABORT: ctx=%s attempt=%s", label, attempt)

            if not is_transient_error(exc, retry_on):
                raise
            if attempt < attempts:
                logger.warning("TXN_RETRY: ctx=%s attempt=%s", label, attempt)
                continue

            logger.error("TXN_FAIL: ctx=%s attempts=%s error=%s", label, attempts, exc)
            raise TransientError(
                detail=f"Temporary database conflict, please retry ({label})"
            ) from exc

        logger.debug("TXN_COMMIT: ctx=%s attempt=%s", label, attempt)
        return result

    # Only reachable when attempts < 1, which settings validation forbids
    raise TransientError(detail=f"Transaction was not attempted ({label})")
