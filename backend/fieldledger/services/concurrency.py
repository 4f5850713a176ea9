# Overview: Transaction boundary and retry policy for reconciliation writes.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import DisconnectionError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientError
from ..extensions import db

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (OperationalError, StaleDataError, PoolTimeoutError, DisconnectionError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id columns
    on Account and Product turn a lost update into a StaleDataError instead.
    """
    return query.with_for_update()


def run_in_transaction(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute func() and commit as one unit of work.

    Retries the whole unit on RETRYABLE_ERRORS, re-reading state each time;
    pool checkout timeouts count as contention. After the retry budget is
    spent, raises TransientError. Any other error rolls the session back and
    propagates unchanged, so no partial write of the unit survives.
    """
    if attempts is None:
        attempts = current_app.config.get("LEDGER_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LEDGER_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            logger.warning(
                "Ledger transaction conflict (attempt %s/%s): %s",
                attempt + 1,
                attempts,
                exc.__class__.__name__,
            )
            if attempt >= attempts - 1:
                raise TransientError(
                    "Ledger store busy; retries exhausted",
                    details={"attempts": attempts, "cause": exc.__class__.__name__},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise TransientError("Ledger transaction was not attempted", details={"attempts": attempts})
