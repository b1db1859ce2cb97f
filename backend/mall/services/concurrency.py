# Overview: Transaction and retry helpers shared by the service layer.

from __future__ import annotations

import logging
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageFailureError

logger = logging.getLogger(__name__)


@contextmanager
def atomic(session):
    """
    Run a block as one transaction: commit on success, roll back otherwise.

    Rolls back on BaseException too, so an interrupted or cancelled caller
    never leaves a half-written aggregate behind.
    """
    try:
        yield session
        session.commit()
    except BaseException:
        session.rollback()
        raise


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic locking conflicts). func must be safe to
    re-run after a rollback.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Retrying after transient database error (attempt %d/%d): %s",
                           attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


@contextmanager
def storage_errors(session, operation: str, **identifiers):
    """Re-raise SQLAlchemyError as StorageFailureError tagged with the operation."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        raise StorageFailureError(operation, exc, **identifiers) from exc
