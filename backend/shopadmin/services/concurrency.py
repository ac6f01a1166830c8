# Overview: Transaction helpers shared by the services and their callers.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers at the
    database level instead), but other DBs will honor it.
    """
    return query.with_for_update()


def lock_row(model, row_id: int):
    """
    Load one row by primary key under FOR UPDATE, or None.

    On SQLite a no-op UPDATE of the row takes the database write lock
    instead, held until the caller commits or rolls back.
    """
    if db.session.get_bind().dialect.name == "sqlite":
        db.session.execute(
            db.text(f"UPDATE {model.__tablename__} SET id = id WHERE id = :row_id"),
            {"row_id": row_id},
        )
    query = db.session.query(model).filter(model.id == row_id).populate_existing()
    return lock_for_update(query).first()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors are never retried; they
    propagate on the first attempt.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning("Transient database conflict (attempt %d/%d): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func() and commit as one unit, retrying the whole unit on transient
    conflicts. Any other exception rolls back and propagates.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError):
            raise
        except Exception:
            db.session.rollback()
            raise
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
