# Overview: Row locking, retry and guarded-UPDATE helpers shared by the ledger services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; Postgres/MySQL honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``func`` and retry on lock contention (OperationalError) or an
    optimistic version conflict (StaleDataError), rolling back between tries.

    Other exceptions propagate on the first failure.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def guarded_update(query, values: dict) -> int:
    """
    Execute a single UPDATE over ``query``'s WHERE clause and commit.

    The WHERE clause carries the guard (e.g. ``stock >= q``), so the check and
    the write happen in one statement with no read in between. Returns the
    affected row count; 0 means the guard rejected the change.
    """
    def _op():
        rowcount = query.update(values, synchronize_session=False)
        db.session.commit()
        return rowcount

    return run_with_retry(_op)
