# Overview: Transaction helpers shared by the services: row locks, retries, and all-or-nothing units of work.

from __future__ import annotations

import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError


class ConcurrencyConflictError(ConflictError):
    """Another transaction changed or locked the same rows; the client must resubmit."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (it serializes writers on the
    whole database instead), but PostgreSQL/MySQL will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Business errors roll back and propagate immediately.
    Only for idempotent CRUD; stock consumption uses unit_of_work instead.
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
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            # Business errors may fire after a flush; never leave that work pending
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


@contextmanager
def unit_of_work():
    """
    All-or-nothing transaction scope.

    Commits when the block finishes, rolls back every flushed change when
    anything inside raises. Lock and deadlock errors surface as
    ConcurrencyConflictError without retrying.
    """
    try:
        yield db.session
        db.session.commit()
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        raise ConcurrencyConflictError(
            "The operation conflicted with a concurrent change; please resubmit"
        ) from exc
    except Exception:
        db.session.rollback()
        raise
