# Overview: Atomic per-organization, per-day batch number allocation.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import BatchSequence
from ..time_utils import day_stamp


class BatchSequenceError(Exception):
    """Raised when batch sequence operations fail."""
    pass


def _bump(org_id: int, stamp: str) -> int | None:
    stmt = (
        update(BatchSequence)
        .where(
            BatchSequence.org_id == org_id,
            BatchSequence.sequence_date == stamp,
        )
        .values(next_number=BatchSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(BatchSequence.next_number)
        .filter_by(org_id=org_id, sequence_date=stamp)
        .scalar()
    )
    return current - 1


def next_batch_number(org_id: int, on_date: datetime) -> str:
    """
    Allocate the next batch number "P{YYYYMMDD}-{NNN}" for an organization and day.

    Runs inside the caller's transaction; the UPDATE holds the counter row
    until that transaction ends, so two concurrent productions never share a
    number. The first number of a day is created under a savepoint: losing
    the insert race just falls back to the UPDATE.
    """
    if not org_id:
        raise BatchSequenceError("org_id is required")

    stamp = day_stamp(on_date)

    next_num = _bump(org_id, stamp)
    if next_num is None:
        try:
            with db.session.begin_nested():
                db.session.add(BatchSequence(org_id=org_id, sequence_date=stamp, next_number=2))
            next_num = 1
        except IntegrityError:
            next_num = _bump(org_id, stamp)
            if next_num is None:
                raise

    return f"P{stamp}-{next_num:03d}"
