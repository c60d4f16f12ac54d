# Overview: Operation history; the append-only audit trail of every mutating workflow.

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ..extensions import db
from ..models import OperationHistory
from ..time_utils import utcnow
from ..validation import NotFoundError
from .listing import paginate
from .tenant_service import scoped_query
"""
Operation History Invariants (authoritative)

- Rows are written inside the same DB transaction as the mutation they record
  (add + flush, never commit). A failed mutation leaves no history row.
- No deletes. The only update is mark_cancelled().
- details is a JSON document; Decimals are serialized as strings.
"""


def _json_default(value: Any):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def log_operation(
    *,
    org_id: int,
    user_id: int | None,
    operation_type: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    entity_name: str | None = None,
    quantity: Optional[Decimal] = None,
    amount: Optional[Decimal] = None,
    description: str | None = None,
    details: dict | None = None,
    related_operation_id: int | None = None,
) -> OperationHistory:
    """Append one history row to the caller's transaction and return it (id assigned)."""
    entry = OperationHistory(
        org_id=org_id,
        user_id=user_id,
        operation_type=operation_type,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        quantity=quantity,
        amount=amount,
        description=description,
        details=json.dumps(details, default=_json_default) if details is not None else None,
        related_operation_id=related_operation_id,
        is_cancelled=False,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def find_latest(org_id: int, *, operation_type: str, entity_type: str, entity_id: int) -> OperationHistory | None:
    """Most recent non-cancelled entry of a type for an entity."""
    return (
        scoped_query(OperationHistory, org_id)
        .filter(
            OperationHistory.operation_type == operation_type,
            OperationHistory.entity_type == entity_type,
            OperationHistory.entity_id == entity_id,
            OperationHistory.is_cancelled.is_(False),
        )
        .order_by(OperationHistory.created_at.desc(), OperationHistory.id.desc())
        .first()
    )


def mark_cancelled(org_id: int, history_id: int) -> OperationHistory:
    """Flag a recorded operation as reversed. Idempotent; never commits."""
    entry = scoped_query(OperationHistory, org_id).filter(OperationHistory.id == history_id).first()
    if entry is None:
        raise NotFoundError("History entry not found")
    if not entry.is_cancelled:
        entry.is_cancelled = True
        entry.cancelled_at = utcnow()
        db.session.flush()
    return entry


def list_history(
    org_id: int,
    *,
    operation_type: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    include_cancelled: bool = True,
    page: int | None = 1,
    per_page: int | None = 50,
) -> dict:
    """Newest first. Date bounds are inclusive."""
    q = scoped_query(OperationHistory, org_id)

    if operation_type:
        q = q.filter(OperationHistory.operation_type == operation_type)
    if entity_type:
        q = q.filter(OperationHistory.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(OperationHistory.entity_id == entity_id)
    if user_id is not None:
        q = q.filter(OperationHistory.user_id == user_id)
    if date_from is not None:
        q = q.filter(OperationHistory.created_at >= date_from)
    if date_to is not None:
        q = q.filter(OperationHistory.created_at <= date_to)
    if not include_cancelled:
        q = q.filter(OperationHistory.is_cancelled.is_(False))

    q = q.order_by(OperationHistory.created_at.desc(), OperationHistory.id.desc())
    return paginate(q, page=page, per_page=per_page, serialize=lambda h: h.to_dict())


def recent(org_id: int, count: int = 10) -> list[dict]:
    count = max(1, min(count, 100))
    rows = (
        scoped_query(OperationHistory, org_id)
        .order_by(OperationHistory.created_at.desc(), OperationHistory.id.desc())
        .limit(count)
        .all()
    )
    return [h.to_dict() for h in rows]
