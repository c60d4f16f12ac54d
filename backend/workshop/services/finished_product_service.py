# Overview: Finished-goods units; sale, write-off, return to stock and reporting.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    FinishedProduct,
    Product,
    Production,
    FINISHED_STATUS_IN_STOCK,
    FINISHED_STATUS_SOLD,
    FINISHED_STATUS_WRITTEN_OFF,
    FINISHED_STATUSES,
    OP_SALE,
    OP_WRITE_OFF,
    OP_RETURN_TO_STOCK,
    OP_FINISHED_PRODUCT_UPDATE,
)
from ..decimal_utils import ZERO, round_money, money_str
from ..time_utils import utcnow, to_utc_z
from ..validation import ConflictError, ValidationError
from .concurrency import run_with_retry, lock_for_update
from .history_service import log_operation, find_latest, mark_cancelled
from .listing import paginate
from .tenant_service import get_scoped, scoped_query

STATUS_LABELS = {
    FINISHED_STATUS_IN_STOCK: "In stock",
    FINISHED_STATUS_SOLD: "Sold",
    FINISHED_STATUS_WRITTEN_OFF: "Written off",
}

# (from, to) pairs; everything else is rejected
ALLOWED_TRANSITIONS = frozenset({
    (FINISHED_STATUS_IN_STOCK, FINISHED_STATUS_SOLD),
    (FINISHED_STATUS_IN_STOCK, FINISHED_STATUS_WRITTEN_OFF),
    (FINISHED_STATUS_SOLD, FINISHED_STATUS_IN_STOCK),
    (FINISHED_STATUS_WRITTEN_OFF, FINISHED_STATUS_IN_STOCK),
})


class FinishedProductStateError(ConflictError):
    """Requested status change is not an allowed transition."""
    pass


def can_transition(current: str, target: str) -> bool:
    return (current, target) in ALLOWED_TRANSITIONS


def _require_transition(unit: FinishedProduct, target: str) -> None:
    if not can_transition(unit.status, target):
        if unit.status == target:
            raise FinishedProductStateError(f"Unit is already {STATUS_LABELS[target].lower()}")
        raise FinishedProductStateError(
            f"Cannot change unit from {STATUS_LABELS.get(unit.status, unit.status)} "
            f"to {STATUS_LABELS[target]}"
        )


def _lock_unit(org_id: int, unit_id: int) -> FinishedProduct:
    """
    Lock a unit for a status or detail change.

    The parent production row is locked first, the order cancel and delete
    use, so a transition and a reversal of the same production serialize.
    """
    unit = get_scoped(FinishedProduct, unit_id, org_id, label="Finished product")
    lock_for_update(
        db.session.query(Production).filter(Production.id == unit.production_id)
    ).first()
    return get_scoped(
        FinishedProduct, unit_id, org_id,
        label="Finished product",
        query=lock_for_update(db.session.query(FinishedProduct)).populate_existing(),
    )


def _context(unit: FinishedProduct) -> tuple[Production, Product]:
    production = db.session.query(Production).filter(Production.id == unit.production_id).first()
    product = db.session.query(Product).filter(Product.id == production.product_id).first()
    return production, product


def serialize_unit(unit: FinishedProduct, production: Production, product: Product) -> dict:
    data = unit.to_dict()
    data.update({
        "status_display": STATUS_LABELS.get(unit.status, unit.status),
        "product_id": product.id,
        "product_name": product.name,
        "product_category": product.category,
        "batch_number": production.batch_number,
        "production_date": to_utc_z(production.production_date),
        "qr_code": production.qr_code,
    })
    return data


def get_finished_product(org_id: int, unit_id: int) -> dict:
    unit = get_scoped(FinishedProduct, unit_id, org_id, label="Finished product")
    return serialize_unit(unit, *_context(unit))


def sell(
    *,
    org_id: int,
    user_id: int | None,
    unit_id: int,
    sale_price: Decimal,
    client: str | None = None,
    sale_date: datetime | None = None,
    comment: str | None = None,
) -> dict:
    """InStock -> Sold."""
    if sale_price is None or sale_price < 0:
        raise ValidationError("sale_price must be >= 0")

    def _op() -> dict:
        unit = _lock_unit(org_id, unit_id)
        _require_transition(unit, FINISHED_STATUS_SOLD)
        production, product = _context(unit)

        unit.status = FINISHED_STATUS_SOLD
        unit.sale_price = sale_price
        unit.client = client
        unit.sale_date = sale_date or utcnow()
        unit.comment = comment

        profit = round_money(Decimal(sale_price) - Decimal(unit.cost_per_unit))
        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_SALE,
            entity_type="FinishedProduct",
            entity_id=unit.id,
            entity_name=product.name,
            quantity=Decimal("1"),
            amount=sale_price,
            description=(
                f"Sold {product.name}, batch {production.batch_number}, "
                f"price {money_str(sale_price)}, profit {money_str(profit)}"
            ),
            details={"client": client, "profit": profit},
        )
        db.session.commit()
        return serialize_unit(unit, production, product)

    result = run_with_retry(_op)
    current_app.logger.info("Sold finished product %s in org %s", unit_id, org_id)
    return result


def write_off(
    *,
    org_id: int,
    user_id: int | None,
    unit_id: int,
    reason: str,
    comment: str | None = None,
) -> dict:
    """InStock -> WrittenOff."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    def _op() -> dict:
        unit = _lock_unit(org_id, unit_id)
        _require_transition(unit, FINISHED_STATUS_WRITTEN_OFF)
        production, product = _context(unit)

        unit.status = FINISHED_STATUS_WRITTEN_OFF
        unit.write_off_reason = reason
        unit.comment = comment
        unit.sale_date = utcnow()

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_WRITE_OFF,
            entity_type="FinishedProduct",
            entity_id=unit.id,
            entity_name=product.name,
            quantity=Decimal("1"),
            amount=unit.cost_per_unit,
            description=f"Wrote off {product.name}, batch {production.batch_number}: {reason}",
        )
        db.session.commit()
        return serialize_unit(unit, production, product)

    result = run_with_retry(_op)
    current_app.logger.info("Wrote off finished product %s in org %s", unit_id, org_id)
    return result


def return_to_stock(*, org_id: int, user_id: int | None, unit_id: int) -> dict:
    """
    Sold / WrittenOff -> InStock.

    Clears sale and write-off details and marks the reversed Sale / WriteOff
    history entry as cancelled.
    """
    def _op() -> dict:
        unit = _lock_unit(org_id, unit_id)
        _require_transition(unit, FINISHED_STATUS_IN_STOCK)
        production, product = _context(unit)

        previous = unit.status
        unit.status = FINISHED_STATUS_IN_STOCK
        unit.sale_price = None
        unit.client = None
        unit.sale_date = None
        unit.write_off_reason = None
        unit.comment = None

        reversed_type = OP_SALE if previous == FINISHED_STATUS_SOLD else OP_WRITE_OFF
        reversed_entry = find_latest(
            org_id, operation_type=reversed_type, entity_type="FinishedProduct", entity_id=unit.id
        )
        if reversed_entry is not None:
            mark_cancelled(org_id, reversed_entry.id)

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_RETURN_TO_STOCK,
            entity_type="FinishedProduct",
            entity_id=unit.id,
            entity_name=product.name,
            quantity=Decimal("1"),
            amount=unit.cost_per_unit,
            description=(
                f"Returned {product.name}, batch {production.batch_number} to stock "
                f"(was {STATUS_LABELS[previous]})"
            ),
            related_operation_id=reversed_entry.id if reversed_entry is not None else None,
        )
        db.session.commit()
        return serialize_unit(unit, production, product)

    result = run_with_retry(_op)
    current_app.logger.info("Returned finished product %s to stock in org %s", unit_id, org_id)
    return result


UNIT_DETAIL_FIELDS = {
    FINISHED_STATUS_IN_STOCK: frozenset({"comment"}),
    FINISHED_STATUS_SOLD: frozenset({"sale_price", "client", "sale_date", "comment"}),
    FINISHED_STATUS_WRITTEN_OFF: frozenset({"write_off_reason", "comment"}),
}


def update_finished_product(*, org_id: int, user_id: int | None, unit_id: int, patch: dict) -> dict:
    """
    Edit sale / write-off details. Status is only changed by the transition operations.

    Sale fields are editable on Sold units, the reason on WrittenOff units,
    the comment on any unit.
    """
    if "status" in patch:
        raise ValidationError("status cannot be changed directly")

    def _op() -> dict:
        unit = _lock_unit(org_id, unit_id)
        allowed = UNIT_DETAIL_FIELDS[unit.status]
        rejected = sorted(set(patch) - allowed)
        if rejected:
            raise ValidationError(
                f"Cannot edit {', '.join(rejected)} on a unit that is {STATUS_LABELS[unit.status].lower()}"
            )
        if unit.status == FINISHED_STATUS_SOLD and "sale_price" in patch:
            if patch["sale_price"] is None or patch["sale_price"] < 0:
                raise ValidationError("sale_price must be >= 0")
        if unit.status == FINISHED_STATUS_WRITTEN_OFF and "write_off_reason" in patch:
            if not (patch["write_off_reason"] or "").strip():
                raise ValidationError("write_off_reason is required")

        production, product = _context(unit)
        changed = {key: value for key, value in patch.items() if getattr(unit, key) != value}
        for key, value in changed.items():
            setattr(unit, key, value)

        if changed:
            log_operation(
                org_id=org_id,
                user_id=user_id,
                operation_type=OP_FINISHED_PRODUCT_UPDATE,
                entity_type="FinishedProduct",
                entity_id=unit.id,
                entity_name=product.name,
                description=(
                    f"Edited {', '.join(sorted(changed))} of {product.name}, "
                    f"batch {production.batch_number}"
                ),
                details={"fields": sorted(changed)},
            )
        db.session.commit()
        return serialize_unit(unit, production, product)

    return run_with_retry(_op)


def _filtered(org_id: int, status: str | None, product_id: int | None,
              date_from: datetime | None, date_to: datetime | None):
    q = (
        scoped_query(FinishedProduct, org_id)
        .join(Production, Production.id == FinishedProduct.production_id)
        .join(Product, Product.id == Production.product_id)
        .add_entity(Production)
        .add_entity(Product)
    )
    if status:
        if status not in FINISHED_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(FINISHED_STATUSES)}")
        q = q.filter(FinishedProduct.status == status)
    if product_id is not None:
        q = q.filter(Production.product_id == product_id)
    if date_from is not None:
        q = q.filter(Production.production_date >= date_from)
    if date_to is not None:
        q = q.filter(Production.production_date <= date_to)
    return q


def list_finished_products(
    org_id: int,
    *,
    status: str | None = None,
    product_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = _filtered(org_id, status, product_id, date_from, date_to).order_by(
        FinishedProduct.created_at.desc(), FinishedProduct.id.desc()
    )
    return paginate(q, page=page, per_page=per_page, serialize=lambda row: serialize_unit(*row))


def summary(org_id: int) -> dict:
    """Counts per status, in-stock value at cost, sales amount and profit."""
    rows = (
        scoped_query(FinishedProduct, org_id)
        .with_entities(
            FinishedProduct.status,
            func.count(FinishedProduct.id),
            func.coalesce(func.sum(FinishedProduct.cost_per_unit), 0),
            func.coalesce(func.sum(FinishedProduct.sale_price), 0),
        )
        .group_by(FinishedProduct.status)
        .all()
    )
    counts = {s: 0 for s in FINISHED_STATUSES}
    cost = {s: ZERO for s in FINISHED_STATUSES}
    sales = ZERO
    for status, count, cost_sum, sale_sum in rows:
        counts[status] = count
        cost[status] = Decimal(cost_sum)
        if status == FINISHED_STATUS_SOLD:
            sales = Decimal(sale_sum)

    return {
        "total_in_stock": counts[FINISHED_STATUS_IN_STOCK],
        "total_sold": counts[FINISHED_STATUS_SOLD],
        "total_written_off": counts[FINISHED_STATUS_WRITTEN_OFF],
        "total_in_stock_value": money_str(cost[FINISHED_STATUS_IN_STOCK]),
        "total_sales_amount": money_str(sales),
        "total_profit": money_str(sales - cost[FINISHED_STATUS_SOLD]),
    }


def list_statuses() -> list[dict]:
    return [{"value": s, "label": STATUS_LABELS[s]} for s in FINISHED_STATUSES]
