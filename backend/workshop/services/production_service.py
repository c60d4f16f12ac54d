# Overview: Production workflow; creation with FIFO consumption, cancellation, deletion and reads.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    Material,
    MaterialWriteOff,
    Product,
    Production,
    FinishedProduct,
    FINISHED_STATUS_IN_STOCK,
    FINISHED_STATUS_SOLD,
    FINISHED_STATUS_WRITTEN_OFF,
    OP_PRODUCTION_CREATE,
    OP_PRODUCTION_CANCEL,
    OP_PRODUCTION_DELETE,
)
from ..decimal_utils import ZERO, round_money, round_quantity, money_str, quantity_str
from ..time_utils import utcnow, day_stamp
from ..validation import ConflictError, ValidationError
from .availability_service import check_availability, AvailabilityResult
from .concurrency import unit_of_work, lock_for_update
from .fifo_allocator import allocate, InsufficientStockError
from .history_service import log_operation, find_latest, mark_cancelled
from .listing import paginate
from .recipe_service import get_recipe
from .sequence_service import next_batch_number
from .tenant_service import get_scoped, scoped_query
"""
Production Workflow Invariants (authoritative)

- Creation is all-or-nothing: batch number, Production row, write-offs for
  every recipe line, one InStock FinishedProduct per unit, QR payload and the
  history entry commit together or not at all.
- cost_per_unit / total_cost / recommended_price_per_unit are snapshots of the
  product's cached cost fields at creation and are never recomputed.
- Cancel and delete require every finished unit to still be InStock. They
  remove write-offs (returning stock to the ledger) and finished units.
  Cancel keeps the Production row; delete removes it.
- Nothing here retries. A lock conflict surfaces as a 409 for the client to resubmit.
"""

MAX_PRODUCTION_QUANTITY = 10_000


class ProductionStateError(ConflictError):
    """Production cannot be cancelled/deleted in its current state."""
    pass


class MaterialShortageError(ConflictError):
    """Availability check failed before any mutation."""

    def __init__(self, availability: AvailabilityResult):
        self.availability = availability
        super().__init__("Insufficient materials: " + "; ".join(availability.warnings))


def build_qr_code(production: Production) -> str:
    """Pipe-delimited display payload: PROD|batch|product_id|quantity|YYYYMMDD."""
    return (
        f"PROD|{production.batch_number}|{production.product_id}|"
        f"{production.quantity}|{day_stamp(production.production_date)}"
    )


def _require_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if quantity > MAX_PRODUCTION_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_PRODUCTION_QUANTITY} units per production")


def create_production(
    *,
    org_id: int,
    user_id: int | None,
    product_id: int,
    quantity: int,
    production_date: datetime | None = None,
    comment: str | None = None,
    photo_path: str | None = None,
    now: datetime | None = None,
) -> Production:
    """
    Produce `quantity` units of a product, consuming materials oldest lot first.

    Raises MaterialShortageError when the advisory check fails (no mutation),
    InsufficientStockError when a concurrent consumer won the race at
    allocation time, and ConcurrencyConflictError on database lock conflicts.
    In every failure case nothing is persisted.
    """
    _require_quantity(quantity)
    now = now or utcnow()

    availability = check_availability(org_id, product_id, quantity)
    if not availability.can_produce:
        raise MaterialShortageError(availability)

    names = {m.material_id: m.material_name for m in availability.materials}

    with unit_of_work():
        product = get_scoped(Product, product_id, org_id, label="Product")

        batch_number = next_batch_number(org_id, now)

        cost_per_unit = round_money(product.estimated_cost or ZERO)
        production = Production(
            org_id=org_id,
            product_id=product.id,
            quantity=quantity,
            production_date=production_date or now,
            batch_number=batch_number,
            cost_per_unit=cost_per_unit,
            total_cost=round_money(cost_per_unit * quantity),
            recommended_price_per_unit=product.recommended_price,
            comment=comment,
            photo_path=photo_path,
            is_cancelled=False,
            created_by_user_id=user_id,
        )
        db.session.add(production)
        db.session.flush()

        for material_id, per_unit in get_recipe(org_id, product.id):
            try:
                allocate(org_id, production.id, material_id, round_quantity(per_unit * quantity))
            except InsufficientStockError as exc:
                raise InsufficientStockError(
                    exc.material_id, exc.required, exc.available, names.get(material_id)
                ) from exc

        for _ in range(quantity):
            db.session.add(FinishedProduct(
                org_id=org_id,
                production_id=production.id,
                status=FINISHED_STATUS_IN_STOCK,
                cost_per_unit=production.cost_per_unit,
                recommended_price=production.recommended_price_per_unit,
            ))

        production.qr_code = build_qr_code(production)

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCTION_CREATE,
            entity_type="Production",
            entity_id=production.id,
            entity_name=product.name,
            quantity=Decimal(quantity),
            amount=production.total_cost,
            description=f"Produced {quantity} x {product.name}, batch {batch_number}",
            details={"product_id": product.id, "batch_number": batch_number},
        )

    current_app.logger.info(
        "Created production %s (batch %s, %d units of product %s) in org %s",
        production.id, batch_number, quantity, product_id, org_id,
    )
    return production


def _load_for_reversal(org_id: int, production_id: int, action: str) -> Production:
    production = get_scoped(
        Production, production_id, org_id,
        label="Production",
        query=lock_for_update(db.session.query(Production)),
    )

    # Held until commit; unit transitions lock the parent production first, same order
    units = lock_for_update(
        db.session.query(FinishedProduct).filter(FinishedProduct.production_id == production.id)
    ).all()
    not_in_stock = sum(1 for unit in units if unit.status != FINISHED_STATUS_IN_STOCK)
    if not_in_stock:
        raise ProductionStateError(
            f"Cannot {action} production: {not_in_stock} unit(s) already sold or written off"
        )
    return production


def _remove_children(production_id: int) -> None:
    db.session.query(MaterialWriteOff).filter(
        MaterialWriteOff.production_id == production_id
    ).delete(synchronize_session=False)
    db.session.query(FinishedProduct).filter(
        FinishedProduct.production_id == production_id
    ).delete(synchronize_session=False)


def _product_name(production: Production) -> str | None:
    return db.session.query(Product.name).filter(Product.id == production.product_id).scalar()


def cancel_production(*, org_id: int, user_id: int | None, production_id: int) -> Production:
    """
    Undo a production: write-offs and finished units are removed, the row is kept as cancelled.

    Refused for an already-cancelled production and while any unit is Sold or WrittenOff.
    """
    with unit_of_work():
        production = _load_for_reversal(org_id, production_id, "cancel")
        if production.is_cancelled:
            raise ProductionStateError("Production is already cancelled")

        _remove_children(production.id)
        production.is_cancelled = True
        production.cancelled_at = utcnow()

        created = find_latest(
            org_id, operation_type=OP_PRODUCTION_CREATE, entity_type="Production", entity_id=production.id
        )
        if created is not None:
            mark_cancelled(org_id, created.id)

        name = _product_name(production)
        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCTION_CANCEL,
            entity_type="Production",
            entity_id=production.id,
            entity_name=name,
            quantity=Decimal(production.quantity),
            amount=production.total_cost,
            description=f"Cancelled production of {name}, batch {production.batch_number}",
            related_operation_id=created.id if created is not None else None,
        )

    current_app.logger.info("Cancelled production %s in org %s", production_id, org_id)
    return production


def delete_production(*, org_id: int, user_id: int | None, production_id: int) -> None:
    """Hard delete under the same guard as cancel; cancelled productions may be deleted too."""
    with unit_of_work():
        production = _load_for_reversal(org_id, production_id, "delete")

        _remove_children(production.id)

        created = find_latest(
            org_id, operation_type=OP_PRODUCTION_CREATE, entity_type="Production", entity_id=production.id
        )
        if created is not None:
            mark_cancelled(org_id, created.id)

        name = _product_name(production)
        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCTION_DELETE,
            entity_type="Production",
            entity_id=production.id,
            entity_name=name,
            quantity=Decimal(production.quantity),
            amount=production.total_cost,
            description=f"Deleted production of {name}, batch {production.batch_number}",
            related_operation_id=created.id if created is not None else None,
        )
        db.session.delete(production)

    current_app.logger.info("Deleted production %s in org %s", production_id, org_id)


def _status_counts(production_ids: list[int]) -> dict[int, dict[str, int]]:
    counts: dict[int, dict[str, int]] = defaultdict(lambda: {
        FINISHED_STATUS_IN_STOCK: 0, FINISHED_STATUS_SOLD: 0, FINISHED_STATUS_WRITTEN_OFF: 0,
    })
    if not production_ids:
        return counts
    rows = (
        db.session.query(FinishedProduct.production_id, FinishedProduct.status, func.count(FinishedProduct.id))
        .filter(FinishedProduct.production_id.in_(production_ids))
        .group_by(FinishedProduct.production_id, FinishedProduct.status)
        .all()
    )
    for production_id, status, count in rows:
        counts[production_id][status] = count
    return counts


def _with_counts(data: dict, counts: dict[str, int]) -> dict:
    data["in_stock_count"] = counts[FINISHED_STATUS_IN_STOCK]
    data["sold_count"] = counts[FINISHED_STATUS_SOLD]
    data["written_off_count"] = counts[FINISHED_STATUS_WRITTEN_OFF]
    return data


def material_consumption(production_id: int) -> list[dict]:
    """Write-offs grouped per material with the quantity-weighted unit price."""
    rows = (
        db.session.query(MaterialWriteOff, Material)
        .join(Material, Material.id == MaterialWriteOff.material_id)
        .filter(MaterialWriteOff.production_id == production_id)
        .order_by(MaterialWriteOff.material_id.asc(), MaterialWriteOff.id.asc())
        .all()
    )

    grouped: dict[int, dict] = {}
    for write_off, material in rows:
        entry = grouped.setdefault(material.id, {
            "material_id": material.id,
            "material_name": material.name,
            "material_unit": material.unit,
            "quantity": ZERO,
            "total": ZERO,
            "lots": [],
        })
        quantity = Decimal(write_off.quantity)
        entry["quantity"] += quantity
        entry["total"] += quantity * Decimal(write_off.unit_price)
        entry["lots"].append(write_off.to_dict())

    result = []
    for entry in grouped.values():
        quantity = entry["quantity"]
        unit_price = entry["total"] / quantity if quantity > 0 else ZERO
        result.append({
            "material_id": entry["material_id"],
            "material_name": entry["material_name"],
            "material_unit": entry["material_unit"],
            "quantity": quantity_str(quantity),
            "unit_price": money_str(unit_price),
            "total_price": money_str(entry["total"]),
            "lots": entry["lots"],
        })
    return result


def actual_material_cost(production_id: int) -> Decimal:
    total = (
        db.session.query(func.coalesce(func.sum(MaterialWriteOff.quantity * MaterialWriteOff.unit_price), 0))
        .filter(MaterialWriteOff.production_id == production_id)
        .scalar()
    )
    return round_money(total or ZERO)


def get_production(org_id: int, production_id: int) -> dict:
    production = get_scoped(Production, production_id, org_id, label="Production")
    product = db.session.query(Product).filter(Product.id == production.product_id).first()

    data = production.to_dict()
    data["product_name"] = product.name if product else None
    data["product_category"] = product.category if product else None
    data["material_write_offs"] = material_consumption(production.id)

    material_cost = actual_material_cost(production.id)
    data["material_cost"] = money_str(material_cost)
    data["material_cost_per_unit"] = money_str(material_cost / production.quantity)

    return _with_counts(data, _status_counts([production.id])[production.id])


def list_productions(
    org_id: int,
    *,
    product_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    include_cancelled: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = scoped_query(Production, org_id)
    if not include_cancelled:
        q = q.filter(Production.is_cancelled.is_(False))
    if product_id is not None:
        q = q.filter(Production.product_id == product_id)
    if date_from is not None:
        q = q.filter(Production.production_date >= date_from)
    if date_to is not None:
        q = q.filter(Production.production_date <= date_to)
    q = q.order_by(Production.production_date.desc(), Production.id.desc())

    result = paginate(q, page=page, per_page=per_page, serialize=lambda p: p)
    rows = result["items"]

    product_ids = {p.product_id for p in rows}
    names = dict(
        db.session.query(Product.id, Product.name).filter(Product.id.in_(product_ids)).all()
    ) if product_ids else {}
    counts = _status_counts([p.id for p in rows])

    items = []
    for p in rows:
        data = p.to_dict()
        data["product_name"] = names.get(p.product_id)
        items.append(_with_counts(data, counts[p.id]))
    result["items"] = items
    return result
