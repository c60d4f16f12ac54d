# Overview: Service-layer operations for material receipts (stock lots).

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import (
    Material,
    MaterialReceipt,
    OP_RECEIPT_CREATE,
    OP_RECEIPT_UPDATE,
    OP_RECEIPT_DELETE,
)
from ..decimal_utils import ZERO, round_money, quantity_str
from ..time_utils import utcnow, to_utc_naive
from ..validation import ConflictError, ValidationError
from .concurrency import run_with_retry, lock_for_update
from .history_service import log_operation
from .listing import paginate
from .material_service import add_material
from .stock_ledger import allocated_by_receipt, receipt_remaining
from .tenant_service import get_scoped, scoped_query
"""
Receipt edit rules (authoritative)

- Before any write-off references a receipt, every field is editable.
- Once used: material, unit_price and receipt_date are frozen, and quantity
  may not drop below the allocated amount. batch_number, purchase_source,
  comment and total_price stay editable.
- A used receipt cannot be deleted.
"""

FROZEN_ONCE_USED = ("material_id", "unit_price", "receipt_date")


def _serialize(receipt: MaterialReceipt, material: Material, allocated: dict[int, Decimal]) -> dict:
    used = allocated.get(receipt.id, ZERO)
    data = receipt.to_dict()
    data.update({
        "material_name": material.name,
        "material_unit": material.unit,
        "material_color": material.color,
        "used_quantity": quantity_str(used),
        "remaining_quantity": quantity_str(receipt_remaining(receipt, allocated)),
        "has_used_materials": used > 0,
    })
    return data


def get_receipt(org_id: int, receipt_id: int) -> dict:
    receipt = get_scoped(MaterialReceipt, receipt_id, org_id, label="Receipt")
    material = db.session.query(Material).filter(Material.id == receipt.material_id).first()
    return _serialize(receipt, material, allocated_by_receipt([receipt.id]))


def list_receipts(
    org_id: int,
    *,
    material_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Newest first, with remaining quantity per receipt."""
    q = (
        scoped_query(MaterialReceipt, org_id)
        .join(Material, Material.id == MaterialReceipt.material_id)
        .add_entity(Material)
    )
    if material_id is not None:
        q = q.filter(MaterialReceipt.material_id == material_id)
    if date_from is not None:
        q = q.filter(MaterialReceipt.receipt_date >= date_from)
    if date_to is not None:
        q = q.filter(MaterialReceipt.receipt_date <= date_to)
    q = q.order_by(MaterialReceipt.receipt_date.desc(), MaterialReceipt.id.desc())

    result = paginate(q, page=page, per_page=per_page, serialize=lambda row: row)
    rows = result["items"]
    allocated = allocated_by_receipt(r.id for r, _ in rows)
    result["items"] = [_serialize(r, m, allocated) for r, m in rows]
    return result


def create_receipt(
    *,
    org_id: int,
    user_id: int | None,
    patch: dict,
    new_material: dict | None = None,
) -> dict:
    """
    Record a new lot. With `new_material` (a validated material patch) the
    material is created in the same transaction and the receipt attached to it.
    """
    def _op() -> int:
        if new_material is not None:
            material = add_material(org_id=org_id, user_id=user_id, patch=new_material)
        else:
            if patch.get("material_id") is None:
                raise ValidationError("material_id or new_material is required")
            material = get_scoped(Material, patch["material_id"], org_id, label="Material")

        fields = {k: v for k, v in patch.items() if k != "material_id"}
        receipt = MaterialReceipt(org_id=org_id, material_id=material.id, **fields)
        if receipt.receipt_date is None:
            receipt.receipt_date = utcnow()
        if receipt.total_price is None:
            receipt.total_price = round_money(Decimal(receipt.quantity) * Decimal(receipt.unit_price))
        db.session.add(receipt)
        db.session.flush()

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_RECEIPT_CREATE,
            entity_type="MaterialReceipt",
            entity_id=receipt.id,
            entity_name=material.name,
            quantity=receipt.quantity,
            amount=receipt.total_price,
            description=(
                f"Received {quantity_str(receipt.quantity)} {material.unit} of {material.name} "
                f"at {receipt.unit_price}"
            ),
            details={"material_id": material.id},
        )
        db.session.commit()
        return receipt.id

    receipt_id = run_with_retry(_op)
    current_app.logger.info("Created receipt %s in org %s", receipt_id, org_id)
    return get_receipt(org_id, receipt_id)


def _changes(receipt: MaterialReceipt, patch: dict) -> set[str]:
    changed = set()
    for key, value in patch.items():
        current = getattr(receipt, key)
        if key == "receipt_date" and current is not None and value is not None:
            current, value = to_utc_naive(current), to_utc_naive(value)
        if isinstance(current, Decimal) or isinstance(value, Decimal):
            if current is None or value is None or Decimal(current) != Decimal(value):
                changed.add(key)
        elif current != value:
            changed.add(key)
    return changed


def update_receipt(*, org_id: int, user_id: int | None, receipt_id: int, patch: dict) -> dict:
    def _op() -> None:
        receipt = get_scoped(
            MaterialReceipt, receipt_id, org_id,
            label="Receipt",
            query=lock_for_update(db.session.query(MaterialReceipt)),
        )
        used = allocated_by_receipt([receipt.id]).get(receipt.id, ZERO)
        changed = _changes(receipt, patch)

        if used > 0:
            frozen = sorted(k for k in FROZEN_ONCE_USED if k in changed)
            if frozen:
                raise ConflictError(
                    f"Receipt is already used in production; cannot change: {', '.join(frozen)}"
                )
            if "quantity" in patch and Decimal(patch["quantity"]) < used:
                raise ConflictError(
                    f"Cannot reduce quantity below the amount already used ({quantity_str(used)})"
                )

        if "material_id" in changed:
            get_scoped(Material, patch["material_id"], org_id, label="Material")

        for key, value in patch.items():
            setattr(receipt, key, value)

        if "total_price" not in patch:
            receipt.total_price = round_money(Decimal(receipt.quantity) * Decimal(receipt.unit_price))

        material = db.session.query(Material).filter(Material.id == receipt.material_id).first()
        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_RECEIPT_UPDATE,
            entity_type="MaterialReceipt",
            entity_id=receipt.id,
            entity_name=material.name,
            quantity=receipt.quantity,
            amount=receipt.total_price,
            description=f"Updated receipt of {material.name}",
            details={"fields": sorted(changed)},
        )
        db.session.commit()

    run_with_retry(_op)
    return get_receipt(org_id, receipt_id)


def delete_receipt(*, org_id: int, user_id: int | None, receipt_id: int) -> None:
    def _op() -> None:
        receipt = get_scoped(
            MaterialReceipt, receipt_id, org_id,
            label="Receipt",
            query=lock_for_update(db.session.query(MaterialReceipt)),
        )
        if allocated_by_receipt([receipt.id]).get(receipt.id, ZERO) > 0:
            raise ConflictError("Receipt is already used in production and cannot be deleted")

        material = db.session.query(Material).filter(Material.id == receipt.material_id).first()
        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_RECEIPT_DELETE,
            entity_type="MaterialReceipt",
            entity_id=receipt.id,
            entity_name=material.name,
            quantity=receipt.quantity,
            amount=receipt.total_price,
            description=f"Deleted receipt of {material.name}, {quantity_str(receipt.quantity)} {material.unit}",
        )
        db.session.delete(receipt)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Deleted receipt %s in org %s", receipt_id, org_id)
