# Overview: FIFO allocation of material receipts to a production.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import MaterialWriteOff
from ..decimal_utils import ZERO, round_quantity, money_str, quantity_str
from ..validation import ConflictError
from .concurrency import lock_for_update
from .stock_ledger import allocated_by_receipt, receipts_in_fifo_order


class InsufficientStockError(ConflictError):
    """Receipts cannot cover the requested quantity; nothing was allocated."""

    def __init__(self, material_id: int, required: Decimal, available: Decimal, material_name: str | None = None):
        self.material_id = material_id
        self.material_name = material_name
        self.required = required
        self.available = available
        self.shortage = required - available
        label = material_name or f"material {material_id}"
        super().__init__(
            f"Insufficient stock of {label}: required {quantity_str(required)}, "
            f"available {quantity_str(available)}, short {quantity_str(self.shortage)}"
        )


@dataclass(frozen=True)
class WriteOffIntent:
    """One planned consumption from one receipt."""
    receipt_id: int
    material_id: int
    quantity: Decimal
    unit_price: Decimal

    @property
    def cost(self) -> Decimal:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict:
        return {
            "receipt_id": self.receipt_id,
            "material_id": self.material_id,
            "quantity": quantity_str(self.quantity),
            "unit_price": money_str(self.unit_price),
        }


def plan_allocation(org_id: int, material_id: int, required: Decimal, *, lock: bool = False) -> list[WriteOffIntent]:
    """
    Walk the material's receipts oldest first (ties by id) and plan consumption.

    Exhausted receipts are skipped. Raises InsufficientStockError when the
    receipts run out before `required` is met. Writes nothing; with lock=True
    the receipt rows stay locked until the caller's transaction ends.
    """
    required = round_quantity(required)
    if required <= 0:
        return []

    query = receipts_in_fifo_order(org_id, material_id)
    if lock:
        query = lock_for_update(query)
    receipts = query.all()

    allocated = allocated_by_receipt(r.id for r in receipts)

    remaining = required
    intents: list[WriteOffIntent] = []

    for receipt in receipts:
        if remaining <= 0:
            break

        available_in_receipt = Decimal(receipt.quantity) - allocated.get(receipt.id, ZERO)
        if available_in_receipt <= 0:
            continue

        take = min(available_in_receipt, remaining)
        intents.append(WriteOffIntent(
            receipt_id=receipt.id,
            material_id=material_id,
            quantity=take,
            unit_price=Decimal(receipt.unit_price),
        ))
        remaining -= take

    if remaining > 0:
        raise InsufficientStockError(material_id, required, required - remaining)

    return intents


def allocate(org_id: int, production_id: int, material_id: int, required: Decimal) -> list[MaterialWriteOff]:
    """
    Lock the material's receipts, re-plan against current rows and insert write-offs.

    Never commits. On InsufficientStockError no row has been added, and the
    caller's transaction is expected to roll back any earlier allocations.
    """
    intents = plan_allocation(org_id, material_id, required, lock=True)

    rows = []
    for intent in intents:
        row = MaterialWriteOff(
            production_id=production_id,
            material_receipt_id=intent.receipt_id,
            material_id=intent.material_id,
            quantity=intent.quantity,
            unit_price=intent.unit_price,  # locked in; later receipt price edits don't apply
        )
        db.session.add(row)
        rows.append(row)

    db.session.flush()

    current_app.logger.debug(
        "Allocated %s of material %s to production %s across %d receipt(s)",
        quantity_str(required), material_id, production_id, len(rows),
    )
    return rows
