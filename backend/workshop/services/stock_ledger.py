# Overview: Stock ledger; derives material balances and FIFO-remainder value from receipts and write-offs.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Material, MaterialReceipt, MaterialWriteOff
from ..decimal_utils import ZERO, round_money, round_quantity, money_str, quantity_str
from .tenant_service import get_scoped, scoped_query
"""
Stock Ledger Invariants (authoritative)

- Stock is never stored. current_stock = sum(receipt qty) - sum(write-off qty).
- For every receipt: sum(write-offs referencing it) <= receipt.quantity.
- For every material: current_stock >= 0.
- Value is FIFO-remainder weighted: only the unconsumed part of each receipt
  counts, at that receipt's unit price.
- Pure reads. Nothing here adds, locks or flushes rows.
"""


class LedgerInvariantError(Exception):
    """Computed stock went negative or a receipt is over-allocated. Never expected."""
    pass


@dataclass(frozen=True)
class MaterialBalance:
    material_id: int
    material_name: str
    unit: str
    color: Optional[str]
    category: Optional[str]
    total_received: Decimal
    total_written_off: Decimal
    current_stock: Decimal
    average_price: Decimal
    total_value: Decimal
    minimum_stock: Optional[Decimal]
    is_below_minimum: bool

    def to_dict(self) -> dict:
        return {
            "material_id": self.material_id,
            "material_name": self.material_name,
            "unit": self.unit,
            "color": self.color,
            "category": self.category,
            "total_received": quantity_str(self.total_received),
            "total_written_off": quantity_str(self.total_written_off),
            "current_stock": quantity_str(self.current_stock),
            "average_price": money_str(self.average_price),
            "total_value": money_str(self.total_value),
            "minimum_stock": quantity_str(self.minimum_stock),
            "is_below_minimum": self.is_below_minimum,
        }


def _invariant_violation(message: str) -> LedgerInvariantError:
    current_app.logger.critical("Stock ledger invariant violated: %s", message)
    return LedgerInvariantError(message)


def allocated_by_receipt(receipt_ids: Iterable[int]) -> dict[int, Decimal]:
    """Sum of write-off quantities per receipt id (receipts without write-offs are absent)."""
    ids = list(receipt_ids)
    if not ids:
        return {}
    rows = (
        db.session.query(MaterialWriteOff.material_receipt_id, func.sum(MaterialWriteOff.quantity))
        .filter(MaterialWriteOff.material_receipt_id.in_(ids))
        .group_by(MaterialWriteOff.material_receipt_id)
        .all()
    )
    return {receipt_id: Decimal(total or 0) for receipt_id, total in rows}


def receipt_remaining(receipt: MaterialReceipt, allocated: dict[int, Decimal] | None = None) -> Decimal:
    if allocated is None:
        allocated = allocated_by_receipt([receipt.id])
    return Decimal(receipt.quantity) - allocated.get(receipt.id, ZERO)


def receipts_in_fifo_order(org_id: int, material_id: int):
    """Base query: the material's receipts, oldest first, ties broken by id."""
    return (
        scoped_query(MaterialReceipt, org_id)
        .filter(MaterialReceipt.material_id == material_id)
        .order_by(MaterialReceipt.receipt_date.asc(), MaterialReceipt.id.asc())
    )


def _compute_balance(
    material: Material,
    receipts: list[MaterialReceipt],
    allocated: dict[int, Decimal],
) -> MaterialBalance:
    total_received = ZERO
    total_written_off = ZERO
    total_value = ZERO

    for receipt in receipts:
        quantity = Decimal(receipt.quantity)
        used = allocated.get(receipt.id, ZERO)
        remaining = quantity - used
        if remaining < 0:
            raise _invariant_violation(
                f"receipt {receipt.id} of material {material.id} is over-allocated "
                f"({used} written off from {quantity})"
            )

        total_received += quantity
        total_written_off += used
        if remaining > 0:
            total_value += remaining * Decimal(receipt.unit_price)

    current_stock = total_received - total_written_off
    if current_stock < 0:
        raise _invariant_violation(f"material {material.id} has negative stock {current_stock}")

    average_price = total_value / current_stock if current_stock > 0 else ZERO

    minimum = Decimal(material.minimum_stock) if material.minimum_stock is not None else None

    return MaterialBalance(
        material_id=material.id,
        material_name=material.name,
        unit=material.unit,
        color=material.color,
        category=material.category,
        total_received=round_quantity(total_received),
        total_written_off=round_quantity(total_written_off),
        current_stock=round_quantity(current_stock),
        average_price=round_money(average_price),
        total_value=round_money(total_value),
        minimum_stock=minimum,
        is_below_minimum=minimum is not None and current_stock < minimum,
    )


def get_balance(org_id: int, material_id: int) -> MaterialBalance:
    """
    Balance of one material in the caller's organization.

    Raises NotFoundError for unknown or foreign material ids.
    """
    material = get_scoped(Material, material_id, org_id, label="Material")
    receipts = receipts_in_fifo_order(org_id, material.id).all()
    allocated = allocated_by_receipt(r.id for r in receipts)
    return _compute_balance(material, receipts, allocated)


def get_balances(org_id: int, materials: list[Material]) -> dict[int, MaterialBalance]:
    """Balances for already-loaded materials, computed with two queries in total."""
    if not materials:
        return {}
    by_id = {m.id: m for m in materials}

    receipts = (
        scoped_query(MaterialReceipt, org_id)
        .filter(MaterialReceipt.material_id.in_(list(by_id)))
        .order_by(MaterialReceipt.receipt_date.asc(), MaterialReceipt.id.asc())
        .all()
    )
    allocated = allocated_by_receipt(r.id for r in receipts)

    grouped: dict[int, list[MaterialReceipt]] = {mid: [] for mid in by_id}
    for receipt in receipts:
        grouped[receipt.material_id].append(receipt)

    return {mid: _compute_balance(by_id[mid], grouped[mid], allocated) for mid in by_id}


def get_all_balances(org_id: int, include_zero_stock: bool = False) -> list[MaterialBalance]:
    """Balances of every non-archived material, ordered by name."""
    materials = (
        scoped_query(Material, org_id)
        .filter(Material.is_archived.is_(False))
        .order_by(Material.name.asc(), Material.id.asc())
        .all()
    )
    balances = get_balances(org_id, materials)
    result = [balances[m.id] for m in materials]
    if not include_zero_stock:
        result = [b for b in result if b.current_stock > 0]
    return result
