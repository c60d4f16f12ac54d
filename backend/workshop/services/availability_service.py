# Overview: Read-only material availability check for a planned production.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from ..models import Material, Product, RecipeItem
from ..extensions import db
from ..decimal_utils import ZERO, round_money, round_quantity, money_str, quantity_str
from .stock_ledger import get_balances
from .tenant_service import get_scoped, scoped_query


@dataclass(frozen=True)
class MaterialAvailability:
    material_id: int
    material_name: str
    unit: str
    required: Decimal
    available: Decimal
    shortage: Decimal
    sufficient: bool

    def to_dict(self) -> dict:
        return {
            "material_id": self.material_id,
            "material_name": self.material_name,
            "unit": self.unit,
            "required": quantity_str(self.required),
            "available": quantity_str(self.available),
            "shortage": quantity_str(self.shortage),
            "sufficient": self.sufficient,
        }


@dataclass
class AvailabilityResult:
    product_id: int
    quantity: int
    can_produce: bool
    materials: list[MaterialAvailability] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    estimated_cost_per_unit: Decimal = ZERO
    estimated_total_cost: Decimal = ZERO
    recommended_price_per_unit: Optional[Decimal] = None

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "can_produce": self.can_produce,
            "materials": [m.to_dict() for m in self.materials],
            "warnings": list(self.warnings),
            "estimated_cost_per_unit": money_str(self.estimated_cost_per_unit),
            "estimated_total_cost": money_str(self.estimated_total_cost),
            "recommended_price_per_unit": money_str(self.recommended_price_per_unit),
        }


def check_availability(org_id: int, product_id: int, quantity: int) -> AvailabilityResult:
    """
    Compare every recipe line's requirement for `quantity` units with current stock.

    Side-effect free and lock-free: the answer is advisory and the allocator
    re-validates at commit time. Cost figures come from the product's cached
    estimated_cost / recommended_price, not from live lot prices, so they may
    lag behind price changes until the product cost is recalculated.
    """
    product = get_scoped(Product, product_id, org_id, label="Product")

    items = (
        db.session.query(RecipeItem)
        .filter(RecipeItem.product_id == product.id)
        .order_by(RecipeItem.id.asc())
        .all()
    )
    materials = (
        scoped_query(Material, org_id).filter(Material.id.in_([i.material_id for i in items])).all()
        if items else []
    )
    by_id = {m.id: m for m in materials}
    balances = get_balances(org_id, materials)

    cost_per_unit = round_money(product.estimated_cost or ZERO)
    result = AvailabilityResult(
        product_id=product.id,
        quantity=quantity,
        can_produce=True,
        estimated_cost_per_unit=cost_per_unit,
        estimated_total_cost=round_money(cost_per_unit * quantity),
        recommended_price_per_unit=product.recommended_price,
    )

    for item in items:
        material = by_id[item.material_id]
        required = round_quantity(Decimal(item.quantity) * quantity)
        available = balances[material.id].current_stock
        sufficient = available >= required

        result.materials.append(MaterialAvailability(
            material_id=material.id,
            material_name=material.name,
            unit=material.unit,
            required=required,
            available=available,
            shortage=max(ZERO, required - available),
            sufficient=sufficient,
        ))

        if not sufficient:
            result.can_produce = False
            result.warnings.append(
                f"Not enough '{material.name}': need {quantity_str(required)} {material.unit}, "
                f"available {quantity_str(available)} {material.unit}"
            )

    return result
