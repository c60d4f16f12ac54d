# Overview: Recipe (bill of materials) storage with full replace-on-update semantics.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Material, Product, RecipeItem
from ..decimal_utils import round_money, money_str, quantity_str
from ..validation import ValidationError, NotFoundError
from .tenant_service import get_scoped, scoped_query
from .stock_ledger import get_balances


def _recipe_rows(product_id: int) -> list[RecipeItem]:
    return (
        db.session.query(RecipeItem)
        .filter(RecipeItem.product_id == product_id)
        .order_by(RecipeItem.id.asc())
        .all()
    )


def get_recipe(org_id: int, product_id: int) -> list[tuple[int, Decimal]]:
    """(material_id, quantity_per_unit) pairs in insertion order."""
    product = get_scoped(Product, product_id, org_id, label="Product")
    return [(item.material_id, Decimal(item.quantity)) for item in _recipe_rows(product.id)]


def get_recipe_details(org_id: int, product_id: int) -> list[dict]:
    """Recipe lines with material info and the cost of each line at today's average price."""
    product = get_scoped(Product, product_id, org_id, label="Product")
    items = _recipe_rows(product.id)
    if not items:
        return []

    materials = scoped_query(Material, org_id).filter(Material.id.in_([i.material_id for i in items])).all()
    by_id = {m.id: m for m in materials}
    balances = get_balances(org_id, materials)

    result = []
    for item in items:
        material = by_id[item.material_id]
        average_price = balances[material.id].average_price
        result.append({
            "id": item.id,
            "material_id": material.id,
            "material_name": material.name,
            "material_unit": material.unit,
            "material_color": material.color,
            "quantity": quantity_str(item.quantity),
            "material_average_price": money_str(average_price),
            "item_cost": money_str(round_money(Decimal(item.quantity) * average_price)),
        })
    return result


def replace_recipe(org_id: int, product_id: int, items: list[tuple[int, Decimal]]) -> list[RecipeItem]:
    """
    Replace the product's whole recipe with `items`. No partial diffs.

    Every material must belong to the organization; quantities must be
    positive and material ids unique. Runs in the caller's transaction
    (flush only), so a failure leaves the previous recipe intact.
    """
    product = get_scoped(Product, product_id, org_id, label="Product")

    seen: set[int] = set()
    for material_id, quantity in items:
        if quantity is None or quantity <= 0:
            raise ValidationError(f"Recipe quantity for material {material_id} must be > 0")
        if material_id in seen:
            raise ValidationError(f"Material {material_id} appears more than once in the recipe")
        seen.add(material_id)

    if seen:
        found = {
            m.id for m in scoped_query(Material, org_id).filter(Material.id.in_(list(seen))).all()
        }
        missing = sorted(seen - found)
        if missing:
            raise NotFoundError(f"Material not found: {', '.join(str(m) for m in missing)}")

    db.session.query(RecipeItem).filter(RecipeItem.product_id == product.id).delete(synchronize_session=False)
    db.session.flush()

    rows = []
    for material_id, quantity in items:
        row = RecipeItem(product_id=product.id, material_id=material_id, quantity=quantity)
        db.session.add(row)
        rows.append(row)

    db.session.flush()
    return rows


def delete_recipe(product_id: int) -> None:
    db.session.query(RecipeItem).filter(RecipeItem.product_id == product_id).delete(synchronize_session=False)
