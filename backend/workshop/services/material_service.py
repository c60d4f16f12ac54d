# Overview: Service-layer operations for materials; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    Material,
    MaterialReceipt,
    Product,
    RecipeItem,
    OP_MATERIAL_CREATE,
    OP_MATERIAL_UPDATE,
    OP_MATERIAL_DELETE,
)
from ..decimal_utils import quantity_str
from ..validation import ConflictError
from .concurrency import run_with_retry
from .history_service import log_operation
from .listing import paginate
from .stock_ledger import get_balances, get_balance
from .tenant_service import get_scoped, scoped_query


def _ensure_unique_identity(org_id: int, name: str, color: str | None, exclude_id: int | None = None) -> None:
    """
    Identity is (organization, name, color): name case-insensitive, missing color == "".
    """
    q = scoped_query(Material, org_id).filter(
        func.lower(Material.name) == name.lower(),
        func.coalesce(Material.color, "") == (color or ""),
    )
    if exclude_id is not None:
        q = q.filter(Material.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"Material '{name}' with color '{color or 'none'}' already exists")


def _used_in_products_count(material_id: int) -> int:
    return (
        db.session.query(func.count(func.distinct(RecipeItem.product_id)))
        .filter(RecipeItem.material_id == material_id)
        .scalar()
    ) or 0


def serialize_material(org_id: int, material: Material) -> dict:
    """Material with its live balance and the number of recipes using it."""
    data = material.to_dict()
    balance = get_balance(org_id, material.id).to_dict()
    data.update({
        "current_stock": balance["current_stock"],
        "average_price": balance["average_price"],
        "total_value": balance["total_value"],
        "is_below_minimum": balance["is_below_minimum"],
        "used_in_products_count": _used_in_products_count(material.id),
    })
    return data


def list_materials(
    org_id: int,
    *,
    search: str | None = None,
    category: str | None = None,
    include_archived: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = scoped_query(Material, org_id)
    if not include_archived:
        q = q.filter(Material.is_archived.is_(False))
    if search:
        pattern = f"%{search.strip().lower()}%"
        q = q.filter(
            func.lower(Material.name).like(pattern) | func.lower(func.coalesce(Material.category, "")).like(pattern)
        )
    if category:
        q = q.filter(Material.category == category)
    q = q.order_by(Material.name.asc(), Material.id.asc())

    result = paginate(q, page=page, per_page=per_page, serialize=lambda m: m)
    materials = result["items"]
    balances = get_balances(org_id, materials)

    items = []
    for m in materials:
        data = m.to_dict()
        balance = balances[m.id].to_dict()
        data["current_stock"] = balance["current_stock"]
        data["average_price"] = balance["average_price"]
        data["is_below_minimum"] = balance["is_below_minimum"]
        items.append(data)
    result["items"] = items
    return result


def get_material(org_id: int, material_id: int) -> dict:
    material = get_scoped(Material, material_id, org_id, label="Material")
    return serialize_material(org_id, material)


def add_material(*, org_id: int, user_id: int | None, patch: dict) -> Material:
    """Insert a material inside the caller's transaction (flush only)."""
    _ensure_unique_identity(org_id, patch["name"], patch.get("color"))

    material = Material(org_id=org_id, **patch)
    db.session.add(material)
    db.session.flush()

    log_operation(
        org_id=org_id,
        user_id=user_id,
        operation_type=OP_MATERIAL_CREATE,
        entity_type="Material",
        entity_id=material.id,
        entity_name=material.name,
        description=f"Created material: {material.name}",
    )
    return material


def create_material(*, org_id: int, user_id: int | None, patch: dict) -> dict:
    def _op() -> int:
        material = add_material(org_id=org_id, user_id=user_id, patch=patch)
        db.session.commit()
        return material.id

    material_id = run_with_retry(_op)
    current_app.logger.info("Created material %s in org %s", material_id, org_id)
    return get_material(org_id, material_id)


def update_material(*, org_id: int, user_id: int | None, material_id: int, patch: dict) -> dict:
    def _op() -> None:
        material = get_scoped(Material, material_id, org_id, label="Material")

        if "name" in patch or "color" in patch:
            _ensure_unique_identity(
                org_id,
                patch.get("name", material.name),
                patch["color"] if "color" in patch else material.color,
                exclude_id=material.id,
            )

        for key, value in patch.items():
            setattr(material, key, value)

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_MATERIAL_UPDATE,
            entity_type="Material",
            entity_id=material.id,
            entity_name=material.name,
            description=f"Updated material: {material.name}",
            details={"fields": sorted(patch.keys())},
        )
        db.session.commit()

    run_with_retry(_op)
    return get_material(org_id, material_id)


def delete_material(*, org_id: int, user_id: int | None, material_id: int) -> None:
    """Hard delete, only for a material with no receipts and no recipe references."""
    def _op() -> None:
        material = get_scoped(Material, material_id, org_id, label="Material")

        has_receipts = db.session.query(MaterialReceipt.id).filter(MaterialReceipt.material_id == material.id).first()
        in_recipes = db.session.query(RecipeItem.id).filter(RecipeItem.material_id == material.id).first()
        if has_receipts or in_recipes:
            raise ConflictError("Cannot delete a material used in receipts or recipes; archive it instead")

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_MATERIAL_DELETE,
            entity_type="Material",
            entity_id=material.id,
            entity_name=material.name,
            description=f"Deleted material: {material.name}",
        )
        db.session.delete(material)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Deleted material %s in org %s", material_id, org_id)


def set_archived(*, org_id: int, user_id: int | None, material_id: int, archived: bool) -> dict:
    def _op() -> None:
        material = get_scoped(Material, material_id, org_id, label="Material")
        if material.is_archived == archived:
            return
        material.is_archived = archived
        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_MATERIAL_UPDATE,
            entity_type="Material",
            entity_id=material.id,
            entity_name=material.name,
            description=f"{'Archived' if archived else 'Unarchived'} material: {material.name}",
        )
        db.session.commit()

    run_with_retry(_op)
    return get_material(org_id, material_id)


def list_categories(org_id: int) -> list[str]:
    rows = (
        scoped_query(Material, org_id)
        .with_entities(Material.category)
        .filter(Material.category.isnot(None), Material.category != "")
        .distinct()
        .order_by(Material.category.asc())
        .all()
    )
    return [r[0] for r in rows]


def products_using_material(org_id: int, material_id: int) -> list[dict]:
    material = get_scoped(Material, material_id, org_id, label="Material")
    rows = (
        db.session.query(Product, RecipeItem.quantity)
        .join(RecipeItem, RecipeItem.product_id == Product.id)
        .filter(Product.org_id == org_id, RecipeItem.material_id == material.id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    result = []
    for product, quantity in rows:
        data = product.to_dict()
        data["quantity_per_unit"] = quantity_str(quantity)
        result.append(data)
    return result
