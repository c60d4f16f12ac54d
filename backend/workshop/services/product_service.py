# Overview: Service-layer operations for products; CRUD, copy, archive and explicit cost/weight recalculation.

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import (
    Material,
    Product,
    RecipeItem,
    Production,
    FinishedProduct,
    FINISHED_STATUS_IN_STOCK,
    OP_PRODUCT_CREATE,
    OP_PRODUCT_UPDATE,
    OP_PRODUCT_DELETE,
)
from ..decimal_utils import ZERO, round_money, round_quantity
from ..validation import ConflictError, ValidationError
from .concurrency import run_with_retry
from .history_service import log_operation
from .listing import paginate
from .recipe_service import replace_recipe, get_recipe_details, delete_recipe
from .stock_ledger import get_balances
from .tenant_service import get_scoped, scoped_query

KILOGRAM_UNITS = frozenset({"kg", "kgs", "kilogram", "kilograms", "кг", "килограмм", "килограммы"})
GRAM_UNITS = frozenset({"g", "gr", "gram", "grams", "г", "гр", "грамм", "граммы"})


def _recipe_counts(product_ids: list[int]) -> dict[int, int]:
    if not product_ids:
        return {}
    rows = (
        db.session.query(RecipeItem.product_id, func.count(RecipeItem.id))
        .filter(RecipeItem.product_id.in_(product_ids))
        .group_by(RecipeItem.product_id)
        .all()
    )
    return dict(rows)


def _production_counts(org_id: int, product_id: int) -> dict:
    produced = (
        db.session.query(func.coalesce(func.sum(Production.quantity), 0))
        .filter(
            Production.org_id == org_id,
            Production.product_id == product_id,
            Production.is_cancelled.is_(False),
        )
        .scalar()
    )
    in_stock = (
        db.session.query(func.count(FinishedProduct.id))
        .join(Production, Production.id == FinishedProduct.production_id)
        .filter(
            FinishedProduct.org_id == org_id,
            Production.product_id == product_id,
            FinishedProduct.status == FINISHED_STATUS_IN_STOCK,
        )
        .scalar()
    )
    return {"produced_count": int(produced or 0), "in_stock_count": int(in_stock or 0)}


def list_products(
    org_id: int,
    *,
    search: str | None = None,
    category: str | None = None,
    include_archived: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    q = scoped_query(Product, org_id)
    if not include_archived:
        q = q.filter(Product.is_archived.is_(False))
    if search:
        pattern = f"%{search.strip().lower()}%"
        q = q.filter(
            func.lower(Product.name).like(pattern) | func.lower(func.coalesce(Product.category, "")).like(pattern)
        )
    if category:
        q = q.filter(Product.category == category)
    q = q.order_by(Product.name.asc(), Product.id.asc())

    result = paginate(q, page=page, per_page=per_page, serialize=lambda p: p)
    counts = _recipe_counts([p.id for p in result["items"]])
    items = []
    for p in result["items"]:
        row = p.to_dict()
        row["materials_count"] = counts.get(p.id, 0)
        items.append(row)
    result["items"] = items
    return result


def get_product(org_id: int, product_id: int) -> dict:
    """Product with recipe lines (costed at today's average prices) and production counters."""
    product = get_scoped(Product, product_id, org_id, label="Product")
    data = product.to_dict()
    data["recipe_items"] = get_recipe_details(org_id, product.id)
    data.update(_production_counts(org_id, product.id))
    return data


def calculate_weight(org_id: int, product_id: int) -> Decimal:
    """Kilograms contributed by recipe lines measured in kg or g; other units are ignored."""
    rows = (
        db.session.query(RecipeItem.quantity, Material.unit)
        .join(Material, Material.id == RecipeItem.material_id)
        .filter(RecipeItem.product_id == product_id, Material.org_id == org_id)
        .all()
    )
    total = ZERO
    for quantity, unit in rows:
        unit = (unit or "").strip().lower()
        if unit in KILOGRAM_UNITS:
            total += Decimal(quantity)
        elif unit in GRAM_UNITS:
            total += Decimal(quantity) / Decimal("1000")
    return round_quantity(total)


def _apply_weight(org_id: int, product: Product) -> None:
    product.weight = calculate_weight(org_id, product.id)


def calculate_cost(org_id: int, product: Product) -> tuple[Decimal, Decimal]:
    """
    (estimated_cost, recommended_price) from current average material prices.

    estimated_cost = sum(quantity_per_unit * average_price), rounded to cents;
    recommended_price = estimated_cost * (1 + markup_percent / 100).
    """
    items = db.session.query(RecipeItem).filter(RecipeItem.product_id == product.id).all()
    materials = scoped_query(Material, org_id).filter(Material.id.in_([i.material_id for i in items])).all() if items else []
    balances = get_balances(org_id, materials)

    total = ZERO
    for item in items:
        total += Decimal(item.quantity) * balances[item.material_id].average_price

    estimated = round_money(total)
    markup = Decimal(product.markup_percent if product.markup_percent is not None else 100)
    recommended = round_money(estimated * (Decimal("1") + markup / Decimal("100")))
    return estimated, recommended


def create_product(
    *,
    org_id: int,
    user_id: int | None,
    patch: dict,
    recipe_items: list[tuple[int, Decimal]] | None = None,
) -> dict:
    """
    Create a product (and optionally its recipe) from a validated patch.

    Weight is derived from the recipe when one is given. Cost fields keep
    whatever the caller set; they are only recalculated on request.
    """
    def _op() -> int:
        product = Product(org_id=org_id, **patch)
        if product.markup_percent is None:
            product.markup_percent = Decimal("100")
        db.session.add(product)
        db.session.flush()

        if recipe_items:
            replace_recipe(org_id, product.id, recipe_items)
            _apply_weight(org_id, product)

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCT_CREATE,
            entity_type="Product",
            entity_id=product.id,
            entity_name=product.name,
            description=f"Created product: {product.name}",
        )
        db.session.commit()
        return product.id

    product_id = run_with_retry(_op)
    current_app.logger.info("Created product %s in org %s", product_id, org_id)
    return get_product(org_id, product_id)


def update_product(
    *,
    org_id: int,
    user_id: int | None,
    product_id: int,
    patch: dict,
    recipe_items: list[tuple[int, Decimal]] | None = None,
) -> dict:
    """
    Patch product fields; `recipe_items` (when not None) replaces the whole recipe.

    Replacing the recipe recalculates weight but leaves estimated_cost and
    recommended_price stale until recalculate_product_cost is called.
    """
    def _op() -> None:
        product = get_scoped(Product, product_id, org_id, label="Product")
        for key, value in patch.items():
            setattr(product, key, value)

        if recipe_items is not None:
            replace_recipe(org_id, product.id, recipe_items)
            _apply_weight(org_id, product)

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCT_UPDATE,
            entity_type="Product",
            entity_id=product.id,
            entity_name=product.name,
            description=f"Updated product: {product.name}",
            details={"fields": sorted(patch.keys()), "recipe_replaced": recipe_items is not None},
        )
        db.session.commit()

    run_with_retry(_op)
    return get_product(org_id, product_id)


def delete_product(*, org_id: int, user_id: int | None, product_id: int) -> None:
    """Hard delete. Refused once any production (even a cancelled one) references the product."""
    def _op() -> None:
        product = get_scoped(Product, product_id, org_id, label="Product")

        has_productions = db.session.query(Production.id).filter(Production.product_id == product.id).first()
        if has_productions:
            raise ConflictError("Cannot delete a product with production records; archive it instead")

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCT_DELETE,
            entity_type="Product",
            entity_id=product.id,
            entity_name=product.name,
            description=f"Deleted product: {product.name}",
        )
        delete_recipe(product.id)
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Deleted product %s in org %s", product_id, org_id)


def copy_product(*, org_id: int, user_id: int | None, product_id: int, new_name: str) -> dict:
    """Duplicate a product with its recipe under a new name."""
    new_name = (new_name or "").strip()
    if not new_name:
        raise ValidationError("new_name is required")
    if len(new_name) > 200:
        raise ValidationError("new_name exceeds max length 200")

    def _op() -> int:
        original = get_scoped(Product, product_id, org_id, label="Product")
        copy = Product(
            org_id=org_id,
            name=new_name,
            category=original.category,
            description=original.description,
            production_time_minutes=original.production_time_minutes,
            weight=original.weight,
            estimated_cost=original.estimated_cost,
            markup_percent=original.markup_percent,
            recommended_price=original.recommended_price,
        )
        db.session.add(copy)
        db.session.flush()

        items = [(i.material_id, Decimal(i.quantity)) for i in
                 db.session.query(RecipeItem).filter(RecipeItem.product_id == original.id).order_by(RecipeItem.id).all()]
        if items:
            replace_recipe(org_id, copy.id, items)
        _apply_weight(org_id, copy)

        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCT_CREATE,
            entity_type="Product",
            entity_id=copy.id,
            entity_name=copy.name,
            description=f"Copied product: {copy.name} (from {original.name})",
            details={"copied_from": original.id},
        )
        db.session.commit()
        return copy.id

    return get_product(org_id, run_with_retry(_op))


def set_archived(*, org_id: int, user_id: int | None, product_id: int, archived: bool) -> dict:
    def _op() -> None:
        product = get_scoped(Product, product_id, org_id, label="Product")
        if product.is_archived == archived:
            return
        product.is_archived = archived
        log_operation(
            org_id=org_id,
            user_id=user_id,
            operation_type=OP_PRODUCT_UPDATE,
            entity_type="Product",
            entity_id=product.id,
            entity_name=product.name,
            description=f"{'Archived' if archived else 'Unarchived'} product: {product.name}",
        )
        db.session.commit()

    run_with_retry(_op)
    return get_product(org_id, product_id)


def recalculate_product_cost(*, org_id: int, product_id: int) -> dict:
    """Refresh the cached estimated_cost / recommended_price from current material prices."""
    def _op() -> None:
        product = get_scoped(Product, product_id, org_id, label="Product")
        product.estimated_cost, product.recommended_price = calculate_cost(org_id, product)
        db.session.commit()

    run_with_retry(_op)
    return get_product(org_id, product_id)


def recalculate_product_weight(*, org_id: int, product_id: int) -> dict:
    def _op() -> None:
        product = get_scoped(Product, product_id, org_id, label="Product")
        _apply_weight(org_id, product)
        db.session.commit()

    run_with_retry(_op)
    return get_product(org_id, product_id)


def list_categories(org_id: int) -> list[str]:
    rows = (
        scoped_query(Product, org_id)
        .with_entities(Product.category)
        .filter(Product.category.isnot(None), Product.category != "")
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [r[0] for r in rows]
