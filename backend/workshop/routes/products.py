# Overview: Flask API routes for products and recipes; parses input and returns JSON responses.

# backend/workshop/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's organization.
The org_id is derived from g.org_id (set by @require_auth).

Recipes travel with the product as "recipe_items":
[{"material_id": 1, "quantity": "30"}]. Sending the key replaces the whole
recipe; omitting it leaves the recipe untouched.

estimated_cost and recommended_price are cached values. They change only
when set explicitly or on POST /<id>/recalculate-cost.
"""
from flask import Blueprint, request, g, jsonify

from ..decorators import require_auth, require_role
from ..models import Product, ROLE_OWNER
from ..services import product_service
from ..services.recipe_service import get_recipe_details
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_recipe_items,
)
from .common import error_response, bool_arg, json_body

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category",
        "description",
        "production_time_minutes",
        "weight",
        "estimated_cost",
        "markup_percent",
        "recommended_price",
    },
    required_on_create={"name"},
    extra_fields={"recipe_items"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _parse(payload: dict, *, partial: bool):
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    recipe_items = parse_recipe_items(payload["recipe_items"]) if "recipe_items" in payload else None
    return patch, recipe_items


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products.

    Query params:
    - search, category, include_archived
    - page / per_page: optional pagination (per_page default 20, max 100)
    """
    try:
        result = product_service.list_products(
            g.org_id,
            search=request.args.get("search"),
            category=request.args.get("category"),
            include_archived=bool_arg("include_archived"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as e:
        return error_response(e, "list products")


@products_bp.post("")
@require_auth
def create_product_route():
    try:
        patch, recipe_items = _parse(json_body(), partial=False)
        created = product_service.create_product(
            org_id=g.org_id, user_id=g.current_user.id, patch=patch, recipe_items=recipe_items
        )
        return jsonify(created), 201
    except Exception as e:
        return error_response(e, "create product")


@products_bp.get("/categories")
@require_auth
def product_categories_route():
    return jsonify({"items": product_service.list_categories(g.org_id)})


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify(product_service.get_product(g.org_id, product_id))
    except Exception as e:
        return error_response(e, "load product")


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    try:
        patch, recipe_items = _parse(json_body(), partial=True)
        updated = product_service.update_product(
            org_id=g.org_id,
            user_id=g.current_user.id,
            product_id=product_id,
            patch=patch,
            recipe_items=recipe_items,
        )
        return jsonify(updated)
    except Exception as e:
        return error_response(e, "update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_OWNER)
def delete_product_route(product_id: int):
    """Hard delete; 409 once any production references the product (archive instead)."""
    try:
        product_service.delete_product(org_id=g.org_id, user_id=g.current_user.id, product_id=product_id)
        return jsonify({"ok": True})
    except Exception as e:
        return error_response(e, "delete product")


@products_bp.get("/<int:product_id>/recipe")
@require_auth
def get_recipe_route(product_id: int):
    try:
        items = get_recipe_details(g.org_id, product_id)
        return jsonify({"items": items, "count": len(items)})
    except Exception as e:
        return error_response(e, "load recipe")


@products_bp.post("/<int:product_id>/copy")
@require_auth
def copy_product_route(product_id: int):
    """Body: {"new_name": "..."}"""
    try:
        data = json_body()
        copied = product_service.copy_product(
            org_id=g.org_id,
            user_id=g.current_user.id,
            product_id=product_id,
            new_name=data.get("new_name") if isinstance(data.get("new_name"), str) else "",
        )
        return jsonify(copied), 201
    except Exception as e:
        return error_response(e, "copy product")


@products_bp.post("/<int:product_id>/archive")
@require_auth
def archive_product_route(product_id: int):
    try:
        return jsonify(product_service.set_archived(
            org_id=g.org_id, user_id=g.current_user.id, product_id=product_id, archived=True
        ))
    except Exception as e:
        return error_response(e, "archive product")


@products_bp.post("/<int:product_id>/unarchive")
@require_auth
def unarchive_product_route(product_id: int):
    try:
        return jsonify(product_service.set_archived(
            org_id=g.org_id, user_id=g.current_user.id, product_id=product_id, archived=False
        ))
    except Exception as e:
        return error_response(e, "unarchive product")


@products_bp.post("/<int:product_id>/recalculate-cost")
@require_auth
def recalculate_cost_route(product_id: int):
    """Recompute estimated_cost and recommended_price from current material average prices."""
    try:
        return jsonify(product_service.recalculate_product_cost(org_id=g.org_id, product_id=product_id))
    except Exception as e:
        return error_response(e, "recalculate product cost")


@products_bp.post("/<int:product_id>/recalculate-weight")
@require_auth
def recalculate_weight_route(product_id: int):
    try:
        return jsonify(product_service.recalculate_product_weight(org_id=g.org_id, product_id=product_id))
    except Exception as e:
        return error_response(e, "recalculate product weight")
