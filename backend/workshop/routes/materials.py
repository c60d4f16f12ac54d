# Overview: Flask API routes for materials and stock balances; parses input and returns JSON responses.

"""
Material routes.

MULTI-TENANT: Every query and every created row uses g.org_id (set by
@require_auth). Ids from another organization answer 404.

SECURITY: All routes require authentication. Hard delete requires the Owner role.
"""
from flask import Blueprint, request, g, jsonify

from ..decorators import require_auth, require_role
from ..models import Material, ROLE_OWNER
from ..services import material_service
from ..services.stock_ledger import get_balance, get_all_balances
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_material
from .common import error_response, bool_arg, json_body

MATERIAL_POLICY = ModelValidationPolicy(
    writable_fields={"name", "unit", "color", "category", "description", "minimum_stock"},
    required_on_create={"name", "unit"},
)

materials_bp = Blueprint("materials", __name__, url_prefix="/api/materials")


def parse_material_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Material, payload=payload, policy=MATERIAL_POLICY, partial=partial)
    enforce_rules_material(patch)
    return patch


@materials_bp.get("")
@require_auth
def list_materials_route():
    """
    List materials with current stock and average price.

    Query params:
    - search: substring of name or category (case-insensitive)
    - category: exact category
    - include_archived: bool (default false)
    - page / per_page: optional pagination (per_page default 20, max 100)
    """
    try:
        result = material_service.list_materials(
            g.org_id,
            search=request.args.get("search"),
            category=request.args.get("category"),
            include_archived=bool_arg("include_archived"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as e:
        return error_response(e, "list materials")


@materials_bp.post("")
@require_auth
def create_material_route():
    try:
        patch = parse_material_patch(json_body(), partial=False)
        created = material_service.create_material(org_id=g.org_id, user_id=g.current_user.id, patch=patch)
        return jsonify(created), 201
    except Exception as e:
        return error_response(e, "create material")


@materials_bp.get("/categories")
@require_auth
def material_categories_route():
    return jsonify({"items": material_service.list_categories(g.org_id)})


@materials_bp.get("/balances")
@require_auth
def material_balances_route():
    """Balances of all non-archived materials; zero-stock ones only with include_zero_stock=true."""
    try:
        balances = get_all_balances(g.org_id, include_zero_stock=bool_arg("include_zero_stock"))
        return jsonify({"items": [b.to_dict() for b in balances], "count": len(balances)})
    except Exception as e:
        return error_response(e, "compute material balances")


@materials_bp.get("/<int:material_id>")
@require_auth
def get_material_route(material_id: int):
    try:
        return jsonify(material_service.get_material(g.org_id, material_id))
    except Exception as e:
        return error_response(e, "load material")


@materials_bp.put("/<int:material_id>")
@require_auth
def update_material_route(material_id: int):
    try:
        patch = parse_material_patch(json_body(), partial=True)
        updated = material_service.update_material(
            org_id=g.org_id, user_id=g.current_user.id, material_id=material_id, patch=patch
        )
        return jsonify(updated)
    except Exception as e:
        return error_response(e, "update material")


@materials_bp.delete("/<int:material_id>")
@require_auth
@require_role(ROLE_OWNER)
def delete_material_route(material_id: int):
    """Hard delete; 409 once the material has receipts or recipe references (archive instead)."""
    try:
        material_service.delete_material(org_id=g.org_id, user_id=g.current_user.id, material_id=material_id)
        return jsonify({"ok": True})
    except Exception as e:
        return error_response(e, "delete material")


@materials_bp.post("/<int:material_id>/archive")
@require_auth
def archive_material_route(material_id: int):
    try:
        return jsonify(material_service.set_archived(
            org_id=g.org_id, user_id=g.current_user.id, material_id=material_id, archived=True
        ))
    except Exception as e:
        return error_response(e, "archive material")


@materials_bp.post("/<int:material_id>/unarchive")
@require_auth
def unarchive_material_route(material_id: int):
    try:
        return jsonify(material_service.set_archived(
            org_id=g.org_id, user_id=g.current_user.id, material_id=material_id, archived=False
        ))
    except Exception as e:
        return error_response(e, "unarchive material")


@materials_bp.get("/<int:material_id>/balance")
@require_auth
def material_balance_route(material_id: int):
    try:
        return jsonify(get_balance(g.org_id, material_id).to_dict())
    except Exception as e:
        return error_response(e, "compute material balance")


@materials_bp.get("/<int:material_id>/products")
@require_auth
def material_products_route(material_id: int):
    """Products whose recipe uses this material."""
    try:
        items = material_service.products_using_material(g.org_id, material_id)
        return jsonify({"items": items, "count": len(items)})
    except Exception as e:
        return error_response(e, "list products using material")
