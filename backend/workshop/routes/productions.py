# Overview: Flask API routes for production runs; parses input and returns JSON responses.

"""
Production routes.

POST creates a run and consumes materials oldest lot first in one
transaction. 409 means the run was refused (shortage, concurrent change,
or units already sold / written off on cancel and delete); nothing changed.
"""
from flask import Blueprint, request, g, jsonify

from ..decorators import require_auth, require_role
from ..models import Production, ROLE_OWNER
from ..services import production_service
from ..services.availability_service import check_availability
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_production,
)
from .common import error_response, bool_arg, date_arg, json_body

PRODUCTION_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "quantity", "production_date", "comment", "photo_path"},
    required_on_create={"product_id", "quantity"},
)

productions_bp = Blueprint("productions", __name__, url_prefix="/api/productions")


@productions_bp.get("")
@require_auth
def list_productions_route():
    """
    Query params:
    - product_id: int
    - date_from / date_to: ISO-8601, inclusive on production_date
    - include_cancelled: bool (default false)
    - page / per_page: optional pagination
    """
    try:
        result = production_service.list_productions(
            g.org_id,
            product_id=request.args.get("product_id", type=int),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            include_cancelled=bool_arg("include_cancelled"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as e:
        return error_response(e, "list productions")


@productions_bp.get("/check-availability")
@require_auth
def check_availability_route():
    """Read-only: ?product_id=&quantity= -> per-material required / available / shortage."""
    try:
        product_id = request.args.get("product_id", type=int)
        quantity = request.args.get("quantity", type=int)
        if product_id is None:
            raise ValidationError("product_id is required")
        enforce_rules_production({"quantity": quantity})
        return jsonify(check_availability(g.org_id, product_id, quantity).to_dict())
    except Exception as e:
        return error_response(e, "check availability")


@productions_bp.post("")
@require_auth
def create_production_route():
    """
    Request body:
    {
        "product_id": 1,                 // required
        "quantity": 4,                   // required, 1..10000
        "production_date": "...",        // optional, ISO-8601
        "comment": "...",                // optional
        "photo_path": "..."              // optional
    }
    """
    try:
        patch = validate_payload(model=Production, payload=json_body(), policy=PRODUCTION_POLICY, partial=False)
        enforce_rules_production(patch)
        if patch.get("product_id") is None:
            raise ValidationError("product_id is required")

        production = production_service.create_production(
            org_id=g.org_id,
            user_id=g.current_user.id,
            product_id=patch["product_id"],
            quantity=patch["quantity"],
            production_date=patch.get("production_date"),
            comment=patch.get("comment"),
            photo_path=patch.get("photo_path"),
        )
        return jsonify(production_service.get_production(g.org_id, production.id)), 201
    except Exception as e:
        return error_response(e, "create production")


@productions_bp.get("/<int:production_id>")
@require_auth
def get_production_route(production_id: int):
    try:
        return jsonify(production_service.get_production(g.org_id, production_id))
    except Exception as e:
        return error_response(e, "load production")


@productions_bp.post("/<int:production_id>/cancel")
@require_auth
def cancel_production_route(production_id: int):
    try:
        production_service.cancel_production(
            org_id=g.org_id, user_id=g.current_user.id, production_id=production_id
        )
        return jsonify(production_service.get_production(g.org_id, production_id))
    except Exception as e:
        return error_response(e, "cancel production")


@productions_bp.delete("/<int:production_id>")
@require_auth
@require_role(ROLE_OWNER)
def delete_production_route(production_id: int):
    try:
        production_service.delete_production(
            org_id=g.org_id, user_id=g.current_user.id, production_id=production_id
        )
        return jsonify({"ok": True})
    except Exception as e:
        return error_response(e, "delete production")
