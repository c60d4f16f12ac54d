# Overview: Flask API routes for material receipts; parses input and returns JSON responses.

"""
Material receipt routes.

A receipt may create its material inline:

    POST /api/receipts
    {"new_material": {"name": "Steel", "unit": "kg"}, "quantity": 100, "unit_price": 5}

Once production consumed part of a receipt, material, unit_price and
receipt_date answer 409 on change, and quantity cannot drop below the used amount.
"""
from flask import Blueprint, request, g, jsonify

from ..decorators import require_auth, require_role
from ..models import MaterialReceipt, ROLE_OWNER
from ..services import receipt_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_receipt,
)
from .common import error_response, date_arg, json_body
from .materials import parse_material_patch

RECEIPT_POLICY = ModelValidationPolicy(
    writable_fields={
        "material_id",
        "quantity",
        "receipt_date",
        "unit_price",
        "total_price",
        "batch_number",
        "purchase_source",
        "comment",
    },
    required_on_create={"quantity", "unit_price"},
    extra_fields={"new_material"},
)

receipts_bp = Blueprint("receipts", __name__, url_prefix="/api/receipts")


@receipts_bp.get("")
@require_auth
def list_receipts_route():
    """
    Query params:
    - material_id: int
    - date_from / date_to: ISO-8601, inclusive on receipt_date
    - page / per_page: optional pagination
    """
    try:
        result = receipt_service.list_receipts(
            g.org_id,
            material_id=request.args.get("material_id", type=int),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as e:
        return error_response(e, "list receipts")


@receipts_bp.post("")
@require_auth
def create_receipt_route():
    try:
        payload = json_body()
        patch = validate_payload(model=MaterialReceipt, payload=payload, policy=RECEIPT_POLICY, partial=False)
        enforce_rules_receipt(patch)

        new_material = None
        if payload.get("new_material") is not None:
            if not isinstance(payload["new_material"], dict):
                raise ValidationError("new_material must be an object")
            if patch.get("material_id") is not None:
                raise ValidationError("Provide either material_id or new_material, not both")
            new_material = parse_material_patch(payload["new_material"], partial=False)
        elif patch.get("material_id") is None:
            raise ValidationError("material_id or new_material is required")

        created = receipt_service.create_receipt(
            org_id=g.org_id,
            user_id=g.current_user.id,
            patch=patch,
            new_material=new_material,
        )
        return jsonify(created), 201
    except Exception as e:
        return error_response(e, "create receipt")


@receipts_bp.get("/<int:receipt_id>")
@require_auth
def get_receipt_route(receipt_id: int):
    try:
        return jsonify(receipt_service.get_receipt(g.org_id, receipt_id))
    except Exception as e:
        return error_response(e, "load receipt")


@receipts_bp.put("/<int:receipt_id>")
@require_auth
def update_receipt_route(receipt_id: int):
    try:
        payload = json_body()
        if "new_material" in payload:
            raise ValidationError("Field not allowed: new_material")
        patch = validate_payload(model=MaterialReceipt, payload=payload, policy=RECEIPT_POLICY, partial=True)
        enforce_rules_receipt(patch)

        updated = receipt_service.update_receipt(
            org_id=g.org_id, user_id=g.current_user.id, receipt_id=receipt_id, patch=patch
        )
        return jsonify(updated)
    except Exception as e:
        return error_response(e, "update receipt")


@receipts_bp.delete("/<int:receipt_id>")
@require_auth
@require_role(ROLE_OWNER)
def delete_receipt_route(receipt_id: int):
    try:
        receipt_service.delete_receipt(org_id=g.org_id, user_id=g.current_user.id, receipt_id=receipt_id)
        return jsonify({"ok": True})
    except Exception as e:
        return error_response(e, "delete receipt")
