# Overview: Flask API routes for finished-goods units; sale, write-off, return and summary.

"""
Finished product routes.

Each unit moves InStock -> Sold | WrittenOff and back to InStock through the
dedicated POST endpoints. PUT edits details only; status is never writable.
"""
from flask import Blueprint, request, g, jsonify

from ..decorators import require_auth
from ..models import FinishedProduct
from ..services import finished_product_service
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_sale,
)
from .common import error_response, date_arg, json_body

DETAILS_POLICY = ModelValidationPolicy(
    writable_fields={"sale_price", "client", "sale_date", "write_off_reason", "comment"},
    required_on_create=set(),
)

SALE_POLICY = ModelValidationPolicy(
    writable_fields={"sale_price", "client", "sale_date", "comment"},
    required_on_create={"sale_price"},
)

finished_products_bp = Blueprint("finished_products", __name__, url_prefix="/api/finished-products")


@finished_products_bp.get("")
@require_auth
def list_finished_products_route():
    """
    Query params:
    - status: InStock | Sold | WrittenOff
    - product_id: int
    - date_from / date_to: inclusive on production date
    - page / per_page: optional pagination
    """
    try:
        result = finished_product_service.list_finished_products(
            g.org_id,
            status=request.args.get("status"),
            product_id=request.args.get("product_id", type=int),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as e:
        return error_response(e, "list finished products")


@finished_products_bp.get("/summary")
@require_auth
def finished_products_summary_route():
    try:
        return jsonify(finished_product_service.summary(g.org_id))
    except Exception as e:
        return error_response(e, "summarize finished products")


@finished_products_bp.get("/statuses")
@require_auth
def finished_product_statuses_route():
    return jsonify({"items": finished_product_service.list_statuses()})


@finished_products_bp.get("/<int:unit_id>")
@require_auth
def get_finished_product_route(unit_id: int):
    try:
        return jsonify(finished_product_service.get_finished_product(g.org_id, unit_id))
    except Exception as e:
        return error_response(e, "load finished product")


@finished_products_bp.put("/<int:unit_id>")
@require_auth
def update_finished_product_route(unit_id: int):
    try:
        payload = json_body()
        if "status" in payload:
            raise ValidationError("status cannot be changed directly")
        patch = validate_payload(model=FinishedProduct, payload=payload, policy=DETAILS_POLICY, partial=True)
        if patch.get("sale_price") is not None:
            enforce_rules_sale(patch)
        return jsonify(finished_product_service.update_finished_product(
            org_id=g.org_id, user_id=g.current_user.id, unit_id=unit_id, patch=patch
        ))
    except Exception as e:
        return error_response(e, "update finished product")


@finished_products_bp.post("/<int:unit_id>/sell")
@require_auth
def sell_route(unit_id: int):
    """
    Request body:
    {
        "sale_price": "1200.00",     // required, >= 0
        "client": "...",             // optional
        "sale_date": "...",          // optional, defaults to now
        "comment": "..."             // optional
    }
    """
    try:
        patch = validate_payload(model=FinishedProduct, payload=json_body(), policy=SALE_POLICY, partial=False)
        enforce_rules_sale(patch)
        sold = finished_product_service.sell(
            org_id=g.org_id,
            user_id=g.current_user.id,
            unit_id=unit_id,
            sale_price=patch["sale_price"],
            client=patch.get("client"),
            sale_date=patch.get("sale_date"),
            comment=patch.get("comment"),
        )
        return jsonify(sold)
    except Exception as e:
        return error_response(e, "sell finished product")


@finished_products_bp.post("/<int:unit_id>/write-off")
@require_auth
def write_off_route(unit_id: int):
    """Body: {"reason": "...", "comment": "..."}; reason is required."""
    try:
        data = json_body()
        reason = data.get("reason")
        comment = data.get("comment")
        if not isinstance(reason, str):
            raise ValidationError("reason is required")
        if comment is not None and not isinstance(comment, str):
            raise ValidationError("comment must be a string")
        return jsonify(finished_product_service.write_off(
            org_id=g.org_id,
            user_id=g.current_user.id,
            unit_id=unit_id,
            reason=reason,
            comment=comment,
        ))
    except Exception as e:
        return error_response(e, "write off finished product")


@finished_products_bp.post("/<int:unit_id>/return-to-stock")
@require_auth
def return_to_stock_route(unit_id: int):
    try:
        return jsonify(finished_product_service.return_to_stock(
            org_id=g.org_id, user_id=g.current_user.id, unit_id=unit_id
        ))
    except Exception as e:
        return error_response(e, "return finished product to stock")
