# Overview: Flask API routes for the operation journal (read-only).

from flask import Blueprint, request, g, jsonify

from ..decorators import require_auth
from ..services import history_service
from .common import error_response, bool_arg, date_arg

history_bp = Blueprint("history", __name__, url_prefix="/api/history")


@history_bp.get("")
@require_auth
def list_history_route():
    """
    Operation journal, newest first.

    Query params:
    - operation_type, entity_type, entity_id, user_id
    - date_from / date_to: ISO-8601, inclusive on created_at
    - include_cancelled: bool (default true)
    - page (default 1) / per_page (default 50, max 100)
    """
    try:
        result = history_service.list_history(
            g.org_id,
            operation_type=request.args.get("operation_type"),
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
            user_id=request.args.get("user_id", type=int),
            date_from=date_arg("date_from"),
            date_to=date_arg("date_to"),
            include_cancelled=bool_arg("include_cancelled", default=True),
            page=request.args.get("page", default=1, type=int),
            per_page=request.args.get("per_page", default=50, type=int),
        )
        return jsonify(result)
    except Exception as e:
        return error_response(e, "list history")


@history_bp.get("/recent")
@require_auth
def recent_history_route():
    try:
        items = history_service.recent(g.org_id, count=request.args.get("count", default=10, type=int))
        return jsonify({"items": items, "count": len(items)})
    except Exception as e:
        return error_response(e, "list recent history")
