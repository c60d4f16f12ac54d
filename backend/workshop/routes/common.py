# Overview: Shared request parsing and error-to-status mapping for the API blueprints.

from __future__ import annotations

from flask import request, jsonify, current_app

from ..services.stock_ledger import LedgerInvariantError
from ..services.tenant_service import TenantAccessError
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError, ConflictError, NotFoundError


class BadQueryArg(ValidationError):
    pass


def error_response(exc: Exception, action: str):
    """
    Map a service exception to a JSON error response.

    - ValidationError  -> 400
    - NotFoundError    -> 404 (includes ids owned by another organization)
    - ConflictError    -> 409 (insufficient stock, illegal state change, duplicates)
    - TenantAccessError -> 401
    - anything else    -> 500, logged with traceback
    """
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc.args[0]) if exc.args else "Not found"}), 404
    if isinstance(exc, ConflictError):
        body = {"error": str(exc)}
        availability = getattr(exc, "availability", None)
        if availability is not None:
            body["availability"] = availability.to_dict()
        return jsonify(body), 409
    if isinstance(exc, TenantAccessError):
        return jsonify({"error": "Invalid session: missing tenant context"}), 401
    if isinstance(exc, LedgerInvariantError):
        # already logged at critical by the ledger
        return jsonify({"error": "Internal consistency error"}), 500
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = parse_iso_datetime(raw)
    except ValueError:
        value = None
    if value is None:
        raise BadQueryArg(f"Invalid {name} format")
    return value


def bool_arg(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise BadQueryArg(f"{name} must be true or false")


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
