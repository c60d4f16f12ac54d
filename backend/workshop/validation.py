from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from workshop.time_utils import parse_iso_datetime, to_utc_naive

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: 9,999,999,999.99; prevents Numeric(18, 2) overflow and nonsense input
MAX_MONEY = Decimal("9999999999.99")
MAX_QUANTITY = Decimal("99999999.9999")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate material, insufficient stock)."""


class NotFoundError(LookupError):
    """
    404-level missing entity.

    Also raised for ids owned by another organization: a foreign id is
    indistinguishable from a nonexistent one.
    """


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: non-column keys a route handles itself (e.g. nested recipe items)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_decimal(key: str, value: Any) -> Decimal:
    """Accept JSON numbers or numeric strings; reject booleans, NaN and infinity."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return result


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Decimals (quantities and money)
    if isinstance(coltype, Numeric):
        result = coerce_decimal(col.key, value)
        if coltype.scale is not None and -result.as_tuple().exponent > coltype.scale:
            raise ValidationError(f"{col.key} allows at most {coltype.scale} decimal places")
        return result

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return to_utc_naive(value)
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length, Numeric scale)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable column fields.
    Keys listed in policy.extra_fields are allowed but left for the caller.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    extra = policy.extra_fields or set()

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in extra:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra:
            continue
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _require_positive(patch: dict, key: str, limit: Decimal = MAX_QUANTITY) -> None:
    if key in patch and patch[key] is not None:
        if patch[key] <= 0:
            raise ValidationError(f"{key} must be > 0")
        if patch[key] > limit:
            raise ValidationError(f"{key} cannot exceed {limit}")


def _require_non_negative_money(patch: dict, key: str) -> None:
    if key in patch and patch[key] is not None:
        if patch[key] < 0:
            raise ValidationError(f"{key} must be >= 0")
        if patch[key] > MAX_MONEY:
            raise ValidationError(f"{key} cannot exceed {MAX_MONEY}")


def enforce_rules_material(patch: dict) -> None:
    if "minimum_stock" in patch and patch["minimum_stock"] is not None:
        if patch["minimum_stock"] < 0:
            raise ValidationError("minimum_stock must be >= 0")


def enforce_rules_receipt(patch: dict) -> None:
    # RECEIPT requires qty > 0 and a non-negative unit price
    _require_positive(patch, "quantity")
    _require_non_negative_money(patch, "unit_price")
    _require_non_negative_money(patch, "total_price")


def enforce_rules_product(patch: dict) -> None:
    if "production_time_minutes" in patch and patch["production_time_minutes"] is not None:
        if patch["production_time_minutes"] < 0:
            raise ValidationError("production_time_minutes must be >= 0")
    if "weight" in patch and patch["weight"] is not None and patch["weight"] < 0:
        raise ValidationError("weight must be >= 0")
    if "markup_percent" in patch and patch["markup_percent"] is not None:
        if patch["markup_percent"] < 0:
            raise ValidationError("markup_percent must be >= 0")
    _require_non_negative_money(patch, "estimated_cost")
    _require_non_negative_money(patch, "recommended_price")


def enforce_rules_production(patch: dict) -> None:
    if "quantity" not in patch or patch["quantity"] is None:
        raise ValidationError("quantity is required")
    if patch["quantity"] <= 0:
        raise ValidationError("quantity must be > 0")
    if patch["quantity"] > 10_000:
        raise ValidationError("quantity cannot exceed 10000 units per production")


def enforce_rules_sale(patch: dict) -> None:
    if "sale_price" not in patch or patch["sale_price"] is None:
        raise ValidationError("sale_price is required")
    _require_non_negative_money(patch, "sale_price")


def parse_recipe_items(raw: Any) -> list[tuple[int, Decimal]]:
    """
    Validate a JSON recipe list: [{"material_id": int, "quantity": number}, ...].

    Returns (material_id, quantity) pairs. Duplicate material ids are rejected
    rather than merged.
    """
    if not isinstance(raw, list):
        raise ValidationError("recipe_items must be a list")

    items: list[tuple[int, Decimal]] = []
    seen: set[int] = set()
    for idx, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"recipe_items[{idx}] must be an object")
        material_id = entry.get("material_id")
        if not isinstance(material_id, int) or isinstance(material_id, bool):
            raise ValidationError(f"recipe_items[{idx}].material_id must be an integer")
        if "quantity" not in entry:
            raise ValidationError(f"recipe_items[{idx}].quantity is required")
        quantity = coerce_decimal(f"recipe_items[{idx}].quantity", entry["quantity"])
        if quantity <= 0:
            raise ValidationError(f"recipe_items[{idx}].quantity must be > 0")
        if -quantity.as_tuple().exponent > 4:
            raise ValidationError(f"recipe_items[{idx}].quantity allows at most 4 decimal places")
        if material_id in seen:
            raise ValidationError(f"Material {material_id} appears more than once in recipe_items")
        seen.add(material_id)
        items.append((material_id, quantity))
    return items
