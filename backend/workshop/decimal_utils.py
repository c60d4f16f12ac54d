"""
Decimal helpers shared by the ledger, allocator and serializers.

Money is kept at 2 places, quantities at 4 places. Both round half-up so
that a value written to a Numeric(18, 2) / Numeric(18, 4) column reads back
unchanged.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.0001")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Convert ints, floats, strings and Decimals to Decimal (floats via str)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation("booleans are not numbers")
    if isinstance(value, float):
        return Decimal(str(value))
    if value is None:
        return ZERO
    return Decimal(value)


def round_money(value: Any) -> Decimal:
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def round_quantity(value: Any) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def money_str(value: Optional[Decimal]) -> Optional[str]:
    """JSON representation for money; strings keep Decimal precision."""
    if value is None:
        return None
    return str(round_money(value))


def quantity_str(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(round_quantity(value))
