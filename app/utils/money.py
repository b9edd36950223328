from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


MONEY_PRECISION = Decimal("0.01")


def parse_amount(value: Any) -> Decimal | None:
    """Parse a positive money amount from a JSON value.

    Returns ``None`` for anything missing, non-numeric, or not above zero so
    callers can treat it as a missing required field.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip().replace(",", ".")
        if not value:
            return None
    try:
        dec = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not dec.is_finite() or dec <= 0:
        return None
    return dec.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def as_amount(value: Decimal | float | int | str) -> Decimal:
    dec = Decimal(str(value)).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)
    if dec <= Decimal("0"):
        return Decimal("0.01")
    return dec


def amount_to_json(value: Decimal) -> float:
    return float(value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP))
