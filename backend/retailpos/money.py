# Overview: Fixed-point money helpers; amounts are Decimal and serialized as exact strings.

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from flask import current_app, has_app_context

from .errors import ValidationError


CENT = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_TOLERANCE = Decimal("0.01")

_MONEY_RE = re.compile(r"^-?\d+(\.\d{1,2})?$")


def quantize(value: Decimal) -> Decimal:
    """Round to whole cents (half-up)."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_money(value: Any, field: str, *, allow_negative: bool = False) -> Decimal:
    """
    Coerce client input to a cent-precision Decimal.

    Accepts Decimal, int and plain decimal strings ("12", "12.5", "12.50").
    Floats are rejected: binary floating point is never used for money.
    """
    if value is None:
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal string, not a float")

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not _MONEY_RE.match(stripped):
            raise ValidationError(f"Invalid {field} format")
        try:
            amount = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"Invalid {field} format")
    else:
        raise ValidationError(f"Invalid {field} format")

    if not amount.is_finite():
        raise ValidationError(f"Invalid {field} format")
    if amount < 0 and not allow_negative:
        raise ValidationError(f"{field} must not be negative")
    return quantize(amount)


def money_sum(values: Iterable[Decimal]) -> Decimal:
    total = ZERO
    for v in values:
        total += v
    return quantize(total)


def tolerance() -> Decimal:
    if has_app_context():
        return Decimal(str(current_app.config.get("MONEY_TOLERANCE", DEFAULT_TOLERANCE)))
    return DEFAULT_TOLERANCE


def approx_equal(a: Decimal, b: Decimal) -> bool:
    """Equality within the configured tolerance (inclusive)."""
    return abs(a - b) <= tolerance()


def money_str(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return format(quantize(Decimal(value)), "f")
