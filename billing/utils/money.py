"""Fixed-point money helpers. Amounts never touch binary floats in storage."""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

from bson.decimal128 import Decimal128

from billing.core.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Coerce str/int/Decimal/Decimal128 to Decimal without rounding."""
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps the shortest repr instead of the binary expansion
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {value!r}")


def quantize(value: Any) -> Decimal:
    """Round to two fractional digits, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_bson(value: Any) -> Decimal128:
    return Decimal128(quantize(value))


def from_bson(value: Any) -> Decimal:
    if value is None:
        return ZERO
    return quantize(value)


def format_amount(value: Any) -> str:
    return f"{quantize(value):.2f}"
