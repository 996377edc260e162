"""Decimal helpers for currency amounts.

All stored amounts are Decimal with two places. Rounding is half-up so
that cent values match what patients see on printed statements.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """Normalize int/float/str/Decimal/None to Decimal."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a valid amount: {value!r}") from e


def round_money(value) -> Decimal:
    """Quantize an amount to cents."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
