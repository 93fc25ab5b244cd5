"""Decimal helpers for prices and totals.

Amounts travel as ``Decimal`` inside the service and are persisted as
two-decimal strings so PostgREST numeric columns never see binary floats.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENT = Decimal("0.01")


def to_decimal(value: Any, default: Decimal | None = None) -> Decimal:
    """Coerce a database or request value to ``Decimal``.

    Args:
        value: int, float, str or Decimal.
        default: Returned when value is None or unparseable. If not given,
            the error propagates.

    Returns:
        Decimal: The parsed amount.
    """
    if isinstance(value, Decimal):
        return value
    if value is None:
        if default is not None:
            return default
        raise InvalidOperation("Amount is None")
    try:
        # str() first so floats like 0.1 keep their shortest repr
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        if default is not None:
            return default
        raise


def quantize_money(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal) -> str:
    """Render an amount the way it is stored, e.g. ``"18.00"``."""
    return str(quantize_money(amount))


def to_cents(amount: Decimal) -> int:
    """Convert an amount in major units to integer minor units."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
