"""
NominaHub - Money Helpers

Decimal conversion and currency rounding shared by the tax tables and the
payroll engine. Currency amounts carry two fraction digits, rounded
half-up.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number-like value to Decimal.

    Floats go through str() so 0.1 stays 0.1. Raises ValueError for
    anything that is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        raise ValueError(f"Not a number: {value!r}")

    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_currency(value: Decimal) -> Decimal:
    """Round to the currency minor unit (0.01) using round-half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)
