"""
Decimal helpers shared by every allocation calculation.

All monetary rounding is half away from zero (ROUND_HALF_UP on Decimal).
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional

ZERO = Decimal("0")


def parse_decimal(value: Optional[object]) -> Optional[Decimal]:
    """
    Safely parse a value into a Decimal.

    Args:
        value: Input value that may represent a decimal number.

    Returns:
        Decimal value or None if parsing fails or value is blank.
    """
    if value is None:
        return None

    if isinstance(value, Decimal):
        return value if value.is_finite() else None

    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if value == "":
            return None

    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None

    return parsed if parsed.is_finite() else None


def to_decimal(value: Optional[object], default: Decimal = ZERO) -> Decimal:
    """Coerce a value to Decimal, falling back to ``default``."""
    parsed = parse_decimal(value)
    return default if parsed is None else parsed


def quantum(decimals: int) -> Decimal:
    """Smallest unit for the given number of decimal places (2 -> 0.01)."""
    return Decimal(1).scaleb(-decimals)


def round_half_up(value: Decimal, decimals: int) -> Decimal:
    """Round to ``decimals`` places, half away from zero."""
    return value.quantize(quantum(decimals), rounding=ROUND_HALF_UP)


def round_down(value: Decimal, decimals: int) -> Decimal:
    """Round to ``decimals`` places toward zero."""
    return value.quantize(quantum(decimals), rounding=ROUND_DOWN)


def sign(value: Decimal) -> int:
    """Return -1, 0 or 1."""
    if value > ZERO:
        return 1
    if value < ZERO:
        return -1
    return 0
