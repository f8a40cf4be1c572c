"""
Money Helpers
Cent rounding and sanitation shared by every estimator component.
Source: https://docs.python.org/3/library/decimal.html#decimal.Decimal.quantize
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

CENTS = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Sentinel for an unset limit: nothing left to exhaust
UNLIMITED = Decimal("Infinity")

# Magnitudes of 10^15 and above are rejected as input
MAX_AMOUNT_EXPONENT = 14


def round_money(value: Decimal) -> Decimal:
    """
    Round a monetary value to cents, half-up.

    Non-finite values (the UNLIMITED sentinel) are returned unchanged.
    """
    if not value.is_finite():
        return value
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Optional[Decimal]:
    """
    Convert loosely-typed numeric input to a finite Decimal.

    Returns None for absent, blank, boolean, non-numeric, non-finite or
    out-of-range (10^15 and above in magnitude) input.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None

    if not number.is_finite() or number.adjusted() > MAX_AMOUNT_EXPONENT:
        return None
    return number


def sanitize_amount(value: Any) -> Decimal:
    """Coerce input to a non-negative amount; anything unusable becomes zero."""
    number = to_decimal(value)
    if number is None or number < ZERO:
        return ZERO
    return number


def parse_optional_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount where absence is meaningful.

    Blank or non-numeric input is None (unset); negatives clamp to zero.
    """
    number = to_decimal(value)
    if number is None:
        return None
    return max(number, ZERO)


def clamp_percentage(value: Decimal) -> Decimal:
    """Clamp a percentage into [0, 100]."""
    return min(max(value, ZERO), HUNDRED)


def format_money(value: Decimal) -> str:
    """Format an amount as dollars for audit notes, e.g. $1,234.50."""
    return f"${round_money(value):,.2f}"
