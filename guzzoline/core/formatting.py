"""
Display formatting for costs and token counts.

Thresholds:
- Costs below one cent show "<$0.01" instead of "$0.00"
- Compact costs: two decimals under $1, one decimal under $100,
  whole dollars from there on
- Tokens: "1.2M" from a million, "45.3K" from a thousand, plain below
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from .errors import InvalidInput

Number = Union[int, float, Decimal]

LESS_THAN_A_CENT = "<$0.01"


def _to_decimal(value: Number, name: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (TypeError, ValueError, ArithmeticError):
        raise InvalidInput(f"{name} must be a number, got {value!r}")
    if not amount.is_finite():
        raise InvalidInput(f"{name} must be finite, got {value!r}")
    if amount < 0:
        raise InvalidInput(f"{name} cannot be negative: {value}")
    return amount


def _round(amount: Decimal, places: str) -> Decimal:
    return amount.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def format_cost(cents: Number, compact: bool = True) -> str:
    """Format a cost in cents as a USD string.

    Args:
        cents: Cost in cents (fractional cents allowed)
        compact: Use tiered precision; otherwise always two decimals

    Raises:
        InvalidInput: If cents is negative or not a finite number
    """
    dollars = _to_decimal(cents, "cents") / 100

    if dollars < Decimal("0.01"):
        return LESS_THAN_A_CENT
    if not compact:
        return f"${_round(dollars, '0.01'):,.2f}"
    if dollars < 1:
        return f"${_round(dollars, '0.01'):.2f}"
    if dollars < 100:
        return f"${_round(dollars, '0.1'):.1f}"
    return f"${int(_round(dollars, '1')):,}"


def format_tokens(tokens: Number) -> str:
    """Format a token count like "1.2M", "45.0K" or "999"."""
    count = _to_decimal(tokens, "tokens")

    if count >= 1_000_000:
        return f"{_round(count / 1_000_000, '0.1'):.1f}M"
    if count >= 1_000:
        return f"{_round(count / 1_000, '0.1'):.1f}K"
    return f"{int(_round(count, '1')):,}"
