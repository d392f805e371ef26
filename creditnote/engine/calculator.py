"""
Credit Amount Calculation

    credit_amount = base_amount × percentage / 100     (exact)
    final_amount  = credit_amount rounded half away from zero to whole rupees
    round_off     = final_amount − credit_amount       (signed)

DESIGN DECISION: Decimal with a widened context, never float.
credit_amount + round_off == final_amount then holds by construction,
not by floating point coincidence. Rounding happens exactly once.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Union

from creditnote.errors import InvalidInputError
from creditnote.models.credit_note import MonetaryBreakdown


Amount = Union[Decimal, int, float, str]

# Wide enough that base × percentage never rounds
_PRECISION = 60


def to_decimal(value: Amount, field: str) -> Decimal:
    """
    Convert user input to Decimal.

    Floats go through str() so 123456.78 means 123456.78, not its
    binary approximation.
    """
    if isinstance(value, bool):
        raise InvalidInputError(f"{field} must be a number")
    try:
        if isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInputError(f"{field} must be a number, got {value!r}")

    if not result.is_finite():
        raise InvalidInputError(f"{field} must be a finite number")
    return result


def compute_breakdown(base_amount: Amount, percentage: Amount) -> MonetaryBreakdown:
    """
    Compute the credit note figures.

    Args:
        base_amount: Net sales excluding GST
        percentage: Credit percentage (2 means 2%)

    Raises:
        InvalidInputError: either argument is negative or not a number
    """
    base = to_decimal(base_amount, "Net sales amount")
    pct = to_decimal(percentage, "Credit note percentage")

    if base < 0:
        raise InvalidInputError("Net sales amount cannot be negative")
    if pct < 0:
        raise InvalidInputError("Credit note percentage cannot be negative")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        credit = base * pct / 100
        final = credit.quantize(Decimal(1), rounding=ROUND_HALF_UP)
        round_off = final - credit

    return MonetaryBreakdown(
        base_amount=base,
        percentage=pct,
        credit_amount=credit,
        round_off=round_off,
        final_amount=int(final),
    )
