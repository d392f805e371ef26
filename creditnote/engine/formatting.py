"""
Indian-style money formatting: last three digits, then groups of two.

    1234567.8  →  12,34,567.80
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union


def group_indian(whole: int) -> str:
    """Digit grouping for a non-negative integer (12,34,567)."""
    digits = str(abs(whole))
    if len(digits) <= 3:
        grouped = digits
    else:
        head, tail = digits[:-3], digits[-3:]
        pairs = []
        while len(head) > 2:
            pairs.insert(0, head[-2:])
            head = head[:-2]
        if head:
            pairs.insert(0, head)
        grouped = ",".join(pairs + [tail])
    return f"-{grouped}" if whole < 0 else grouped


def format_amount(value: Union[Decimal, int]) -> str:
    """Two decimals with Indian grouping; sign kept."""
    quantized = Decimal(value).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if quantized < 0 else ""
    whole, _, fraction = f"{abs(quantized):f}".partition(".")
    return f"{sign}{group_indian(int(whole))}.{fraction}"


def format_inr(value: Union[Decimal, int]) -> str:
    """'Rs. 1,23,456.78'"""
    return f"Rs. {format_amount(value)}"


def format_round_off(value: Decimal) -> str:
    """
    Round-off with an explicit sign: 'Rs. +0.01', 'Rs. -0.21'.

    The model keeps a signed Decimal; the '+' exists only on paper.
    """
    text = format_amount(value)
    return f"Rs. {text}" if text.startswith("-") else f"Rs. +{text}"


def format_percentage(value: Decimal) -> str:
    """3.50 → '3.5', 2.00 → '2'."""
    return f"{Decimal(value).normalize():f}"
