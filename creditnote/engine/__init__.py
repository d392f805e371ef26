"""Pure computation: periods, figures, words and money formatting."""

from creditnote.engine.calculator import compute_breakdown, to_decimal
from creditnote.engine.formatting import (
    format_amount,
    format_inr,
    format_percentage,
    format_round_off,
    group_indian,
)
from creditnote.engine.period import (
    MONTH_NAMES,
    business_today,
    custom_period,
    financial_quarter_of,
    previous_month,
    previous_quarter,
    resolve_period,
)
from creditnote.engine.words import MAX_AMOUNT, amount_to_words, rupees_in_words

__all__ = [
    "MAX_AMOUNT",
    "MONTH_NAMES",
    "amount_to_words",
    "business_today",
    "compute_breakdown",
    "custom_period",
    "financial_quarter_of",
    "format_amount",
    "format_inr",
    "format_percentage",
    "format_round_off",
    "group_indian",
    "previous_month",
    "previous_quarter",
    "resolve_period",
    "rupees_in_words",
    "to_decimal",
]
