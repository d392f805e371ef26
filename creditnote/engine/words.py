"""
Amount in Words (Indian numbering)

Indian grouping is NOT uniform thousands:

    1,00,00,000  Crore     (10^7)
      1,00,000   Lakh      (10^5)
         1,000   Thousand  (10^3)
           100   Hundred

Each unit is consumed greedily, largest first, and the count in front
of it (0-999) is spelled with the hundreds/tens/ones tables.

DESIGN DECISION: Iteration over an explicit divisor table, with a hard
upper bound. Anything above 999 crore is rejected rather than spelled.
"""

from creditnote.errors import InvalidInputError


ONES = (
    "", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine",
    "Ten", "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen",
    "Seventeen", "Eighteen", "Nineteen",
)
TENS = (
    "", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety",
)

UNITS = (
    (10_000_000, "Crore"),
    (100_000, "Lakh"),
    (1_000, "Thousand"),
)

# 999 Crore 99 Lakh 99 Thousand 999
MAX_AMOUNT = 9_99_99_99_999


def _below_hundred(n: int) -> str:
    if n < 20:
        return ONES[n]
    tens, ones = divmod(n, 10)
    if ones:
        return f"{TENS[tens]} {ONES[ones]}"
    return TENS[tens]


def _below_thousand(n: int) -> str:
    hundreds, rest = divmod(n, 100)
    parts = []
    if hundreds:
        parts.append(f"{ONES[hundreds]} Hundred")
    if rest:
        parts.append(_below_hundred(rest))
    return " ".join(parts)


def amount_to_words(amount: int) -> str:
    """
    Spell a whole amount using crore / lakh / thousand grouping.

    >>> amount_to_words(1234567)
    'Twelve Lakh Thirty Four Thousand Five Hundred Sixty Seven'

    Raises:
        InvalidInputError: negative, non-integer, or above MAX_AMOUNT
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidInputError(f"Amount in words needs a whole number, got {amount!r}")
    if amount < 0:
        raise InvalidInputError("Amount in words cannot be negative")
    if amount > MAX_AMOUNT:
        raise InvalidInputError(f"Amount {amount} is above the supported maximum {MAX_AMOUNT}")

    if amount == 0:
        return "Zero"

    parts = []
    remainder = amount
    for divisor, name in UNITS:
        count, remainder = divmod(remainder, divisor)
        if count:
            parts.append(f"{_below_thousand(count)} {name}")
    if remainder:
        parts.append(_below_thousand(remainder))

    return " ".join(" ".join(parts).split())


def rupees_in_words(amount: int) -> str:
    """'Rupees Ten Thousand Only' as printed on the credit note."""
    return f"Rupees {amount_to_words(amount)} Only"
