"""
Reporting Period Resolution

Credit notes settle a scheme period. The form offers three modes:

QUARTER - the financial quarter BEFORE the one containing today.
          The financial year runs April → March:
              Q1 Apr-Jun, Q2 Jul-Sep, Q3 Oct-Dec, Q4 Jan-Mar
MONTH   - the calendar month before today's month.
CUSTOM  - dates and label typed in by the user.

DESIGN DECISION: The quarter lookup is an explicit table keyed by the
current calendar month, not "current quarter minus one". Naive
subtraction is exactly where January-March goes wrong (the preceding
quarter is Q3 of the SAME financial year, Oct-Dec of last calendar year).

All arithmetic is on datetime.date, which has no timezone. "Today"
must be taken in the business calendar (see business_today) so a
late-evening UTC clock never shifts the period.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

from creditnote.errors import InvalidInputError
from creditnote.models.credit_note import (
    DEFAULT_BUSINESS_TIMEZONE,
    PeriodMode,
    ReportingPeriod,
)


# English names regardless of process locale
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


class _PreviousQuarter(NamedTuple):
    quarter: int
    first_month: int
    last_month: int
    # Offset from today's calendar year to the calendar year of the range
    range_year_offset: int
    # Offset from today's calendar year to the financial year's start year
    fy_start_offset: int


# Keyed by the CURRENT calendar month.
_PREVIOUS_QUARTER = {
    # Today in Q4 (Jan-Mar of FY y-1/y) → Q3 Oct-Dec of y-1, FY y-1/y
    1: _PreviousQuarter(3, 10, 12, -1, -1),
    2: _PreviousQuarter(3, 10, 12, -1, -1),
    3: _PreviousQuarter(3, 10, 12, -1, -1),
    # Today in Q1 (Apr-Jun of FY y/y+1) → Q4 Jan-Mar of y, FY y-1/y
    4: _PreviousQuarter(4, 1, 3, 0, -1),
    5: _PreviousQuarter(4, 1, 3, 0, -1),
    6: _PreviousQuarter(4, 1, 3, 0, -1),
    # Today in Q2 (Jul-Sep) → Q1 Apr-Jun of y, FY y/y+1
    7: _PreviousQuarter(1, 4, 6, 0, 0),
    8: _PreviousQuarter(1, 4, 6, 0, 0),
    9: _PreviousQuarter(1, 4, 6, 0, 0),
    # Today in Q3 (Oct-Dec) → Q2 Jul-Sep of y, FY y/y+1
    10: _PreviousQuarter(2, 7, 9, 0, 0),
    11: _PreviousQuarter(2, 7, 9, 0, 0),
    12: _PreviousQuarter(2, 7, 9, 0, 0),
}


def business_today(timezone_name: str = DEFAULT_BUSINESS_TIMEZONE) -> date:
    """Today's date in the business calendar."""
    return datetime.now(ZoneInfo(timezone_name)).date()


def _last_day(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def financial_quarter_of(day: date) -> tuple[int, int]:
    """
    Financial quarter containing a date.

    Returns (quarter, fy_start_year); e.g. 15 Feb 2025 → (4, 2024).
    """
    if day.month <= 3:
        return 4, day.year - 1
    return (day.month - 4) // 3 + 1, day.year


def previous_quarter(today: date) -> ReportingPeriod:
    """The financial quarter immediately before the one containing today."""
    entry = _PREVIOUS_QUARTER[today.month]
    range_year = today.year + entry.range_year_offset
    fy_start = today.year + entry.fy_start_offset
    fy_end_short = f"{(fy_start + 1) % 100:02d}"

    return ReportingPeriod(
        period_from=date(range_year, entry.first_month, 1),
        period_to=_last_day(range_year, entry.last_month),
        label=f"Q{entry.quarter} {fy_start}-{fy_end_short}",
    )


def previous_month(today: date) -> ReportingPeriod:
    """The calendar month before today's month."""
    period_to = today.replace(day=1) - timedelta(days=1)
    period_from = period_to.replace(day=1)
    return ReportingPeriod(
        period_from=period_from,
        period_to=period_to,
        label=f"{MONTH_NAMES[period_from.month - 1]} {period_from.year}",
    )


def custom_period(period_from: date, period_to: date, label: str) -> ReportingPeriod:
    """
    A period typed in by the user.

    No date arithmetic; only the range and label are checked.
    """
    if period_from > period_to:
        raise InvalidInputError(
            f"Period start {period_from.isoformat()} is after period end {period_to.isoformat()}"
        )
    if not label or not label.strip():
        raise InvalidInputError("Custom period needs a label")
    return ReportingPeriod(period_from=period_from, period_to=period_to, label=label)


def resolve_period(
    mode: PeriodMode,
    today: date,
    custom: Optional[ReportingPeriod] = None,
) -> ReportingPeriod:
    """
    Resolve the reporting period for a credit note.

    Args:
        mode: Which rule to apply
        today: Today's date in the business calendar
        custom: Required for PeriodMode.CUSTOM, ignored otherwise

    Raises:
        InvalidInputError: custom mode without a valid period
    """
    mode = PeriodMode(mode)

    if mode == PeriodMode.QUARTER:
        return previous_quarter(today)
    if mode == PeriodMode.MONTH:
        return previous_month(today)

    if custom is None:
        raise InvalidInputError("Custom period mode requires dates and a label")
    return custom_period(custom.period_from, custom.period_to, custom.label)
