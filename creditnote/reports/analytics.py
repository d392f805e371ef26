"""
Register Analytics

Dashboard and report figures computed from the credit note register.

DESIGN DECISION: These are pure functions over a list of
IssuedCreditNote rows. The register is small (one row per credit note)
so every screen fetches it once and aggregates in Python, the same way
the register itself is filtered.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional
from urllib.parse import quote

from pydantic import BaseModel, Field

from creditnote.engine.formatting import group_indian
from creditnote.engine.period import MONTH_NAMES
from creditnote.models.credit_note import IssuedCreditNote


class MonthlyTotal(BaseModel):
    """Credit notes issued in one calendar month."""
    year: int
    month: int = Field(..., ge=1, le=12)
    count: int = 0
    amount: Decimal = Decimal("0")

    @property
    def label(self) -> str:
        """'Oct 2026'"""
        return f"{MONTH_NAMES[self.month - 1][:3]} {self.year}"


class PartyTotal(BaseModel):
    name: str
    count: int = 0
    amount: Decimal = Decimal("0")


class DashboardSummary(BaseModel):
    """Figures shown on the dashboard cards and charts."""
    count_this_month: int
    amount_this_month: Decimal
    average_this_month: Decimal
    monthly_totals: list[MonthlyTotal]
    top_parties: list[PartyTotal]


def filter_notes(
    notes: list[IssuedCreditNote],
    search: str = "",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
) -> list[IssuedCreditNote]:
    """
    Register rows matching a search term and an inclusive date range.

    The search term is matched case-insensitively against the credit
    note number, the party name and the purpose. Order is preserved.
    """
    term = search.strip().lower()
    matched = []
    for note in notes:
        if term and not any(
            term in text.lower()
            for text in (note.cn_number, note.party_name, note.purpose)
        ):
            continue
        if date_from and note.issue_date < date_from:
            continue
        if date_to and note.issue_date > date_to:
            continue
        matched.append(note)
    return matched


def _last_months(today: date, months: int) -> list[tuple[int, int]]:
    """(year, month) pairs for the last `months` months, oldest first, ending with today's."""
    year, month = today.year, today.month
    pairs = []
    for _ in range(months):
        pairs.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    pairs.reverse()
    return pairs


def monthly_report(
    notes: list[IssuedCreditNote],
    today: date,
    months: int = 12,
) -> list[MonthlyTotal]:
    """Count and amount per month for the last `months` months, oldest first."""
    totals = {
        key: MonthlyTotal(year=key[0], month=key[1])
        for key in _last_months(today, months)
    }
    for note in notes:
        bucket = totals.get((note.issue_date.year, note.issue_date.month))
        if bucket is not None:
            bucket.count += 1
            bucket.amount += note.final_amount
    return list(totals.values())


def top_parties(notes: list[IssuedCreditNote], limit: int = 10) -> list[PartyTotal]:
    """Parties by total credited amount, largest first."""
    totals: dict[str, PartyTotal] = defaultdict(lambda: PartyTotal(name=""))
    for note in notes:
        entry = totals[note.party_name]
        entry.name = note.party_name
        entry.count += 1
        entry.amount += note.final_amount
    ranked = sorted(totals.values(), key=lambda p: (-p.amount, p.name))
    return ranked[:limit]


def dashboard_summary(notes: list[IssuedCreditNote], today: date) -> DashboardSummary:
    this_month = [
        n for n in notes
        if n.issue_date.year == today.year and n.issue_date.month == today.month
    ]
    amount = sum((n.final_amount for n in this_month), Decimal("0"))
    average = amount / len(this_month) if this_month else Decimal("0")
    return DashboardSummary(
        count_this_month=len(this_month),
        amount_this_month=amount,
        average_this_month=average,
        monthly_totals=monthly_report(notes, today, months=6),
        top_parties=top_parties(notes, limit=5),
    )


def whatsapp_share_link(note: IssuedCreditNote, number: str, company_name: str) -> str:
    """
    wa.me link opening a chat with the credit note notification prefilled.

    Only the digits of `number` are kept.
    """
    digits = "".join(ch for ch in number if ch.isdigit())
    message = (
        "*Credit Note Notification*\n\n"
        f"Dear {note.party_name},\n\n"
        "This is to inform you that a credit note has been processed for your account.\n\n"
        f"• *CN Number:* *{note.cn_number}*\n"
        f"• *Date:* {note.issue_date.isoformat()}\n"
        f"• *Amount:* *₹{group_indian(int(note.final_amount))}*\n"
        f"• *Purpose:* {note.purpose}\n\n"
        "Please access the official PDF document for your records using the secure link below:\n"
        f"{note.pdf_link or ''}\n\n"
        f"Thank you,\n{company_name.title()}"
    )
    return f"https://wa.me/{digits}?text={quote(message)}"
