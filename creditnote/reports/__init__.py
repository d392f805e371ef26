"""Dashboard and report aggregation over the credit note register."""

from creditnote.reports.analytics import (
    DashboardSummary,
    MonthlyTotal,
    PartyTotal,
    dashboard_summary,
    filter_notes,
    monthly_report,
    top_parties,
    whatsapp_share_link,
)

__all__ = [
    "DashboardSummary",
    "MonthlyTotal",
    "PartyTotal",
    "dashboard_summary",
    "filter_notes",
    "monthly_report",
    "top_parties",
    "whatsapp_share_link",
]
