"""
Data Models Package

This package contains all Pydantic models used in the Credit Note Console.
All data flowing through the system must conform to these schemas.
"""

from creditnote.models.credit_note import (
    DEFAULT_BUSINESS_TIMEZONE,
    CompanyProfile,
    CreditNoteRecord,
    CreditNoteRequest,
    CreditNoteTemplate,
    DispatchRecipient,
    DispatchResult,
    DocumentVariant,
    IssuedCreditNote,
    IssueOutcome,
    MonetaryBreakdown,
    Party,
    PartySnapshot,
    PeriodMode,
    RenderedArtifact,
    ReportingPeriod,
)
from creditnote.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Credit note models
    "DEFAULT_BUSINESS_TIMEZONE",
    "CompanyProfile",
    "CreditNoteRecord",
    "CreditNoteRequest",
    "CreditNoteTemplate",
    "DispatchRecipient",
    "DispatchResult",
    "DocumentVariant",
    "IssuedCreditNote",
    "IssueOutcome",
    "MonetaryBreakdown",
    "Party",
    "PartySnapshot",
    "PeriodMode",
    "RenderedArtifact",
    "ReportingPeriod",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
