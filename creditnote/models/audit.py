"""
Audit Models for the Credit Note Console

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of issued credit notes
2. The ONLY record of document numbers burnt by failed issuances
3. Accountability for party, template and settings changes

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from creditnote.engine.formatting import group_indian


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Values are the action codes shown in the audit log screen.
    """
    # Credit notes
    CN_NUMBER_RESERVED = "RESERVE_CN_NUMBER"
    CN_CREATED = "CREATE_CN"
    CN_NUMBER_GAP = "CN_NUMBER_GAP"
    CN_RESENT_TO_PARTY = "RESEND_CN_PARTY"
    CN_RESENT_TO_HEAD_OFFICE = "RESEND_CN_HO"

    # Parties
    PARTY_CREATED = "CREATE_PARTY"
    PARTY_UPDATED = "UPDATE_PARTY"
    PARTY_DELETED = "DELETE_PARTY"
    PARTIES_UPLOADED = "UPLOAD_PARTIES"

    # Templates
    TEMPLATE_CREATED = "CREATE_TEMPLATE"
    TEMPLATE_UPDATED = "UPDATE_TEMPLATE"
    TEMPLATE_DELETED = "DELETE_TEMPLATE"

    # Settings
    SETTINGS_UPDATED = "UPDATE_SETTINGS"

    # System events
    SYSTEM_ERROR = "SYSTEM_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'credit_note', 'party', 'template')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Credit note number or datastore key of the entity"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one issuance)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    # Additional data (event-specific)
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    # User action tracking
    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_store_dict(self) -> dict:
        """
        Convert to the node stored under the audit log path.

        'action' and 'details' keep the shape the audit log screen reads;
        the structured payload travels in 'data'.
        """
        return {
            "eventId": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "action": self.event_type.value,
            "severity": self.severity.value,
            "details": self.description,
            "entityType": self.entity_type or "",
            "entityId": self.entity_id or "",
            "correlationId": str(self.correlation_id) if self.correlation_id else "",
            "data": json.dumps(self.details) if self.details else "",
            "errorMessage": self.error_message or "",
            "isUserAction": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.credit_note_created(cn_number, party_name, ...)
        event = AuditEventBuilder.number_gap(cn_number, "dispatch", error, correlation_id)
    """

    @staticmethod
    def number_reserved(
        cn_number: str,
        sequence_value: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CN_NUMBER_RESERVED,
            severity=AuditSeverity.DEBUG,
            entity_type="credit_note",
            entity_id=cn_number,
            correlation_id=correlation_id,
            description=f"Credit note number {cn_number} reserved",
            details={"sequence_value": sequence_value},
        )

    @staticmethod
    def credit_note_created(
        cn_number: str,
        party_name: str,
        final_amount: int,
        issue_date: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CN_CREATED,
            entity_type="credit_note",
            entity_id=cn_number,
            correlation_id=correlation_id,
            description=(
                f"Credit Note {cn_number} created for {party_name} "
                f"with amount ₹{group_indian(final_amount)}."
            ),
            details={
                "party_name": party_name,
                "final_amount": final_amount,
                "issue_date": issue_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def number_gap(
        cn_number: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CN_NUMBER_GAP,
            severity=AuditSeverity.WARNING,
            entity_type="credit_note",
            entity_id=cn_number,
            correlation_id=correlation_id,
            description=f"Credit note number {cn_number} was reserved but not issued ({stage} failed)",
            details={"stage": stage},
            error_message=error_message,
        )

    @staticmethod
    def credit_note_resent(
        cn_number: str,
        party_name: str,
        to_party: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        target = f"party ({party_name})" if to_party else "Head Office"
        return AuditEvent(
            event_type=(
                AuditEventType.CN_RESENT_TO_PARTY
                if to_party
                else AuditEventType.CN_RESENT_TO_HEAD_OFFICE
            ),
            entity_type="credit_note",
            entity_id=cn_number,
            correlation_id=correlation_id,
            description=f"Credit Note {cn_number} re-sent to {target}.",
            is_user_action=True,
        )

    @staticmethod
    def party_changed(
        event_type: AuditEventType,
        party_id: Optional[str],
        party_name: str,
    ) -> AuditEvent:
        verb = {
            AuditEventType.PARTY_CREATED: "created",
            AuditEventType.PARTY_UPDATED: "updated",
            AuditEventType.PARTY_DELETED: "deleted",
        }[event_type]
        return AuditEvent(
            event_type=event_type,
            entity_type="party",
            entity_id=party_id,
            description=f"Party '{party_name}' {verb}.",
            is_user_action=True,
        )

    @staticmethod
    def parties_uploaded(count: int, filename: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIES_UPLOADED,
            entity_type="party",
            description=f"Uploaded and replaced {count} parties from file: {filename}.",
            details={"count": count, "filename": filename},
            is_user_action=True,
        )

    @staticmethod
    def template_changed(
        event_type: AuditEventType,
        template_id: Optional[str],
        template_name: str,
    ) -> AuditEvent:
        verb = {
            AuditEventType.TEMPLATE_CREATED: "created",
            AuditEventType.TEMPLATE_UPDATED: "updated",
            AuditEventType.TEMPLATE_DELETED: "deleted",
        }[event_type]
        return AuditEvent(
            event_type=event_type,
            entity_type="template",
            entity_id=template_id,
            description=f"Template '{template_name}' {verb}.",
            is_user_action=True,
        )

    @staticmethod
    def settings_updated() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            entity_type="settings",
            description="Company settings updated.",
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
