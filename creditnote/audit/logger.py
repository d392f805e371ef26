"""
Audit Logger

DESIGN DECISION: Every significant action in the console is logged.
This provides:
1. Traceability of every issued credit note
2. The only record of numbers burnt by failed issuances
3. Accountability for master data changes

The audit logger:
- Is async to match the storage layer
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace the events of one user action
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from creditnote.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from creditnote.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (shown on the Audit Log screen)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger()

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_number_reserved(
        self,
        cn_number: str,
        sequence_value: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.number_reserved(
            cn_number=cn_number,
            sequence_value=sequence_value,
            correlation_id=correlation_id,
        ))

    async def log_credit_note_created(
        self,
        cn_number: str,
        party_name: str,
        final_amount: int,
        issue_date: str,
        correlation_id: UUID,
    ) -> None:
        """Log a successfully dispatched credit note."""
        await self.log(AuditEventBuilder.credit_note_created(
            cn_number=cn_number,
            party_name=party_name,
            final_amount=final_amount,
            issue_date=issue_date,
            correlation_id=correlation_id,
        ))

    async def log_number_gap(
        self,
        cn_number: str,
        stage: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a reserved number that will never appear on a document."""
        await self.log(AuditEventBuilder.number_gap(
            cn_number=cn_number,
            stage=stage,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_credit_note_resent(
        self,
        cn_number: str,
        party_name: str,
        to_party: bool,
    ) -> None:
        await self.log(AuditEventBuilder.credit_note_resent(
            cn_number=cn_number,
            party_name=party_name,
            to_party=to_party,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., issuing a credit note).
    Pass it through all subsequent operations.
    """
    return uuid4()
