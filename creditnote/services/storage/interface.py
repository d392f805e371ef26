"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the realtime database behind one seam
2. Use in-memory storage for local runs and testing
3. Read the credit note register from either the script endpoint or the sheet
4. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just the operations the console needs.
"""

from abc import ABC, abstractmethod
from typing import Optional

from creditnote.models.audit import AuditEvent
from creditnote.models.credit_note import (
    CompanyProfile,
    CreditNoteTemplate,
    IssuedCreditNote,
    Party,
)


class CounterStore(ABC):
    """
    One integer cell with atomic read-modify-write.

    The credit note number sequence is built on this. Implementations
    MUST make increment() atomic across processes: two concurrent
    callers get two different values and neither increment is lost.
    """

    @abstractmethod
    async def read(self) -> int:
        """Current value, or 0 when the cell does not exist yet."""
        pass

    @abstractmethod
    async def increment(self) -> int:
        """
        Atomically add one and return the NEW value.

        Raises:
            StorageError: If the backend could not commit the increment
        """
        pass

    @abstractmethod
    async def raise_to(self, value: int) -> int:
        """
        Atomically set the cell to max(current, value).

        Returns:
            The value stored after the update
        """
        pass


class PartyStorageInterface(ABC):
    """Trading partner master data."""

    @abstractmethod
    async def list_parties(self) -> list[Party]:
        """All parties, sorted by name."""
        pass

    @abstractmethod
    async def get_party(self, party_id: str) -> Optional[Party]:
        pass

    @abstractmethod
    async def add_party(self, party: Party) -> str:
        """
        Store a new party.

        Returns:
            The generated party id
        """
        pass

    @abstractmethod
    async def update_party(self, party: Party) -> bool:
        """
        Raises:
            NotFoundError: If the party doesn't exist
        """
        pass

    @abstractmethod
    async def delete_party(self, party_id: str) -> bool:
        pass

    @abstractmethod
    async def update_party_email(self, party_id: str, email: str) -> bool:
        pass

    @abstractmethod
    async def replace_all_parties(self, parties: list[Party]) -> int:
        """
        Replace the whole party collection in one write.

        Returns:
            Number of parties stored
        """
        pass


class TemplateStorageInterface(ABC):
    """Saved credit note templates."""

    @abstractmethod
    async def list_templates(self) -> list[CreditNoteTemplate]:
        """All templates, sorted by name."""
        pass

    @abstractmethod
    async def add_template(self, template: CreditNoteTemplate) -> str:
        pass

    @abstractmethod
    async def update_template(self, template: CreditNoteTemplate) -> bool:
        pass

    @abstractmethod
    async def delete_template(self, template_id: str) -> bool:
        pass


class CompanyProfileStorageInterface(ABC):
    """The issuing entity printed on every document."""

    @abstractmethod
    async def get_profile(self) -> CompanyProfile:
        """
        Stored profile merged over the defaults.

        Never raises; read failures return the defaults.
        """
        pass

    @abstractmethod
    async def update_profile(self, profile: CompanyProfile) -> bool:
        pass


class CreditNoteRegisterInterface(ABC):
    """Read access to issued credit notes (one row per note)."""

    @abstractmethod
    async def list_credit_notes(self) -> list[IssuedCreditNote]:
        """All issued notes, newest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity (e.g. one credit note number).

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
