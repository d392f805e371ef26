"""Services package."""

from creditnote.services.dispatch import (
    AppsScriptClient,
    DispatchInterface,
)
from creditnote.services.sequence import SequenceAllocator
from creditnote.services.storage import (
    AuditStorageInterface,
    CompanyProfileStorageInterface,
    ConnectionError,
    CounterStore,
    CreditNoteRegisterInterface,
    NotFoundError,
    PartyStorageInterface,
    StorageError,
    TemplateStorageInterface,
)

__all__ = [
    # Dispatch
    "AppsScriptClient",
    "DispatchInterface",
    # Numbering
    "SequenceAllocator",
    # Storage services
    "AuditStorageInterface",
    "CompanyProfileStorageInterface",
    "ConnectionError",
    "CounterStore",
    "CreditNoteRegisterInterface",
    "NotFoundError",
    "PartyStorageInterface",
    "StorageError",
    "TemplateStorageInterface",
]
