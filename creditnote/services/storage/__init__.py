"""
Storage Services Package

Abstract interfaces plus Firebase, Google Sheets and in-memory backends.
"""

from creditnote.services.storage.interface import (
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
from creditnote.services.storage.firebase_store import (
    FirebaseAuditStorage,
    FirebaseClient,
    FirebaseCompanyProfileStorage,
    FirebaseCounterStore,
    FirebasePartyStorage,
    FirebaseTemplateStorage,
)
from creditnote.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsRegister,
)
from creditnote.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCompanyProfileStorage,
    InMemoryCounterStore,
    InMemoryCreditNoteRegister,
    InMemoryPartyStorage,
    InMemoryTemplateStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CompanyProfileStorageInterface",
    "CounterStore",
    "CreditNoteRegisterInterface",
    "PartyStorageInterface",
    "TemplateStorageInterface",
    # Exceptions
    "StorageError",
    "NotFoundError",
    "ConnectionError",
    # Firebase backends
    "FirebaseAuditStorage",
    "FirebaseClient",
    "FirebaseCompanyProfileStorage",
    "FirebaseCounterStore",
    "FirebasePartyStorage",
    "FirebaseTemplateStorage",
    # Google Sheets register
    "GoogleSheetsClient",
    "GoogleSheetsRegister",
    # In-memory backends
    "InMemoryAuditStorage",
    "InMemoryCompanyProfileStorage",
    "InMemoryCounterStore",
    "InMemoryCreditNoteRegister",
    "InMemoryPartyStorage",
    "InMemoryTemplateStorage",
]
