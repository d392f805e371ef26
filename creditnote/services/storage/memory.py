"""
In-Memory Storage Implementation

Used when no Firebase project is configured (local runs) and by the
test suite. Behaves like the Firebase implementation: same sorting,
same errors, same copy-on-read semantics.
"""

import threading
from typing import Optional
from uuid import uuid4

from creditnote.models.audit import AuditEvent
from creditnote.models.credit_note import (
    CompanyProfile,
    CreditNoteTemplate,
    IssuedCreditNote,
    Party,
)
from creditnote.services.storage.interface import (
    AuditStorageInterface,
    CompanyProfileStorageInterface,
    CounterStore,
    CreditNoteRegisterInterface,
    NotFoundError,
    PartyStorageInterface,
    TemplateStorageInterface,
)


class InMemoryCounterStore(CounterStore):
    """
    Counter guarded by a threading.Lock.

    The lock (not the event loop) provides atomicity, so the store is
    safe both for concurrent coroutines and for threads each running
    their own loop.
    """

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = threading.Lock()

    async def read(self) -> int:
        with self._lock:
            return self._value

    async def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    async def raise_to(self, value: int) -> int:
        with self._lock:
            self._value = max(self._value, value)
            return self._value


class InMemoryPartyStorage(PartyStorageInterface):

    def __init__(self, parties: Optional[list[Party]] = None):
        self._parties: dict[str, Party] = {}
        for party in parties or []:
            self._store(party)

    def _store(self, party: Party) -> str:
        party_id = party.id or uuid4().hex
        self._parties[party_id] = party.model_copy(update={"id": party_id})
        return party_id

    async def list_parties(self) -> list[Party]:
        return sorted(self._parties.values(), key=lambda p: p.name.lower())

    async def get_party(self, party_id: str) -> Optional[Party]:
        return self._parties.get(party_id)

    async def add_party(self, party: Party) -> str:
        return self._store(party.model_copy(update={"id": None}))

    async def update_party(self, party: Party) -> bool:
        if not party.id or party.id not in self._parties:
            raise NotFoundError(f"Party not found: {party.id}")
        self._parties[party.id] = party
        return True

    async def delete_party(self, party_id: str) -> bool:
        self._parties.pop(party_id, None)
        return True

    async def update_party_email(self, party_id: str, email: str) -> bool:
        party = self._parties.get(party_id)
        if party is None:
            raise NotFoundError(f"Party not found: {party_id}")
        self._parties[party_id] = party.model_copy(update={"email": email})
        return True

    async def replace_all_parties(self, parties: list[Party]) -> int:
        self._parties = {}
        for party in parties:
            self._store(party.model_copy(update={"id": None}))
        return len(self._parties)


class InMemoryTemplateStorage(TemplateStorageInterface):

    def __init__(self):
        self._templates: dict[str, CreditNoteTemplate] = {}

    async def list_templates(self) -> list[CreditNoteTemplate]:
        return sorted(self._templates.values(), key=lambda t: t.name.lower())

    async def add_template(self, template: CreditNoteTemplate) -> str:
        template_id = uuid4().hex
        self._templates[template_id] = template.model_copy(update={"id": template_id})
        return template_id

    async def update_template(self, template: CreditNoteTemplate) -> bool:
        if not template.id or template.id not in self._templates:
            raise NotFoundError(f"Template not found: {template.id}")
        self._templates[template.id] = template
        return True

    async def delete_template(self, template_id: str) -> bool:
        self._templates.pop(template_id, None)
        return True


class InMemoryCompanyProfileStorage(CompanyProfileStorageInterface):

    def __init__(self, profile: Optional[CompanyProfile] = None):
        self._profile = profile or CompanyProfile()

    async def get_profile(self) -> CompanyProfile:
        return self._profile

    async def update_profile(self, profile: CompanyProfile) -> bool:
        self._profile = profile
        return True


class InMemoryCreditNoteRegister(CreditNoteRegisterInterface):
    """Register rows held in a list, oldest first like the sheet."""

    def __init__(self, notes: Optional[list[IssuedCreditNote]] = None):
        self._notes = list(notes or [])

    def append(self, note: IssuedCreditNote) -> None:
        self._notes.append(note)

    async def list_credit_notes(self) -> list[IssuedCreditNote]:
        return list(reversed(self._notes))


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        """All events in append order."""
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
