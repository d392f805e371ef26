"""
Firebase Realtime Database Storage Implementation

DESIGN DECISION: The realtime database holds all mutable console data:
parties, templates, company settings, the audit log and the credit
note counter. It is the one place with a genuine atomic primitive
(Reference.transaction), which is what makes the counter safe.

TRADEOFFS:
- No query language (we sort and filter in Python)
- Transactions are optimistic: the SDK re-runs the update function on
  contention, so update functions must be pure

The implementation follows the abstract interface, so the console can
run fully in memory without a Firebase project.
"""

import json
from datetime import datetime
from typing import Any, Callable, Optional
from uuid import UUID

import firebase_admin
import structlog
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError
from tenacity import retry, stop_after_attempt, wait_exponential

from creditnote.config import get_settings
from creditnote.models.audit import AuditEvent, AuditEventType, AuditSeverity
from creditnote.models.credit_note import CompanyProfile, CreditNoteTemplate, Party
from creditnote.services.storage.interface import (
    AuditStorageInterface,
    CompanyProfileStorageInterface,
    ConnectionError,
    CounterStore,
    NotFoundError,
    PartyStorageInterface,
    StorageError,
    TemplateStorageInterface,
)


APP_NAME = "creditnote-console"

logger = structlog.get_logger(__name__)


class FirebaseClient:
    """
    Low-level Realtime Database client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._app: Optional[firebase_admin.App] = None
        self._settings = get_settings().firebase

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> firebase_admin.App:
        """
        Initialize (or reuse) the named Firebase app.

        Uses service account credentials for authentication.
        """
        if self._app is None:
            try:
                self._app = firebase_admin.get_app(APP_NAME)
            except ValueError:
                try:
                    cred = credentials.Certificate(self._settings.credentials_path)
                    self._app = firebase_admin.initialize_app(
                        cred,
                        {"databaseURL": self._settings.database_url},
                        name=APP_NAME,
                    )
                except FileNotFoundError:
                    raise ConnectionError(
                        f"Firebase credentials file not found: {self._settings.credentials_path}"
                    )
                except Exception as e:
                    raise ConnectionError(f"Failed to initialize Firebase: {e}")
        return self._app

    def reference(self, path: str) -> db.Reference:
        """Database reference bound to this client's app."""
        return db.reference(path, app=self.connect())


def _keyed_children(data: Any) -> list[tuple[str, dict]]:
    """Children of a collection node as (key, value) pairs."""
    if not data:
        return []
    if isinstance(data, list):
        # Realtime Database returns arrays for dense integer keys
        return [(str(i), v) for i, v in enumerate(data) if isinstance(v, dict)]
    return [(key, value) for key, value in data.items() if isinstance(value, dict)]


class FirebaseCounterStore(CounterStore):
    """
    Integer cell updated with Reference.transaction.

    The SDK reads the cell, applies the update function and commits
    only if nobody else wrote in between, retrying otherwise. That is
    the compare-and-swap the sequence allocator relies on.
    """

    def __init__(self, path: str, client: Optional[FirebaseClient] = None):
        self._client = client or FirebaseClient()
        self._path = path

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def read(self) -> int:
        try:
            value = self._client.reference(self._path).get()
        except FirebaseError as e:
            raise StorageError(f"Failed to read counter {self._path}: {e}")
        return int(value or 0)

    def _transact(self, update: Callable[[Optional[int]], int]) -> int:
        try:
            return int(self._client.reference(self._path).transaction(update))
        except db.TransactionAbortedError as e:
            raise StorageError(f"Counter {self._path} transaction aborted: {e}")
        except FirebaseError as e:
            raise StorageError(f"Failed to update counter {self._path}: {e}")

    async def increment(self) -> int:
        # Not retried: an ambiguous failure may already have committed
        return self._transact(lambda current: int(current or 0) + 1)

    async def raise_to(self, value: int) -> int:
        return self._transact(lambda current: max(int(current or 0), value))


class FirebasePartyStorage(PartyStorageInterface):
    """Parties stored as children of the party node, keyed by push id."""

    def __init__(self, client: Optional[FirebaseClient] = None):
        self._client = client or FirebaseClient()
        self._path = self._client.settings.party_path

    def _child(self, party_id: str) -> db.Reference:
        return self._client.reference(f"{self._path}/{party_id}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_parties(self) -> list[Party]:
        try:
            data = self._client.reference(self._path).get()
        except FirebaseError as e:
            raise StorageError(f"Failed to list parties: {e}")

        parties = []
        for key, value in _keyed_children(data):
            try:
                parties.append(Party(id=key, **value))
            except Exception as e:
                logger.warning("party_skipped", party_id=key, error=str(e))
        parties.sort(key=lambda p: p.name.lower())
        return parties

    async def get_party(self, party_id: str) -> Optional[Party]:
        try:
            data = self._child(party_id).get()
        except FirebaseError as e:
            raise StorageError(f"Failed to get party: {e}")
        return Party(id=party_id, **data) if data else None

    async def add_party(self, party: Party) -> str:
        try:
            new_ref = self._client.reference(self._path).push(party.to_store_dict())
            return new_ref.key
        except FirebaseError as e:
            raise StorageError(f"Failed to add party: {e}")

    async def update_party(self, party: Party) -> bool:
        if not party.id:
            raise NotFoundError("Party has no id")
        try:
            if self._child(party.id).get() is None:
                raise NotFoundError(f"Party not found: {party.id}")
            self._child(party.id).update(party.to_store_dict())
            return True
        except NotFoundError:
            raise
        except FirebaseError as e:
            raise StorageError(f"Failed to update party: {e}")

    async def delete_party(self, party_id: str) -> bool:
        try:
            self._child(party_id).delete()
            return True
        except FirebaseError as e:
            raise StorageError(f"Failed to delete party: {e}")

    async def update_party_email(self, party_id: str, email: str) -> bool:
        try:
            self._client.reference(f"{self._path}/{party_id}/email").set(email)
            return True
        except FirebaseError as e:
            raise StorageError(f"Failed to update party email: {e}")

    async def replace_all_parties(self, parties: list[Party]) -> int:
        """One set() on the collection node: readers never see a half-written list."""
        try:
            collection = self._client.reference(self._path)
            updates = {
                collection.push().key: party.to_store_dict()
                for party in parties
            }
            collection.set(updates)
            return len(updates)
        except FirebaseError as e:
            raise StorageError(f"Failed to upload parties: {e}")


class FirebaseTemplateStorage(TemplateStorageInterface):
    """Templates stored as children of the template node."""

    def __init__(self, client: Optional[FirebaseClient] = None):
        self._client = client or FirebaseClient()
        self._path = self._client.settings.template_path

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_templates(self) -> list[CreditNoteTemplate]:
        try:
            data = self._client.reference(self._path).get()
        except FirebaseError as e:
            raise StorageError(f"Failed to list templates: {e}")

        templates = []
        for key, value in _keyed_children(data):
            try:
                templates.append(CreditNoteTemplate(id=key, **value))
            except Exception as e:
                logger.warning("template_skipped", template_id=key, error=str(e))
        templates.sort(key=lambda t: t.name.lower())
        return templates

    async def add_template(self, template: CreditNoteTemplate) -> str:
        try:
            return self._client.reference(self._path).push(template.to_store_dict()).key
        except FirebaseError as e:
            raise StorageError(f"Failed to add template: {e}")

    async def update_template(self, template: CreditNoteTemplate) -> bool:
        if not template.id:
            raise NotFoundError("Template has no id")
        try:
            self._client.reference(f"{self._path}/{template.id}").update(
                template.to_store_dict()
            )
            return True
        except FirebaseError as e:
            raise StorageError(f"Failed to update template: {e}")

    async def delete_template(self, template_id: str) -> bool:
        try:
            self._client.reference(f"{self._path}/{template_id}").delete()
            return True
        except FirebaseError as e:
            raise StorageError(f"Failed to delete template: {e}")


class FirebaseCompanyProfileStorage(CompanyProfileStorageInterface):
    """Company settings node, merged over CompanyProfile defaults."""

    def __init__(self, client: Optional[FirebaseClient] = None):
        self._client = client or FirebaseClient()
        self._path = self._client.settings.settings_path

    async def get_profile(self) -> CompanyProfile:
        try:
            data = self._client.reference(self._path).get()
            return CompanyProfile(**data) if data else CompanyProfile()
        except Exception as e:
            # The masthead must still render; fall back to defaults
            logger.error("company_profile_read_failed", error=str(e))
            return CompanyProfile()

    async def update_profile(self, profile: CompanyProfile) -> bool:
        try:
            self._client.reference(self._path).update(profile.to_store_dict())
            return True
        except FirebaseError as e:
            raise StorageError(f"Failed to update settings: {e}")


class FirebaseAuditStorage(AuditStorageInterface):
    """
    Audit events pushed under the audit node.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[FirebaseClient] = None):
        self._client = client or FirebaseClient()
        self._path = self._client.settings.audit_path

    def _node_to_event(self, node: dict) -> AuditEvent:
        """Convert a stored node to an AuditEvent (older nodes only carry action/details)."""
        data = node.get("data") or ""
        return AuditEvent(
            event_id=UUID(node["eventId"]) if node.get("eventId") else None,
            timestamp=datetime.fromisoformat(node["timestamp"].replace("Z", "+00:00")),
            event_type=AuditEventType(node["action"]),
            severity=AuditSeverity(node.get("severity") or "info"),
            entity_type=node.get("entityType") or None,
            entity_id=node.get("entityId") or None,
            correlation_id=UUID(node["correlationId"]) if node.get("correlationId") else None,
            description=node.get("details", ""),
            details=json.loads(data) if data else {},
            error_message=node.get("errorMessage") or None,
            is_user_action=bool(node.get("isUserAction", False)),
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            data = self._client.reference(self._path).get()
        except FirebaseError as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for key, node in _keyed_children(data):
            try:
                events.append(self._node_to_event(node))
            except Exception:
                logger.debug("audit_node_skipped", key=key)
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._client.reference(self._path).push(event.to_store_dict())
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._all_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
