"""
Main Orchestrator for the Credit Note Console

This module ties together all the components and defines the
end-to-end flows for:
1. Credit note issuance (resolve → compute → validate → reserve →
   assemble → render ×2 → dispatch → mark consumed)
2. Preview (same pipeline, advisory number, nothing reserved or sent)
3. Register, party, template and settings maintenance

DESIGN DECISION: The orchestrator enforces the boundaries:
- Invalid input is rejected BEFORE a number is reserved
- A reserved number is never reused; if the document can't be
  rendered or dispatched, the gap is written to the audit log
- Every user action is audited

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date, datetime
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

import structlog

from creditnote.audit import AuditLogger, create_correlation_id
from creditnote.config import get_settings
from creditnote.engine import (
    business_today,
    compute_breakdown,
    resolve_period,
    rupees_in_words,
    to_decimal,
)
from creditnote.errors import DispatchError, InvalidInputError, RenderError
from creditnote.models.audit import AuditEventBuilder, AuditEventType
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
    RenderedArtifact,
    ReportingPeriod,
)
from creditnote.parties import PartyImporter
from creditnote.rendering import DocumentRenderer, WatermarkCache
from creditnote.services.dispatch import AppsScriptClient, DispatchInterface
from creditnote.services.sequence import SequenceAllocator
from creditnote.services.storage import (
    CompanyProfileStorageInterface,
    CreditNoteRegisterInterface,
    FirebaseAuditStorage,
    FirebaseClient,
    FirebaseCompanyProfileStorage,
    FirebaseCounterStore,
    FirebasePartyStorage,
    FirebaseTemplateStorage,
    GoogleSheetsRegister,
    InMemoryAuditStorage,
    InMemoryCompanyProfileStorage,
    InMemoryCounterStore,
    InMemoryCreditNoteRegister,
    InMemoryPartyStorage,
    InMemoryTemplateStorage,
    PartyStorageInterface,
    TemplateStorageInterface,
)


logger = structlog.get_logger(__name__)


class CreditNoteWorkflow:
    """
    Orchestrates credit note issuance.

    Flow:
    1. Validate → amounts > 0, party named (nothing reserved yet)
    2. Resolve → reporting period from the mode and today's date
    3. Compute → monetary breakdown, amount in words
    4. Reserve → atomic number from the counter store
    5. Assemble → immutable CreditNoteRecord
    6. Render → party copy and printer copy
    7. Dispatch → script endpoint stores and mails both
    8. Commit → mark the number consumed, audit CREATE_CN

    Failures after step 4 burn the number and audit the gap.
    """

    def __init__(
        self,
        allocator: SequenceAllocator,
        dispatcher: DispatchInterface,
        profile_storage: CompanyProfileStorageInterface,
        watermark: Optional[WatermarkCache] = None,
        audit_logger: Optional[AuditLogger] = None,
        party_storage: Optional[PartyStorageInterface] = None,
        timezone: str = DEFAULT_BUSINESS_TIMEZONE,
    ):
        self._allocator = allocator
        self._dispatcher = dispatcher
        self._profile_storage = profile_storage
        self._watermark = watermark
        self._audit_logger = audit_logger or AuditLogger()
        self._party_storage = party_storage
        self._timezone = timezone

    @property
    def allocator(self) -> SequenceAllocator:
        return self._allocator

    async def renderer(self) -> DocumentRenderer:
        """Renderer for the company profile as currently stored."""
        profile = await self._profile_storage.get_profile()
        return DocumentRenderer(profile, watermark=self._watermark, timezone=self._timezone)

    def _validate(self, request: CreditNoteRequest) -> None:
        base = to_decimal(request.base_amount, "Net sales amount")
        pct = to_decimal(request.percentage, "Credit note percentage")
        if base <= 0 or pct <= 0:
            raise InvalidInputError("Net Sales and CN % must be greater than zero.")
        if not request.party.name.strip():
            raise InvalidInputError("Please select a party.")
        if not request.purpose.strip():
            raise InvalidInputError("Purpose is required.")

    def compute(
        self,
        request: CreditNoteRequest,
        today: Optional[date] = None,
    ) -> tuple[ReportingPeriod, MonetaryBreakdown]:
        """
        Resolve the period and the figures for a request.

        Used by the form for live figures; reserves nothing.

        Raises:
            InvalidInputError: Invalid amounts, period or word range
        """
        today = today or business_today(self._timezone)
        period = resolve_period(request.period_mode, today, request.custom_period)
        breakdown = compute_breakdown(request.base_amount, request.percentage)
        # Fails now, not after a number was burnt
        rupees_in_words(breakdown.final_amount)
        return period, breakdown

    def _assemble(
        self,
        request: CreditNoteRequest,
        cn_number: str,
        period: ReportingPeriod,
        breakdown: MonetaryBreakdown,
    ) -> CreditNoteRecord:
        return CreditNoteRecord(
            cn_number=cn_number,
            issue_date=request.issue_date,
            party=PartySnapshot.from_party(request.party),
            period=period,
            purpose=request.purpose,
            breakdown=breakdown,
            party_email=request.party_email or request.party.email,
            party_whatsapp=request.party.whatsapp_number,
        )

    async def preview(
        self,
        request: CreditNoteRequest,
        today: Optional[date] = None,
        generated_at: Optional[datetime] = None,
    ) -> RenderedArtifact:
        """
        Render the party copy with the ADVISORY next number.

        Nothing is reserved, dispatched or audited.
        """
        self._validate(request)
        period, breakdown = self.compute(request, today)
        value = await self._allocator.preview_next()
        record = self._assemble(request, self._allocator.format_number(value), period, breakdown)
        renderer = await self.renderer()
        return renderer.render(record, DocumentVariant.PARTY, generated_at)

    async def issue(
        self,
        request: CreditNoteRequest,
        today: Optional[date] = None,
        generated_at: Optional[datetime] = None,
    ) -> IssueOutcome:
        """
        Issue a credit note.

        Args:
            request: The filled-in form
            today: Business date used for period resolution (default: today)
            generated_at: Footer timestamp for both documents (default: now)

        Returns:
            IssueOutcome with the record, both PDFs and the endpoint's answer

        Raises:
            InvalidInputError: Rejected before anything was reserved
            AllocationError: No number could be reserved
            RenderError / DispatchError: A number was reserved and is now a gap
        """
        correlation_id = create_correlation_id()
        log = logger.bind(correlation_id=str(correlation_id), party=request.party.name)

        # Steps 1-3: nothing is mutated until these pass
        self._validate(request)
        period, breakdown = self.compute(request, today)
        renderer = await self.renderer()
        if generated_at is None:
            generated_at = datetime.now(ZoneInfo(self._timezone))

        # Step 4: reserve
        value = await self._allocator.reserve_next()
        cn_number = self._allocator.format_number(value)
        log = log.bind(cn_number=cn_number)
        await self._audit_logger.log_number_reserved(cn_number, value, correlation_id)

        # Steps 5-6: assemble and render
        try:
            record = self._assemble(request, cn_number, period, breakdown)
            party_pdf = renderer.render(record, DocumentVariant.PARTY, generated_at)
            print_pdf = renderer.render(record, DocumentVariant.PRINT, generated_at)
        except (RenderError, InvalidInputError) as e:
            log.error("issuance_render_failed", error=str(e))
            await self._audit_logger.log_number_gap(cn_number, "render", str(e), correlation_id)
            raise

        # Step 7: dispatch
        try:
            dispatch = await self._dispatcher.process_credit_note(record, party_pdf, print_pdf)
        except DispatchError as e:
            log.error("issuance_dispatch_failed", error=str(e))
            await self._audit_logger.log_number_gap(cn_number, "dispatch", str(e), correlation_id)
            await self._audit_logger.log_external_service_error(
                "script_endpoint", str(e), correlation_id
            )
            raise

        # Step 8: commit
        await self._allocator.mark_consumed(value)
        await self._remember_email(request)
        await self._audit_logger.log_credit_note_created(
            cn_number=cn_number,
            party_name=record.party.name,
            final_amount=breakdown.final_amount,
            issue_date=record.issue_date.isoformat(),
            correlation_id=correlation_id,
        )
        log.info("credit_note_issued", final_amount=breakdown.final_amount)

        return IssueOutcome(
            record=record,
            party_artifact=party_pdf,
            print_artifact=print_pdf,
            dispatch=dispatch,
        )

    async def _remember_email(self, request: CreditNoteRequest) -> None:
        """Store an email typed on the form against the party."""
        party = request.party
        if not (self._party_storage and party.id and request.party_email):
            return
        if request.party_email == party.email:
            return
        try:
            await self._party_storage.update_party_email(party.id, request.party_email)
        except Exception as e:
            # The credit note is already out; the address is a convenience
            logger.warning("party_email_update_failed", party_id=party.id, error=str(e))


class CreditNoteRegister:
    """
    Issued credit notes: listing and re-sending.

    The register is read from the script endpoint unless a sheet-backed
    register is supplied.
    """

    def __init__(
        self,
        register: CreditNoteRegisterInterface,
        dispatcher: DispatchInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._register = register
        self._dispatcher = dispatcher
        self._audit_logger = audit_logger or AuditLogger()

    async def list_notes(self) -> list[IssuedCreditNote]:
        """All issued notes, newest first."""
        return await self._register.list_credit_notes()

    async def notes_for_party(self, party_name: str) -> list[IssuedCreditNote]:
        """Ledger of one party, newest first."""
        notes = await self.list_notes()
        return [n for n in notes if n.party_name == party_name]

    async def resend(
        self,
        note: IssuedCreditNote,
        recipient: DispatchRecipient,
    ) -> DispatchResult:
        result = await self._dispatcher.resend(note, recipient)
        await self._audit_logger.log_credit_note_resent(
            cn_number=note.cn_number,
            party_name=note.party_name,
            to_party=recipient == DispatchRecipient.PARTY,
        )
        return result


class MasterDataFlow:
    """Party, template and company settings maintenance, audited."""

    def __init__(
        self,
        party_storage: PartyStorageInterface,
        template_storage: TemplateStorageInterface,
        profile_storage: CompanyProfileStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        importer: Optional[PartyImporter] = None,
    ):
        self._parties = party_storage
        self._templates = template_storage
        self._profile = profile_storage
        self._audit_logger = audit_logger or AuditLogger()
        self._importer = importer or PartyImporter()

    # Parties

    async def list_parties(self) -> list[Party]:
        return await self._parties.list_parties()

    async def save_party(self, party: Party) -> str:
        """Create the party, or update it when it already has an id."""
        if party.id:
            await self._parties.update_party(party)
            party_id = party.id
            event_type = AuditEventType.PARTY_UPDATED
        else:
            party_id = await self._parties.add_party(party)
            event_type = AuditEventType.PARTY_CREATED
        await self._audit_logger.log(
            AuditEventBuilder.party_changed(event_type, party_id, party.name)
        )
        return party_id

    async def delete_party(self, party: Party) -> None:
        if not party.id:
            return
        await self._parties.delete_party(party.id)
        await self._audit_logger.log(
            AuditEventBuilder.party_changed(AuditEventType.PARTY_DELETED, party.id, party.name)
        )

    def parse_party_workbook(self, content: bytes) -> list[Party]:
        """Parse an upload for confirmation; stores nothing."""
        return self._importer.parse_workbook(content)

    async def replace_parties(self, parties: list[Party], filename: str) -> int:
        """Replace ALL parties with a confirmed upload."""
        count = await self._parties.replace_all_parties(parties)
        await self._audit_logger.log(AuditEventBuilder.parties_uploaded(count, filename))
        return count

    # Templates

    async def list_templates(self) -> list[CreditNoteTemplate]:
        return await self._templates.list_templates()

    async def save_template(self, template: CreditNoteTemplate) -> str:
        if template.id:
            await self._templates.update_template(template)
            template_id = template.id
            event_type = AuditEventType.TEMPLATE_UPDATED
        else:
            template_id = await self._templates.add_template(template)
            event_type = AuditEventType.TEMPLATE_CREATED
        await self._audit_logger.log(
            AuditEventBuilder.template_changed(event_type, template_id, template.name)
        )
        return template_id

    async def delete_template(self, template: CreditNoteTemplate) -> None:
        if not template.id:
            return
        await self._templates.delete_template(template.id)
        await self._audit_logger.log(
            AuditEventBuilder.template_changed(
                AuditEventType.TEMPLATE_DELETED, template.id, template.name
            )
        )

    # Settings

    async def get_profile(self) -> CompanyProfile:
        return await self._profile.get_profile()

    async def update_profile(self, profile: CompanyProfile) -> None:
        await self._profile.update_profile(profile)
        await self._audit_logger.log(AuditEventBuilder.settings_updated())


class AppComponents(NamedTuple):
    workflow: CreditNoteWorkflow
    register: CreditNoteRegister
    master_data: MasterDataFlow
    audit_logger: AuditLogger


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Firebase storage.
                    Set to False for testing without storage.

    Without Firebase every store is in memory: numbers restart at 1
    and nothing survives a restart.
    """
    settings = get_settings()
    document = settings.document

    party_storage = None
    template_storage = None
    profile_storage = None
    counter = None
    last_issued = None
    audit_logger = None

    if use_storage:
        try:
            client = FirebaseClient()
            client.connect()
            party_storage = FirebasePartyStorage(client)
            template_storage = FirebaseTemplateStorage(client)
            profile_storage = FirebaseCompanyProfileStorage(client)
            counter = FirebaseCounterStore(client.settings.counter_path, client)
            last_issued = FirebaseCounterStore(client.settings.last_issued_path, client)
            audit_logger = AuditLogger(FirebaseAuditStorage(client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("firebase_not_configured", error=str(e))
            party_storage = None

    if party_storage is None:
        party_storage = InMemoryPartyStorage()
        template_storage = InMemoryTemplateStorage()
        profile_storage = InMemoryCompanyProfileStorage()
        counter = InMemoryCounterStore()
        last_issued = InMemoryCounterStore()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    dispatcher = AppsScriptClient()

    register: CreditNoteRegisterInterface = dispatcher
    if use_storage:
        try:
            sheets_settings = settings.google_sheets
            register = GoogleSheetsRegister()
            logger.info("register_from_sheet", spreadsheet_id=sheets_settings.spreadsheet_id)
        except Exception as e:
            logger.info("register_from_script_endpoint", reason=str(e))
            register = dispatcher
    else:
        register = InMemoryCreditNoteRegister()

    workflow = CreditNoteWorkflow(
        allocator=SequenceAllocator(counter, last_issued, prefix=document.number_prefix),
        dispatcher=dispatcher,
        profile_storage=profile_storage,
        watermark=WatermarkCache(
            document.watermark_url,
            timeout_seconds=document.watermark_timeout_seconds,
        ),
        audit_logger=audit_logger,
        party_storage=party_storage,
        timezone=document.business_timezone,
    )

    return AppComponents(
        workflow=workflow,
        register=CreditNoteRegister(register, dispatcher, audit_logger),
        master_data=MasterDataFlow(
            party_storage,
            template_storage,
            profile_storage,
            audit_logger,
        ),
        audit_logger=audit_logger,
    )
