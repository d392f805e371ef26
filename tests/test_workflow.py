"""
Tests for the issuance and maintenance flows.

Test strategy:
1. End-to-end issuance over in-memory stores and a fake dispatcher
2. Failures after reservation leave an audited gap, never a reused number
3. Invalid input and previews reserve nothing
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from creditnote.audit import AuditLogger
from creditnote.errors import DispatchError, InvalidInputError, RenderError
from creditnote.models.audit import AuditEventType
from creditnote.models.credit_note import (
    CompanyProfile,
    CreditNoteRecord,
    CreditNoteRequest,
    CreditNoteTemplate,
    DispatchRecipient,
    DispatchResult,
    DocumentVariant,
    IssuedCreditNote,
    Party,
    PeriodMode,
    RenderedArtifact,
    ReportingPeriod,
)
from creditnote.orchestrator import (
    CreditNoteRegister,
    CreditNoteWorkflow,
    MasterDataFlow,
)
from creditnote.services.dispatch import DispatchInterface
from creditnote.services.sequence import SequenceAllocator
from creditnote.services.storage import (
    InMemoryAuditStorage,
    InMemoryCompanyProfileStorage,
    InMemoryCounterStore,
    InMemoryCreditNoteRegister,
    InMemoryPartyStorage,
    InMemoryTemplateStorage,
    NotFoundError,
)


TODAY = date(2025, 10, 18)
GENERATED_AT = datetime(2025, 10, 18, 11, 0, 0, tzinfo=ZoneInfo("Asia/Kolkata"))


class FakeDispatcher(DispatchInterface):
    """Records what it was given; fails the first `failures` calls."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.processed: list[tuple[CreditNoteRecord, RenderedArtifact, RenderedArtifact]] = []
        self.resent: list[tuple[str, DispatchRecipient]] = []

    async def process_credit_note(self, record, party_pdf, print_pdf) -> DispatchResult:
        if self.failures:
            self.failures -= 1
            raise DispatchError("Failed to send email.", "Quota exceeded")
        self.processed.append((record, party_pdf, print_pdf))
        return DispatchResult(
            success=True,
            message="Credit note processed",
            pdf_link=f"https://drive.example.com/{record.cn_number}",
        )

    async def resend(self, note, recipient) -> DispatchResult:
        self.resent.append((note.cn_number, recipient))
        return DispatchResult(success=True, message="Re-sent")


class BrokenWatermark:
    """Watermark whose first `failures` lookups blow up mid-render."""

    def __init__(self, failures: int):
        self.failures = failures

    def get(self):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("corrupt watermark")
        return None


class Harness:
    """A workflow wired to in-memory stores."""

    def __init__(self, counter_start: int = 0, failures: int = 0, watermark=None):
        self.counter = InMemoryCounterStore(initial=counter_start)
        self.last_issued = InMemoryCounterStore()
        self.dispatcher = FakeDispatcher(failures)
        self.audit_storage = InMemoryAuditStorage()
        self.parties = InMemoryPartyStorage()
        self.workflow = CreditNoteWorkflow(
            allocator=SequenceAllocator(self.counter, self.last_issued, prefix="KA-EN-CN"),
            dispatcher=self.dispatcher,
            profile_storage=InMemoryCompanyProfileStorage(),
            audit_logger=AuditLogger(self.audit_storage),
            party_storage=self.parties,
            watermark=watermark,
        )

    def event_types(self) -> list[AuditEventType]:
        return [e.event_type for e in self.audit_storage.events]


def make_request(**overrides) -> CreditNoteRequest:
    values = dict(
        party=Party(id="p1", name="Sai Traders", address1="Shop 1", city="Mapusa"),
        issue_date=date(2025, 10, 18),
        period_mode=PeriodMode.QUARTER,
        purpose="Quarterly turnover incentive",
        base_amount=Decimal("123456.78"),
        percentage=Decimal("3.5"),
    )
    values.update(overrides)
    return CreditNoteRequest(**values)


class TestIssue:
    """Tests for CreditNoteWorkflow.issue."""

    def test_end_to_end(self):
        harness = Harness(counter_start=41)

        outcome = asyncio.run(
            harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT)
        )

        record = outcome.record
        assert record.cn_number == "KA-EN-CN42"
        assert record.period.label == "Q2 2025-26"
        assert record.period.period_from == date(2025, 7, 1)
        assert record.breakdown.final_amount == 4321
        assert record.breakdown.round_off == Decimal("0.0127")
        assert outcome.party_artifact.variant == DocumentVariant.PARTY
        assert outcome.print_artifact.variant == DocumentVariant.PRINT
        assert outcome.dispatch.pdf_link == "https://drive.example.com/KA-EN-CN42"

        assert len(harness.dispatcher.processed) == 1
        assert asyncio.run(harness.last_issued.read()) == 42
        assert harness.event_types() == [
            AuditEventType.CN_NUMBER_RESERVED,
            AuditEventType.CN_CREATED,
        ]

    def test_both_copies_share_record_and_timestamp(self):
        harness = Harness()
        outcome = asyncio.run(
            harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT)
        )
        renderer = asyncio.run(harness.workflow.renderer())
        again = renderer.render(outcome.record, DocumentVariant.PRINT, GENERATED_AT)
        assert again.content == outcome.print_artifact.content

    def test_sequential_issues_increment(self):
        harness = Harness()

        async def run():
            first = await harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT)
            second = await harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT)
            return first.record.cn_number, second.record.cn_number

        assert asyncio.run(run()) == ("KA-EN-CN1", "KA-EN-CN2")

    def test_concurrent_issues_never_share_a_number(self):
        harness = Harness()

        async def run():
            return await asyncio.gather(*(
                harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT)
                for _ in range(5)
            ))

        outcomes = asyncio.run(run())
        numbers = sorted(o.record.cn_number for o in outcomes)
        assert numbers == [f"KA-EN-CN{i}" for i in range(1, 6)]

    def test_dispatch_failure_burns_number(self):
        """Test that a failed dispatch leaves an audited gap and the next issue moves on."""
        harness = Harness(failures=1)

        with pytest.raises(DispatchError, match="Quota exceeded"):
            asyncio.run(harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT))

        gap = [e for e in harness.audit_storage.events if e.event_type == AuditEventType.CN_NUMBER_GAP]
        assert len(gap) == 1
        assert gap[0].entity_id == "KA-EN-CN1"
        assert gap[0].details == {"stage": "dispatch"}
        assert AuditEventType.EXTERNAL_SERVICE_ERROR in harness.event_types()
        assert AuditEventType.CN_CREATED not in harness.event_types()
        assert asyncio.run(harness.last_issued.read()) == 0

        outcome = asyncio.run(
            harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT)
        )
        assert outcome.record.cn_number == "KA-EN-CN2"

    def test_render_failure_burns_number(self):
        """Test that a render failure after reservation is audited and nothing is dispatched."""
        harness = Harness(watermark=BrokenWatermark(failures=1))

        with pytest.raises(RenderError):
            asyncio.run(harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT))

        gap = [e for e in harness.audit_storage.events if e.event_type == AuditEventType.CN_NUMBER_GAP]
        assert len(gap) == 1
        assert gap[0].entity_id == "KA-EN-CN1"
        assert gap[0].details == {"stage": "render"}
        assert AuditEventType.CN_CREATED not in harness.event_types()
        assert asyncio.run(harness.last_issued.read()) == 0
        assert harness.dispatcher.processed == []

        outcome = asyncio.run(
            harness.workflow.issue(make_request(), today=TODAY, generated_at=GENERATED_AT)
        )
        assert outcome.record.cn_number == "KA-EN-CN2"
        assert asyncio.run(harness.last_issued.read()) == 2

    @pytest.mark.parametrize("overrides", [
        {"base_amount": Decimal("0")},
        {"percentage": Decimal("0")},
        {"base_amount": Decimal("-100")},
        {"purpose": "   "},
        {"base_amount": Decimal("10000000000000")},
    ])
    def test_invalid_input_reserves_nothing(self, overrides):
        harness = Harness(counter_start=9)

        with pytest.raises(InvalidInputError):
            asyncio.run(harness.workflow.issue(make_request(**overrides), today=TODAY))

        assert asyncio.run(harness.counter.read()) == 9
        assert harness.dispatcher.processed == []
        assert harness.audit_storage.events == []

    def test_custom_period(self):
        harness = Harness()
        request = make_request(
            period_mode=PeriodMode.CUSTOM,
            custom_period=ReportingPeriod(
                period_from=date(2025, 4, 1),
                period_to=date(2025, 9, 30),
                label="H1 2025-26",
            ),
        )
        outcome = asyncio.run(harness.workflow.issue(request, today=TODAY, generated_at=GENERATED_AT))
        assert outcome.record.period.label == "H1 2025-26"

    def test_month_mode(self):
        harness = Harness()
        request = make_request(period_mode=PeriodMode.MONTH)
        outcome = asyncio.run(harness.workflow.issue(request, today=TODAY, generated_at=GENERATED_AT))
        assert outcome.record.period.label == "September 2025"

    def test_party_snapshot_is_independent_of_later_edits(self):
        harness = Harness()
        request = make_request()
        outcome = asyncio.run(harness.workflow.issue(request, today=TODAY, generated_at=GENERATED_AT))
        request.party.address1 = "New Shop"
        assert outcome.record.party.address1 == "Shop 1"

    def test_typed_email_is_remembered(self):
        harness = Harness()
        party_id = asyncio.run(harness.parties.add_party(Party(name="Sai Traders")))
        party = asyncio.run(harness.parties.get_party(party_id))
        request = make_request(party=party, party_email="accounts@sai.example.com")

        outcome = asyncio.run(harness.workflow.issue(request, today=TODAY, generated_at=GENERATED_AT))

        assert outcome.record.party_email == "accounts@sai.example.com"
        stored = asyncio.run(harness.parties.get_party(party_id))
        assert stored.email == "accounts@sai.example.com"

    def test_email_update_failure_does_not_fail_issue(self):
        """Test that a party missing from storage only logs a warning."""
        harness = Harness()
        request = make_request(party_email="accounts@sai.example.com")
        outcome = asyncio.run(harness.workflow.issue(request, today=TODAY, generated_at=GENERATED_AT))
        assert outcome.record.cn_number == "KA-EN-CN1"


class TestPreview:
    """Tests for CreditNoteWorkflow.preview."""

    def test_preview_uses_advisory_number(self):
        harness = Harness(counter_start=6)

        artifact = asyncio.run(
            harness.workflow.preview(make_request(), today=TODAY, generated_at=GENERATED_AT)
        )

        assert artifact.cn_number == "KA-EN-CN7"
        assert artifact.variant == DocumentVariant.PARTY
        assert asyncio.run(harness.counter.read()) == 6
        assert harness.dispatcher.processed == []
        assert harness.audit_storage.events == []

    def test_preview_rejects_invalid_input(self):
        harness = Harness()
        with pytest.raises(InvalidInputError):
            asyncio.run(harness.workflow.preview(make_request(percentage=Decimal("0")), today=TODAY))

    def test_compute_live_figures(self):
        harness = Harness()
        period, breakdown = harness.workflow.compute(make_request(), today=TODAY)
        assert period.label == "Q2 2025-26"
        assert breakdown.final_amount == 4321


class TestCreditNoteRegister:
    """Tests for the register flow."""

    @pytest.fixture
    def notes(self):
        return [
            IssuedCreditNote(cn_number="KA-EN-CN1", date=date(2025, 4, 2), party_name="Sai Traders"),
            IssuedCreditNote(cn_number="KA-EN-CN2", date=date(2025, 5, 2), party_name="Om Stores"),
            IssuedCreditNote(cn_number="KA-EN-CN3", date=date(2025, 6, 2), party_name="Sai Traders"),
        ]

    def test_list_newest_first(self, notes):
        register = CreditNoteRegister(InMemoryCreditNoteRegister(notes), FakeDispatcher())
        listed = asyncio.run(register.list_notes())
        assert [n.cn_number for n in listed] == ["KA-EN-CN3", "KA-EN-CN2", "KA-EN-CN1"]

    def test_party_ledger(self, notes):
        register = CreditNoteRegister(InMemoryCreditNoteRegister(notes), FakeDispatcher())
        ledger = asyncio.run(register.notes_for_party("Sai Traders"))
        assert [n.cn_number for n in ledger] == ["KA-EN-CN3", "KA-EN-CN1"]

    def test_resend_is_audited(self, notes):
        dispatcher = FakeDispatcher()
        audit_storage = InMemoryAuditStorage()
        register = CreditNoteRegister(
            InMemoryCreditNoteRegister(notes), dispatcher, AuditLogger(audit_storage)
        )

        asyncio.run(register.resend(notes[0], DispatchRecipient.HEAD_OFFICE))

        assert dispatcher.resent == [("KA-EN-CN1", DispatchRecipient.HEAD_OFFICE)]
        assert [e.event_type for e in audit_storage.events] == [
            AuditEventType.CN_RESENT_TO_HEAD_OFFICE
        ]


class TestMasterDataFlow:
    """Tests for party, template and settings maintenance."""

    @pytest.fixture
    def audit_storage(self):
        return InMemoryAuditStorage()

    @pytest.fixture
    def flow(self, audit_storage):
        return MasterDataFlow(
            InMemoryPartyStorage(),
            InMemoryTemplateStorage(),
            InMemoryCompanyProfileStorage(),
            AuditLogger(audit_storage),
        )

    def test_party_lifecycle(self, flow, audit_storage):
        async def run():
            party_id = await flow.save_party(Party(name="Sai Traders"))
            saved = (await flow.list_parties())[0]
            await flow.save_party(saved.model_copy(update={"city": "Panaji"}))
            updated = (await flow.list_parties())[0]
            await flow.delete_party(updated)
            return party_id, updated, await flow.list_parties()

        party_id, updated, remaining = asyncio.run(run())

        assert updated.id == party_id
        assert updated.city == "Panaji"
        assert remaining == []
        assert [e.event_type for e in audit_storage.events] == [
            AuditEventType.PARTY_CREATED,
            AuditEventType.PARTY_UPDATED,
            AuditEventType.PARTY_DELETED,
        ]

    def test_update_missing_party(self, flow):
        with pytest.raises(NotFoundError):
            asyncio.run(flow.save_party(Party(id="ghost", name="Nobody")))

    def test_replace_parties(self, flow, audit_storage):
        async def run():
            await flow.save_party(Party(name="Old Party"))
            count = await flow.replace_parties(
                [Party(name="Zen Mart"), Party(name="alpha stores")],
                "parties.xlsx",
            )
            return count, await flow.list_parties()

        count, parties = asyncio.run(run())

        assert count == 2
        assert [p.name for p in parties] == ["alpha stores", "Zen Mart"]
        upload = audit_storage.events[-1]
        assert upload.event_type == AuditEventType.PARTIES_UPLOADED
        assert upload.description == "Uploaded and replaced 2 parties from file: parties.xlsx."

    def test_template_lifecycle(self, flow, audit_storage):
        template = CreditNoteTemplate(
            name="Quarterly",
            party_id="p1",
            party_name="Sai Traders",
            purpose="Incentive",
            cn_percentage=Decimal("2.5"),
        )

        async def run():
            await flow.save_template(template)
            saved = (await flow.list_templates())[0]
            await flow.save_template(saved.model_copy(update={"cn_percentage": Decimal("3")}))
            updated = (await flow.list_templates())[0]
            await flow.delete_template(updated)
            return updated, await flow.list_templates()

        updated, remaining = asyncio.run(run())

        assert updated.cn_percentage == Decimal("3")
        assert remaining == []
        assert [e.event_type for e in audit_storage.events] == [
            AuditEventType.TEMPLATE_CREATED,
            AuditEventType.TEMPLATE_UPDATED,
            AuditEventType.TEMPLATE_DELETED,
        ]

    def test_update_profile(self, flow, audit_storage):
        async def run():
            profile = await flow.get_profile()
            await flow.update_profile(profile.model_copy(update={"name": "New Agencies"}))
            return await flow.get_profile()

        assert asyncio.run(run()).name == "New Agencies"
        assert audit_storage.events[-1].event_type == AuditEventType.SETTINGS_UPDATED

    def test_profile_defaults(self, flow):
        assert asyncio.run(flow.get_profile()) == CompanyProfile()
