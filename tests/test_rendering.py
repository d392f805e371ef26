"""
Tests for document rendering and the watermark cache.

Test strategy:
1. Same record, variant and timestamp give byte-identical PDFs
2. Every watermark failure degrades to "no watermark", never to an error
3. Images are generated in memory with Pillow; no network
"""

import io
import threading
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest
import requests
from PIL import Image

from creditnote.engine import compute_breakdown
from creditnote.errors import InvalidInputError
from creditnote.models.credit_note import (
    CompanyProfile,
    CreditNoteRecord,
    DocumentVariant,
    PartySnapshot,
    ReportingPeriod,
)
from creditnote.rendering import (
    DocumentRenderer,
    FetchedResource,
    WatermarkCache,
    WatermarkState,
    apply_opacity,
    http_fetch,
    terms_and_conditions,
)
from creditnote.rendering import watermark as watermark_module
from creditnote.rendering.renderer import footer_timestamp


GENERATED_AT = datetime(2025, 10, 5, 14, 30, 15, tzinfo=ZoneInfo("Asia/Kolkata"))


def png_bytes(size=(40, 20), color=(200, 30, 30, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class CountingFetcher:
    """Fetcher that records how often it was called."""

    def __init__(self, resource=None, error=None):
        self.resource = resource
        self.error = error
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, url, timeout_seconds):
        with self._lock:
            self.calls += 1
        if self.error is not None:
            raise self.error
        return self.resource


@pytest.fixture
def record():
    return CreditNoteRecord(
        cn_number="KA-EN-CN7",
        issue_date=date(2025, 10, 5),
        party=PartySnapshot(
            name="Sai Traders",
            address1="Shop 1, Market Road",
            address2="Near Bus Stand",
            city="Mapusa",
        ),
        period=ReportingPeriod(
            period_from=date(2025, 7, 1),
            period_to=date(2025, 9, 30),
            label="Q2 2025-26",
        ),
        purpose="Quarterly turnover incentive",
        breakdown=compute_breakdown(Decimal("123456.78"), Decimal("3.5")),
    )


class TestDocumentRenderer:
    """Tests for DocumentRenderer."""

    def test_renders_pdf(self, record):
        renderer = DocumentRenderer(CompanyProfile())
        artifact = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        assert artifact.content.startswith(b"%PDF")
        assert artifact.cn_number == "KA-EN-CN7"
        assert artifact.variant == DocumentVariant.PRINT
        assert artifact.media_type == "application/pdf"

    def test_print_variant_is_deterministic(self, record):
        """Test byte-identical output for identical inputs."""
        renderer = DocumentRenderer(CompanyProfile())
        first = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        second = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        assert first.content == second.content

    def test_party_variant_is_deterministic(self, record):
        renderer = DocumentRenderer(CompanyProfile())
        first = renderer.render(record, DocumentVariant.PARTY, generated_at=GENERATED_AT)
        second = renderer.render(record, DocumentVariant.PARTY, generated_at=GENERATED_AT)
        assert first.content == second.content

    def test_variants_differ(self, record):
        """Test that only the party copy carries the digital-copy note."""
        renderer = DocumentRenderer(CompanyProfile())
        party = renderer.render(record, DocumentVariant.PARTY, generated_at=GENERATED_AT)
        printed = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        assert party.content != printed.content

    def test_timestamp_changes_output(self, record):
        renderer = DocumentRenderer(CompanyProfile())
        first = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        later = renderer.render(
            record,
            DocumentVariant.PRINT,
            generated_at=GENERATED_AT.replace(second=16),
        )
        assert first.content != later.content

    def test_deterministic_with_watermark(self, record):
        fetcher = CountingFetcher(FetchedResource(200, "image/png", png_bytes()))
        renderer = DocumentRenderer(
            CompanyProfile(),
            watermark=WatermarkCache("https://example.com/logo.png", fetcher=fetcher),
        )
        first = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        second = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        assert first.content == second.content
        assert fetcher.calls == 1

    def test_watermark_failure_still_renders(self, record):
        """Test that an unreachable watermark leaves a page without it."""
        fetcher = CountingFetcher(error=requests.ConnectionError("offline"))
        watermark = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)
        with_failure = DocumentRenderer(CompanyProfile(), watermark=watermark)
        without = DocumentRenderer(CompanyProfile())

        artifact = with_failure.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        plain = without.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)

        assert watermark.state == WatermarkState.ABSENT
        assert artifact.content == plain.content

    def test_missing_purpose_rejected(self, record):
        blank = record.model_copy(update={"purpose": ""})
        with pytest.raises(InvalidInputError):
            DocumentRenderer(CompanyProfile()).render(blank, DocumentVariant.PRINT)

    def test_amount_beyond_words_rejected(self, record):
        huge = record.model_copy(
            update={"breakdown": compute_breakdown(Decimal("1000000000000"), Decimal("100"))}
        )
        with pytest.raises(InvalidInputError):
            DocumentRenderer(CompanyProfile()).render(huge, DocumentVariant.PRINT)

    def test_long_purpose_and_negative_round_off(self, record):
        long_note = record.model_copy(update={
            "purpose": "Special display and volume incentive for the festive season. " * 20,
            "breakdown": compute_breakdown(Decimal("1000"), Decimal("2.021")),
        })
        artifact = DocumentRenderer(CompanyProfile()).render(
            long_note, DocumentVariant.PARTY, generated_at=GENERATED_AT
        )
        assert artifact.content.startswith(b"%PDF")

    def test_default_timestamp(self, record):
        artifact = DocumentRenderer(CompanyProfile()).render(record, DocumentVariant.PARTY)
        assert artifact.content.startswith(b"%PDF")

    def test_company_profile_exposed(self):
        profile = CompanyProfile(name="Other Agencies")
        assert DocumentRenderer(profile).company.name == "Other Agencies"


class TestDocumentText:
    """Tests for the fixed text printed on every credit note."""

    def test_terms_name_the_company(self):
        terms = terms_and_conditions("KAMBESHWAR AGENCIES")
        assert len(terms) == 6
        assert terms[-1].startswith("6. KAMBESHWAR AGENCIES reserves the right")

    def test_footer_timestamp(self):
        assert footer_timestamp(datetime(2026, 10, 18, 14, 30, 15)) == "18/10/2026, 02:30:15 pm"
        assert footer_timestamp(datetime(2026, 1, 2, 0, 5, 9)) == "02/01/2026, 12:05:09 am"


class TestWatermarkCache:
    """Tests for WatermarkCache."""

    def test_fetches_once(self):
        fetcher = CountingFetcher(FetchedResource(200, "image/png", png_bytes()))
        cache = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)
        assert cache.state == WatermarkState.UNFETCHED

        first = cache.get()
        second = cache.get()

        assert first is not None
        assert first is second
        assert cache.state == WatermarkState.READY
        assert fetcher.calls == 1

    def test_opacity_applied(self):
        fetcher = CountingFetcher(FetchedResource(200, "image/png", png_bytes()))
        image = WatermarkCache("https://example.com/logo.png", fetcher=fetcher).get()
        assert image.mode == "RGBA"
        assert image.getpixel((0, 0))[3] == round(255 * 0.08)

    def test_no_url_is_absent(self):
        fetcher = CountingFetcher()
        cache = WatermarkCache(None, fetcher=fetcher)
        assert cache.get() is None
        assert cache.state == WatermarkState.ABSENT
        assert fetcher.calls == 0

    @pytest.mark.parametrize("resource", [
        FetchedResource(404, "text/html", b"not found"),
        FetchedResource(200, "text/html", b"<html></html>"),
        FetchedResource(200, "image/png", b"not really a png"),
    ])
    def test_bad_resources_are_absent(self, resource):
        fetcher = CountingFetcher(resource)
        cache = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)
        assert cache.get() is None
        assert cache.state == WatermarkState.ABSENT
        # Absent is final; no refetch
        assert cache.get() is None
        assert fetcher.calls == 1

    def test_timeout_is_absent(self):
        fetcher = CountingFetcher(error=requests.Timeout("slow"))
        cache = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)
        assert cache.get() is None
        assert cache.state == WatermarkState.ABSENT

    def test_reset_refetches(self):
        fetcher = CountingFetcher(FetchedResource(200, "image/png", png_bytes()))
        cache = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)
        cache.get()
        cache.reset()
        assert cache.state == WatermarkState.UNFETCHED
        cache.get()
        assert fetcher.calls == 2

    def test_concurrent_first_use_sees_one_image(self):
        fetcher = CountingFetcher(FetchedResource(200, "image/png", png_bytes()))
        cache = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)
        results = []
        results_lock = threading.Lock()

        def worker():
            image = cache.get()
            with results_lock:
                results.append(image)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 8
        assert all(image is results[0] for image in results)
        assert cache.state == WatermarkState.READY

    def test_apply_opacity_keeps_size(self):
        image = Image.new("RGB", (10, 5), (0, 0, 0))
        faded = apply_opacity(image, 0.5)
        assert faded.size == (10, 5)
        assert faded.getpixel((0, 0))[3] == 128

    def test_oversized_image_is_absent(self, monkeypatch):
        """Test that a decompression-bomb sized image is treated as missing."""
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        fetcher = CountingFetcher(FetchedResource(200, "image/png", png_bytes(size=(40, 20))))
        cache = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)

        assert cache.get() is None
        assert cache.state == WatermarkState.ABSENT
        assert cache.get() is None
        assert fetcher.calls == 1

    def test_oversized_image_never_fails_render(self, monkeypatch, record):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        fetcher = CountingFetcher(FetchedResource(200, "image/png", png_bytes(size=(40, 20))))
        watermark = WatermarkCache("https://example.com/logo.png", fetcher=fetcher)
        renderer = DocumentRenderer(CompanyProfile(), watermark=watermark)
        plain = DocumentRenderer(CompanyProfile())

        first = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)
        second = renderer.render(record, DocumentVariant.PRINT, generated_at=GENERATED_AT)

        assert first.content == second.content
        assert first.content == plain.render(
            record, DocumentVariant.PRINT, generated_at=GENERATED_AT
        ).content
        assert fetcher.calls == 1


class FakeStreamingResponse:
    """Stands in for a streamed requests.Response."""

    def __init__(self, chunks, status_code=200, content_type="image/png"):
        self.chunks = chunks
        self.status_code = status_code
        self.headers = {"content-type": content_type}

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def iter_content(self, chunk_size=1):
        yield from self.chunks


class FakeClock:
    """monotonic() replacement advancing a fixed step per call."""

    def __init__(self, step: float):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class TestHttpFetch:
    """Tests for the bounded watermark download."""

    def test_streams_body(self, monkeypatch):
        calls = []

        def fake_get(url, timeout=None, stream=False):
            calls.append({"url": url, "timeout": timeout, "stream": stream})
            return FakeStreamingResponse([b"ab", b"cd"])

        monkeypatch.setattr(watermark_module.requests, "get", fake_get)

        resource = http_fetch("https://example.com/logo.png", 5.0)

        assert resource == FetchedResource(200, "image/png", b"abcd")
        assert calls == [{"url": "https://example.com/logo.png", "timeout": 5.0, "stream": True}]

    def test_slow_body_hits_deadline(self, monkeypatch):
        """Test that a trickling server is cut off at the overall timeout."""
        monkeypatch.setattr(
            watermark_module.requests,
            "get",
            lambda url, timeout=None, stream=False: FakeStreamingResponse([b"x"] * 100),
        )
        monkeypatch.setattr(watermark_module.time, "monotonic", FakeClock(step=1.0))

        with pytest.raises(requests.Timeout):
            http_fetch("https://example.com/logo.png", 5.0)

    def test_oversized_body_rejected(self, monkeypatch):
        big_chunk = b"x" * (watermark_module.MAX_WATERMARK_BYTES + 1)
        monkeypatch.setattr(
            watermark_module.requests,
            "get",
            lambda url, timeout=None, stream=False: FakeStreamingResponse([big_chunk]),
        )
        with pytest.raises(requests.RequestException):
            http_fetch("https://example.com/logo.png", 5.0)

    def test_slow_download_leaves_cache_absent(self, monkeypatch):
        monkeypatch.setattr(
            watermark_module.requests,
            "get",
            lambda url, timeout=None, stream=False: FakeStreamingResponse([b"x"] * 100),
        )
        monkeypatch.setattr(watermark_module.time, "monotonic", FakeClock(step=1.0))

        cache = WatermarkCache("https://example.com/logo.png", timeout_seconds=5.0)

        assert cache.get() is None
        assert cache.state == WatermarkState.ABSENT
