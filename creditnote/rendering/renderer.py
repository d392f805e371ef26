"""
Credit Note Document Renderer

Draws one A4 portrait page with ReportLab's canvas. The layout is fixed
and expressed in millimetres measured from the TOP of the page, the way
the paper form was designed:

    masthead (company, address, contact, GSTIN | UDYAM | state code)
    title rules + "CREDIT NOTE"
    BILL TO block | credit note details
    PURPOSE
    CALCULATION DETAILS (4-row grid, final row bold and shaded)
    TOTAL CREDIT NOTE AMOUNT
    AMOUNT IN WORDS
    TERMS & CONDITIONS
    signature block
    footer rule + generation timestamp

CRITICAL: Rendering is deterministic. The canvas runs in invariant mode
(no creation date or random document id in the file) and the footer
timestamp is a parameter, so the same record, variant and timestamp
always give the same bytes.
"""

import io
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

from creditnote.engine.formatting import (
    format_inr,
    format_percentage,
    format_round_off,
)
from creditnote.engine.words import rupees_in_words
from creditnote.errors import InvalidInputError, RenderError
from creditnote.models.credit_note import (
    DEFAULT_BUSINESS_TIMEZONE,
    CompanyProfile,
    CreditNoteRecord,
    DocumentVariant,
    RenderedArtifact,
)
from creditnote.rendering.watermark import WatermarkCache


logger = structlog.get_logger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4

# Layout, in mm
LEFT_MARGIN = 18
TOP_MARGIN = 12
CONTENT_WIDTH = 210 - 2 * LEFT_MARGIN
CENTER_X = 105
RIGHT_EDGE = LEFT_MARGIN + CONTENT_WIDTH
DETAILS_X = LEFT_MARGIN + 105
DIVIDER_X = LEFT_MARGIN + 99
VALUE_OFFSET = 32
LABEL_COLUMN_WIDTH = 110
TABLE_ROW_HEIGHT = 10
PURPOSE_MAX_LINES = 4
SIGNATURE_MIN_Y = 240
SIGNATURE_MAX_Y = 255
FOOTER_Y = 287
WATERMARK_WIDTH = 100

REGULAR = "Times-Roman"
BOLD = "Times-Bold"
ITALIC = "Times-Italic"

FINAL_ROW_SHADE = colors.HexColor("#e0e0e0")
GRID_COLOR = colors.HexColor("#c8c8c8")


def terms_and_conditions(company_name: str) -> list[str]:
    return [
        "1. This Credit Note is non-refundable and cannot be exchanged for cash.",
        "2. The value can only be used for the adjustment of outstanding or future invoices.",
        "3. This Credit Note is issued exclusively to the party named herein and is non-transferable.",
        "4. Any discrepancies must be reported in writing within 7 business days of receipt.",
        "5. All disputes are subject to the exclusive jurisdiction of the courts in Goa.",
        f"6. {company_name} reserves the right to amend these terms at its sole discretion.",
    ]


def footer_timestamp(moment: datetime) -> str:
    """'18/10/2026, 02:30:15 pm'"""
    return moment.strftime("%d/%m/%Y, %I:%M:%S %p").replace("AM", "am").replace("PM", "pm")


class _Page:
    """Canvas wrapper taking millimetres from the top-left corner."""

    def __init__(self, pdf: canvas.Canvas):
        self.pdf = pdf

    @staticmethod
    def y(top_mm: float) -> float:
        return PAGE_HEIGHT - top_mm * mm

    def font(self, name: str, size: float) -> None:
        self.pdf.setFont(name, size)

    def text(self, x: float, y: float, value: str) -> None:
        self.pdf.drawString(x * mm, self.y(y), value)

    def centred(self, y: float, value: str) -> None:
        self.pdf.drawCentredString(CENTER_X * mm, self.y(y), value)

    def right(self, y: float, value: str) -> None:
        self.pdf.drawRightString(RIGHT_EDGE * mm, self.y(y), value)

    def rule(self, y: float, width: float = 0.25) -> None:
        self.line(LEFT_MARGIN, y, RIGHT_EDGE, y, width)

    def line(self, x1: float, y1: float, x2: float, y2: float, width: float = 0.25) -> None:
        self.pdf.setLineWidth(width * mm)
        self.pdf.line(x1 * mm, self.y(y1), x2 * mm, self.y(y2))

    def wrap(self, value: str, font: str, size: float) -> list[str]:
        return simpleSplit(value, font, size, CONTENT_WIDTH * mm)


class DocumentRenderer:
    """
    Renders credit note PDFs for one issuing company.

    Usage:
        renderer = DocumentRenderer(profile, watermark=WatermarkCache(url))
        artifact = renderer.render(record, DocumentVariant.PRINT)
    """

    def __init__(
        self,
        company: CompanyProfile,
        watermark: Optional[WatermarkCache] = None,
        timezone: str = DEFAULT_BUSINESS_TIMEZONE,
    ):
        self._company = company
        self._watermark = watermark
        self._timezone = ZoneInfo(timezone)

    @property
    def company(self) -> CompanyProfile:
        return self._company

    def render(
        self,
        record: CreditNoteRecord,
        variant: DocumentVariant,
        generated_at: Optional[datetime] = None,
    ) -> RenderedArtifact:
        """
        Draw the credit note.

        Args:
            record: The credit note to draw
            variant: PARTY adds the digital-copy note, PRINT omits it
            generated_at: Footer timestamp; defaults to now in the business timezone

        Raises:
            InvalidInputError: Record is missing required text or the amount
                can't be written in words. Raised before anything is drawn.
            RenderError: The PDF surface failed
        """
        missing = record.missing_fields()
        if missing:
            raise InvalidInputError(f"Credit note is missing: {', '.join(missing)}")
        words = rupees_in_words(record.breakdown.final_amount)

        if generated_at is None:
            generated_at = datetime.now(self._timezone)

        buffer = io.BytesIO()
        try:
            pdf = canvas.Canvas(buffer, pagesize=A4, invariant=1)
            pdf.setTitle(f"Credit Note {record.cn_number}")
            page = _Page(pdf)
            self._draw_watermark(pdf)
            self._draw(page, record, variant, words, generated_at)
            pdf.showPage()
            pdf.save()
        except Exception as e:
            logger.error("render_failed", cn_number=record.cn_number, variant=variant.value, error=str(e))
            raise RenderError(f"Could not render credit note {record.cn_number}: {e}") from e

        return RenderedArtifact(
            cn_number=record.cn_number,
            variant=variant,
            content=buffer.getvalue(),
        )

    def _draw_watermark(self, pdf: canvas.Canvas) -> None:
        image = self._watermark.get() if self._watermark else None
        if image is None:
            return
        width = WATERMARK_WIDTH * mm
        height = image.height * width / image.width
        pdf.drawImage(
            ImageReader(image),
            (PAGE_WIDTH - width) / 2,
            (PAGE_HEIGHT - height) / 2,
            width,
            height,
            mask="auto",
        )

    def _draw(
        self,
        page: _Page,
        record: CreditNoteRecord,
        variant: DocumentVariant,
        words: str,
        generated_at: datetime,
    ) -> None:
        company = self._company
        company_name = company.name.upper()
        y = TOP_MARGIN

        # Masthead
        page.font(BOLD, 24)
        page.centred(y, company_name)
        y += 8
        page.rule(y)
        y += 5

        page.font(REGULAR, 10)
        for line in (company.address_line1, company.address_line2, company.contact_info):
            if line:
                page.centred(y, line)
                y += 4
        y += 1
        page.centred(
            y,
            f"GSTIN: {company.gstin} | UDYAM: {company.udyam} | State Code: {company.state_code}",
        )
        y += 4
        page.rule(y)
        y += 6

        # Title
        page.rule(y, 0.5)
        y += 10
        page.font(BOLD, 20)
        page.centred(y, "CREDIT NOTE")
        y += 8
        page.rule(y, 0.5)
        y += 8

        # Info block
        info_top = y
        party = record.party
        page.font(BOLD, 10)
        page.text(LEFT_MARGIN, y, "BILL TO:")
        page.font(REGULAR, 10)
        for offset, line in ((5, f"M/s. {party.name}"), (10, party.address1),
                             (15, party.address2), (20, party.city)):
            if line:
                page.text(LEFT_MARGIN, y + offset, line)

        period = record.period
        details = (
            ("Credit Note No.:", record.cn_number),
            ("Date:", record.issue_date.isoformat()),
            ("Scheme Period:", f"{period.period_from.isoformat()} to {period.period_to.isoformat()}"),
            ("Month:", period.label),
        )
        for index, (label, value) in enumerate(details):
            page.font(BOLD, 10)
            page.text(DETAILS_X, y + 5 * index, label)
            page.font(REGULAR, 10)
            page.text(DETAILS_X + VALUE_OFFSET, y + 5 * index, value)

        y += 25
        page.line(DIVIDER_X, info_top - 2, DIVIDER_X, y - 2)
        y += 8

        # Purpose
        page.font(BOLD, 12)
        page.text(LEFT_MARGIN, y, "PURPOSE:")
        y += 5
        page.font(REGULAR, 10)
        purpose_lines = page.wrap(record.purpose, REGULAR, 10)[:PURPOSE_MAX_LINES]
        for line in purpose_lines:
            page.text(LEFT_MARGIN, y, line)
            y += 5
        y += 5

        # Calculation details
        page.font(BOLD, 12)
        page.text(LEFT_MARGIN, y, "CALCULATION DETAILS:")
        y += 5
        y += self._draw_table(page, record, y)
        y += 8

        breakdown = record.breakdown
        page.font(BOLD, 12)
        page.text(LEFT_MARGIN, y, f"TOTAL CREDIT NOTE AMOUNT: {format_inr(breakdown.final_amount)}")
        y += 8

        # Amount in words
        page.text(LEFT_MARGIN, y, "AMOUNT IN WORDS:")
        y += 5
        page.font(REGULAR, 10)
        for line in page.wrap(words, REGULAR, 10):
            page.text(LEFT_MARGIN, y, line)
            y += 5
        y += 5

        # Terms
        page.font(BOLD, 12)
        page.text(LEFT_MARGIN, y, "TERMS & CONDITIONS:")
        y += 5
        page.font(REGULAR, 9)
        for term in terms_and_conditions(company.name):
            page.text(LEFT_MARGIN, y, term)
            y += 4

        # Signature block
        y = min(max(y, SIGNATURE_MIN_Y), SIGNATURE_MAX_Y)
        page.font(REGULAR, 9)
        page.text(LEFT_MARGIN, y, "Customer Acknowledgment:")
        page.right(y, f"For {company_name}:")
        y += 20
        page.text(LEFT_MARGIN, y, "Date: ___________________")
        if variant == DocumentVariant.PARTY:
            page.font(ITALIC, 9)
            page.right(y, "Digital Copy. Signature not required.")

        # Footer
        page.rule(FOOTER_Y - 4)
        page.font(REGULAR, 8)
        page.centred(
            FOOTER_Y,
            f"This is a computer generated document. Generated on {footer_timestamp(generated_at)}",
        )

    def _draw_table(self, page: _Page, record: CreditNoteRecord, top: float) -> float:
        """Draw the calculation grid with its top edge at `top`; returns its height in mm."""
        breakdown = record.breakdown
        rows = [
            ["Net Sales Amount (Excluding GST)", format_inr(breakdown.base_amount)],
            [
                f"Credit Note @ {format_percentage(breakdown.percentage)}% on Net Sales Amount",
                format_inr(breakdown.credit_amount),
            ],
            ["Round Off", format_round_off(breakdown.round_off)],
            ["Final Credit Note Amount", format_inr(breakdown.final_amount)],
        ]
        table = Table(
            rows,
            colWidths=[LABEL_COLUMN_WIDTH * mm, (CONTENT_WIDTH - LABEL_COLUMN_WIDTH) * mm],
            rowHeights=[TABLE_ROW_HEIGHT * mm] * len(rows),
        )
        table.setStyle(TableStyle([
            ("FONT", (0, 0), (-1, -1), REGULAR, 10),
            ("FONT", (0, -1), (-1, -1), BOLD, 10),
            ("BACKGROUND", (0, -1), (-1, -1), FINAL_ROW_SHADE),
            ("ALIGN", (1, 0), (1, -1), "RIGHT"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("LEFTPADDING", (0, 0), (-1, -1), 4 * mm),
            ("RIGHTPADDING", (0, 0), (-1, -1), 4 * mm),
            ("GRID", (0, 0), (-1, -1), 0.5, GRID_COLOR),
        ]))
        _, height = table.wrapOn(page.pdf, CONTENT_WIDTH * mm, PAGE_HEIGHT)
        table.drawOn(page.pdf, LEFT_MARGIN * mm, page.y(top) - height)
        return height / mm
