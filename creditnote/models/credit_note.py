"""
Core Data Models for the Credit Note Console

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Keep money as Decimal from input to rendered document
3. Be serializable for the datastore, the script endpoint and logging
4. Be immutable once a credit note has been assembled

DESIGN DECISION: Party data is SNAPSHOTTED into the record at issuance.
Editing a party later never changes a credit note that was already issued.
"""

import base64
from datetime import date, datetime
from decimal import Decimal, localcontext
from enum import Enum
from typing import Any, Optional
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)


DEFAULT_BUSINESS_TIMEZONE = "Asia/Kolkata"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class PeriodMode(str, Enum):
    """How the reporting period of a credit note is chosen."""
    QUARTER = "quarter"  # Previous financial quarter (Apr-Mar year)
    MONTH = "month"      # Previous calendar month
    CUSTOM = "custom"    # Supplied by the user


class DocumentVariant(str, Enum):
    """
    The two PDFs produced for every credit note.

    PARTY is mailed to the party and carries the digital-copy note.
    PRINT goes to the printer and is signed by hand.
    """
    PARTY = "party"
    PRINT = "print"


class DispatchRecipient(str, Enum):
    """Who a credit note can be re-sent to."""
    PARTY = "party"
    HEAD_OFFICE = "ho"


# =============================================================================
# MASTER DATA
# =============================================================================

class Party(BaseModel):
    """
    A trading partner credit notes are issued to.

    Field aliases match the keys stored in the realtime database.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    id: Optional[str] = Field(
        default=None,
        description="Datastore key; None until stored"
    )
    name: str = Field(..., min_length=1, max_length=200)
    address1: str = Field(default="", max_length=200)
    address2: str = Field(default="", max_length=200)
    address3: Optional[str] = Field(default=None, max_length=200)
    city: str = Field(default="", max_length=100)
    email: Optional[str] = Field(default=None, max_length=200)
    whatsapp_number: Optional[str] = Field(
        default=None,
        alias="whatsappNumber",
        max_length=20,
    )
    gstin: Optional[str] = Field(default=None, max_length=15)

    def to_store_dict(self) -> dict:
        """Datastore representation (no id, camelCase keys, no empty optionals)."""
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)


class PartySnapshot(BaseModel):
    """The party's name and address as printed on one credit note."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str
    address1: str = ""
    address2: str = ""
    city: str = ""
    gstin: Optional[str] = None

    @classmethod
    def from_party(cls, party: Party) -> "PartySnapshot":
        return cls(
            name=party.name,
            address1=party.address1,
            address2=party.address2,
            city=party.city,
            gstin=party.gstin,
        )


class CreditNoteTemplate(BaseModel):
    """A saved party + purpose + percentage combination."""
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    party_id: str = Field(..., alias="partyId")
    party_name: str = Field(..., alias="partyName")
    purpose: str = Field(..., min_length=1, max_length=500)
    cn_percentage: Decimal = Field(..., ge=0, le=100, alias="cnPercentage")

    def to_store_dict(self) -> dict:
        data = self.model_dump(by_alias=True, exclude={"id"})
        data["cnPercentage"] = float(self.cn_percentage)
        return data


class CompanyProfile(BaseModel):
    """
    The issuing entity, printed in the document masthead.

    Defaults are used for any key missing from the datastore.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    name: str = "KAMBESHWAR AGENCIES"
    address_line1: str = Field(
        default="Upper Ground Floor, Shop No. 6, Essar Trade Centre",
        alias="addressLine1",
    )
    address_line2: str = Field(
        default="Shashikant Narvekar Road, Morod, Mapusa, North Goa - 403507",
        alias="addressLine2",
    )
    contact_info: str = Field(
        default="Phone: 0832-2266714 / 9422593814 / 9423546561",
        alias="contactInfo",
    )
    gstin: str = "30AOEPB9968G1ZZ"
    udyam: str = "UDYAM-GA-01-0014437"
    state_code: str = Field(default="30 (Goa)", alias="stateCode")

    def to_store_dict(self) -> dict:
        return self.model_dump(by_alias=True)


# =============================================================================
# COMPUTATION RESULTS
# =============================================================================

class ReportingPeriod(BaseModel):
    """The scheme period a credit note settles. Created fresh, never stored alone."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    period_from: date
    period_to: date
    label: str = Field(..., min_length=1, max_length=50)

    @model_validator(mode='after')
    def validate_range(self) -> 'ReportingPeriod':
        if self.period_to < self.period_from:
            raise ValueError("Period end cannot be before period start")
        return self


class MonetaryBreakdown(BaseModel):
    """
    The figures printed in the calculation table.

    CRITICAL: credit_amount + round_off == final_amount holds EXACTLY.
    All values are Decimal; final_amount is a whole number of rupees.
    """
    model_config = ConfigDict(frozen=True)

    base_amount: Decimal = Field(..., ge=0, description="Net sales excluding GST")
    percentage: Decimal = Field(..., ge=0)
    credit_amount: Decimal = Field(..., ge=0, description="Unrounded credit")
    round_off: Decimal = Field(..., description="Signed; may be negative")
    final_amount: int = Field(..., ge=0)

    @model_validator(mode='after')
    def validate_round_off(self) -> 'MonetaryBreakdown':
        with localcontext() as ctx:
            ctx.prec = 60
            reconciles = self.credit_amount + self.round_off == self.final_amount
        if not reconciles:
            raise ValueError("Round off does not reconcile credit and final amounts")
        return self


# =============================================================================
# ISSUANCE MODELS
# =============================================================================

class CreditNoteRequest(BaseModel):
    """
    What the user filled in on the Create Credit Note form.

    Amount rules (both > 0) are enforced by the workflow, not here,
    so that the rejection is reported as InvalidInputError.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    party: Party
    issue_date: date
    period_mode: PeriodMode = PeriodMode.QUARTER
    custom_period: Optional[ReportingPeriod] = None
    purpose: str = Field(..., max_length=500)
    base_amount: Decimal
    percentage: Decimal
    party_email: Optional[str] = None

    @model_validator(mode='after')
    def validate_custom_period(self) -> 'CreditNoteRequest':
        if self.period_mode == PeriodMode.CUSTOM and self.custom_period is None:
            raise ValueError("Custom period mode requires custom_period")
        return self


class CreditNoteRecord(BaseModel):
    """
    One issued credit note.

    Created once per workflow run and immutable thereafter. Ownership
    passes to the dispatch endpoint after rendering.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    cn_number: str
    issue_date: date
    party: PartySnapshot
    period: ReportingPeriod
    purpose: str
    breakdown: MonetaryBreakdown
    party_email: Optional[str] = None
    party_whatsapp: Optional[str] = None

    def missing_fields(self) -> list[str]:
        """Required text fields that are blank."""
        required = {
            "cn_number": self.cn_number,
            "party.name": self.party.name,
            "period.label": self.period.label,
            "purpose": self.purpose,
        }
        return [name for name, value in required.items() if not value]

    def to_payload(self) -> dict[str, Any]:
        """
        Flat representation understood by the script endpoint.

        Keys follow the register sheet's column names.
        """
        payload = {
            "cn_number": self.cn_number,
            "date": self.issue_date.isoformat(),
            "party_name": self.party.name,
            "party_address1": self.party.address1,
            "party_address2": self.party.address2,
            "party_city": self.party.city,
            "period_from": self.period.period_from.isoformat(),
            "period_to": self.period.period_to.isoformat(),
            "month": self.period.label,
            "purpose": self.purpose,
            "net_sales": float(self.breakdown.base_amount),
            "cn_percentage": float(self.breakdown.percentage),
            "credit_amount": float(self.breakdown.credit_amount),
            "round_off": float(self.breakdown.round_off),
            "final_amount": self.breakdown.final_amount,
        }
        if self.party_email:
            payload["party_email"] = self.party_email
        if self.party_whatsapp:
            payload["party_whatsapp"] = self.party_whatsapp
        return payload


class RenderedArtifact(BaseModel):
    """A finished PDF for one variant. Never mutated."""
    model_config = ConfigDict(frozen=True)

    cn_number: str
    variant: DocumentVariant
    content: bytes
    media_type: str = "application/pdf"

    def to_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")

    @property
    def filename(self) -> str:
        return f"{self.cn_number}_{self.variant.value}.pdf"


class DispatchResult(BaseModel):
    """What the script endpoint answered."""

    success: bool
    message: str = ""
    pdf_link: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class IssueOutcome(BaseModel):
    """Returned to the caller after a credit note was issued."""

    record: CreditNoteRecord
    party_artifact: RenderedArtifact
    print_artifact: RenderedArtifact
    dispatch: DispatchResult


# =============================================================================
# REGISTER MODELS (rows read back from the spreadsheet)
# =============================================================================

def _to_business_date(value: Any) -> Any:
    """
    Sheet dates arrive either as 'YYYY-MM-DD' or as a UTC timestamp
    ('2025-10-04T18:30:00.000Z' for a cell holding 5 Oct in IST).
    """
    if isinstance(value, str) and "T" in value:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if moment.tzinfo is not None:
            moment = moment.astimezone(ZoneInfo(DEFAULT_BUSINESS_TIMEZONE))
        return moment.date()
    return value


class IssuedCreditNote(BaseModel):
    """One row of the credit note register kept by the script endpoint."""
    model_config = ConfigDict(
        str_strip_whitespace=True,
        populate_by_name=True,
        extra="ignore",
    )

    cn_number: str
    issue_date: date = Field(..., alias="date")
    party_name: str
    party_address1: str = ""
    party_address2: str = ""
    party_city: str = ""
    period_from: Optional[date] = None
    period_to: Optional[date] = None
    month: str = ""
    purpose: str = ""
    net_sales: Decimal = Decimal("0")
    cn_percentage: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    round_off: Decimal = Decimal("0")
    final_amount: Decimal = Decimal("0")
    party_email: Optional[str] = None
    party_whatsapp: Optional[str] = None
    pdf_link: Optional[str] = None
    sent_to_party_at: Optional[str] = None
    sent_to_ho_at: Optional[str] = None
    sent_to_printer_at: Optional[str] = None
    last_resent_to_party_at: Optional[str] = None
    last_resent_to_ho_at: Optional[str] = None

    @field_validator('*', mode='before')
    @classmethod
    def blank_to_none(cls, v: Any, info: ValidationInfo) -> Any:
        """Empty sheet cells come back as ''; optional columns read them as None."""
        if isinstance(v, str) and not v.strip():
            if cls.model_fields[info.field_name].default is None:
                return None
            return ""
        return v

    @field_validator('issue_date', 'period_from', 'period_to', mode='before')
    @classmethod
    def parse_sheet_date(cls, v: Any) -> Any:
        return _to_business_date(v)

    @field_validator(
        'net_sales', 'cn_percentage', 'credit_amount', 'round_off', 'final_amount',
        mode='before',
    )
    @classmethod
    def parse_sheet_number(cls, v: Any) -> Any:
        if v is None or v == "":
            return Decimal("0")
        if isinstance(v, float):
            return Decimal(str(v))
        if isinstance(v, str):
            return Decimal(v.replace(",", ""))
        return v

    def to_payload(self) -> dict[str, Any]:
        """Row as sent back to the endpoint for a resend."""
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        for key in ("net_sales", "cn_percentage", "credit_amount", "round_off", "final_amount"):
            data[key] = float(getattr(self, key))
        return data
