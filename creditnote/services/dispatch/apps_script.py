"""
Script Endpoint Client (persistence + dispatch)

DESIGN DECISION: Storing an issued credit note and mailing it are one
remote call. The Apps Script web app appends the register row, files
the PDFs, mails the party copy and the Head Office copy, and answers
with JSON:

    {"success": true,  "message": "...", "data": {...}}
    {"success": false, "message": "...", "errorDetail": "..."}

The script sends error details in the body even on HTTP errors, so the
body is parsed before the status code is looked at.

Only reads are retried. processCN and resendCN send mail; a retry after
an ambiguous failure could mail the party twice.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import requests
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from creditnote.config import get_settings
from creditnote.errors import DispatchError
from creditnote.models.credit_note import (
    CreditNoteRecord,
    DispatchRecipient,
    DispatchResult,
    IssuedCreditNote,
    RenderedArtifact,
)
from creditnote.services.storage.interface import CreditNoteRegisterInterface


logger = structlog.get_logger(__name__)


class DispatchInterface(ABC):
    """Where finished credit notes are handed over."""

    @abstractmethod
    async def process_credit_note(
        self,
        record: CreditNoteRecord,
        party_pdf: RenderedArtifact,
        print_pdf: RenderedArtifact,
    ) -> DispatchResult:
        """
        Persist the record and send both documents.

        Raises:
            DispatchError: If the endpoint rejected or failed the request
        """
        pass

    @abstractmethod
    async def resend(
        self,
        note: IssuedCreditNote,
        recipient: DispatchRecipient,
    ) -> DispatchResult:
        """Mail an already issued credit note again."""
        pass


def parse_script_response(response: requests.Response) -> dict[str, Any]:
    """
    Decode an endpoint response.

    Raises:
        DispatchError: Non-JSON body, HTTP error or success == false
    """
    try:
        data = response.json()
    except ValueError:
        raise DispatchError(
            f"HTTP error {response.status_code}: Server returned a non-JSON response. "
            "Check the script deployment and logs."
        )

    if not isinstance(data, dict):
        raise DispatchError(
            f"HTTP error {response.status_code}: Unexpected response shape from script endpoint."
        )

    if not response.ok or data.get("success") is False:
        raise DispatchError(
            data.get("message") or "An unknown error occurred.",
            data.get("errorDetail") or None,
        )

    return data


class AppsScriptClient(DispatchInterface, CreditNoteRegisterInterface):
    """
    HTTP client for the deployed Apps Script web app.

    Also serves as the credit note register (action=getCreditNotes).
    """

    def __init__(
        self,
        url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        if url is None or timeout_seconds is None:
            settings = get_settings().script_endpoint
            url = url or settings.url
            timeout_seconds = timeout_seconds or settings.timeout_seconds
        self._url = url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._session.post(self._url, json=body, timeout=self._timeout)
        except requests.RequestException as e:
            raise DispatchError(f"Could not reach script endpoint: {e}")
        return parse_script_response(response)

    async def process_credit_note(
        self,
        record: CreditNoteRecord,
        party_pdf: RenderedArtifact,
        print_pdf: RenderedArtifact,
    ) -> DispatchResult:
        log = logger.bind(cn_number=record.cn_number)
        log.info("dispatch_started")
        try:
            data = self._post({
                "action": "processCN",
                "cnData": record.to_payload(),
                "partyPdfBase64": party_pdf.to_base64(),
                "printerPdfBase64": print_pdf.to_base64(),
            })
        except DispatchError as e:
            log.error("dispatch_failed", error=str(e))
            raise

        extra = data.get("data") if isinstance(data.get("data"), dict) else {}
        log.info("dispatch_completed")
        return DispatchResult(
            success=True,
            message=data.get("message", ""),
            pdf_link=extra.get("pdf_link"),
            data=extra,
        )

    async def resend(
        self,
        note: IssuedCreditNote,
        recipient: DispatchRecipient,
    ) -> DispatchResult:
        data = self._post({
            "action": "resendCN",
            "cnData": note.to_payload(),
            "recipient": recipient.value,
        })
        logger.info("credit_note_resent", cn_number=note.cn_number, recipient=recipient.value)
        return DispatchResult(success=True, message=data.get("message", ""))

    @retry(
        retry=retry_if_exception_type(requests.RequestException),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _get_rows(self) -> list[dict]:
        response = self._session.get(
            self._url,
            params={"action": "getCreditNotes"},
            timeout=self._timeout,
        )
        data = parse_script_response(response)
        rows = data.get("data")
        return rows if isinstance(rows, list) else []

    async def list_credit_notes(self) -> list[IssuedCreditNote]:
        try:
            rows = self._get_rows()
        except requests.RequestException as e:
            raise DispatchError(f"Could not reach script endpoint: {e}")

        notes = []
        for row in rows:
            try:
                notes.append(IssuedCreditNote.model_validate(row))
            except Exception as e:
                logger.warning("register_row_skipped", cn_number=row.get("cn_number"), error=str(e))

        # The sheet is oldest first
        notes.reverse()
        return notes
