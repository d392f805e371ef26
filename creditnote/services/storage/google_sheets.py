"""
Google Sheets Credit Note Register

DESIGN DECISION: The script endpoint owns the register sheet; it appends
one row per issued credit note and stamps the dispatch columns. The
console only ever READS it. Reading the sheet directly avoids a script
round trip when a service account is available.

TRADEOFFS:
- Read-only (all writes stay with the script endpoint)
- No query capabilities (we filter in Python)
"""

from typing import Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from creditnote.config import get_settings
from creditnote.models.credit_note import IssuedCreditNote
from creditnote.services.storage.interface import (
    ConnectionError,
    CreditNoteRegisterInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials with a read-only scope.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets.readonly",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_register_sheet(self) -> gspread.Worksheet:
        """Get the credit note register worksheet."""
        spreadsheet = self.get_spreadsheet()
        try:
            return spreadsheet.worksheet(self._settings.register_sheet_name)
        except gspread.WorksheetNotFound:
            raise StorageError(
                f"Register sheet not found: {self._settings.register_sheet_name}"
            )


class GoogleSheetsRegister(CreditNoteRegisterInterface):
    """
    Credit note register read straight from the sheet.

    Rows that fail validation are skipped and logged.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def list_credit_notes(self) -> list[IssuedCreditNote]:
        try:
            sheet = self._client.get_register_sheet()
            records = sheet.get_all_records()
        except gspread.exceptions.APIError as e:
            raise StorageError(f"Failed to read register: {e}")

        notes = []
        for row_number, record in enumerate(records, start=2):
            if not record.get("cn_number"):
                continue
            try:
                notes.append(IssuedCreditNote.model_validate(record))
            except Exception as e:
                logger.warning("register_row_skipped", row=row_number, error=str(e))

        # Sheet is append-only, oldest first
        notes.reverse()
        return notes
