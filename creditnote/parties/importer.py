"""
Party Workbook Import

Reads the party master exported from the accounting package (.xlsx)
and turns it into Party models for a bulk replace.

Column layout of the export (first sheet):

    D  city          G  address line 1     K  email
    F  party name    H  address line 2     P  WhatsApp number
                                           T  GSTIN

Everything above and including the header row is skipped. The header
row is the first row whose column F holds text longer than two
characters.
"""

import io
from typing import Any, Optional

import structlog
from openpyxl import load_workbook
from pydantic import ValidationError

from creditnote.errors import InvalidInputError
from creditnote.models.credit_note import Party


logger = structlog.get_logger(__name__)

# 0-based column indexes
COL_CITY = 3
COL_NAME = 5
COL_ADDRESS1 = 6
COL_ADDRESS2 = 7
COL_EMAIL = 10
COL_WHATSAPP = 15
COL_GSTIN = 19


def _cell_text(row: tuple, index: int) -> str:
    value: Any = row[index] if index < len(row) else None
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Phone numbers typed into numeric cells
        value = int(value)
    return str(value).strip()


def _is_header(row: tuple) -> bool:
    value = row[COL_NAME] if COL_NAME < len(row) else None
    return isinstance(value, str) and len(value.strip()) > 2


class PartyImporter:
    """
    Parses party workbooks.

    Usage:
        parties = PartyImporter().parse_workbook(uploaded_file.getvalue())
    """

    def parse_workbook(self, content: bytes) -> list[Party]:
        """
        Parse an .xlsx export into parties.

        Raises:
            InvalidInputError: Not a readable workbook, no header row,
                or no row with a party name
        """
        try:
            workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        except Exception as e:
            raise InvalidInputError(f"Could not read workbook: {e}") from e

        try:
            sheet = workbook.worksheets[0]
            rows = list(sheet.iter_rows(values_only=True))
        finally:
            workbook.close()

        header_index: Optional[int] = next(
            (i for i, row in enumerate(rows) if row and _is_header(row)),
            None,
        )
        if header_index is None:
            raise InvalidInputError(
                "Could not find a valid header or data in the file. "
                "Ensure column F contains party names."
            )

        parties = []
        for row_number, row in enumerate(rows[header_index + 1:], start=header_index + 2):
            if not row:
                continue
            name = _cell_text(row, COL_NAME)
            if not name:
                continue
            whatsapp = "".join(ch for ch in _cell_text(row, COL_WHATSAPP) if ch.isdigit())
            try:
                parties.append(Party(
                    name=name,
                    city=_cell_text(row, COL_CITY),
                    address1=_cell_text(row, COL_ADDRESS1),
                    address2=_cell_text(row, COL_ADDRESS2),
                    email=_cell_text(row, COL_EMAIL) or None,
                    whatsapp_number=whatsapp or None,
                    gstin=_cell_text(row, COL_GSTIN) or None,
                ))
            except ValidationError as e:
                logger.warning("party_row_skipped", row=row_number, error=str(e))

        if not parties:
            raise InvalidInputError(
                "No valid party data could be extracted. Please check the file format and content."
            )

        logger.info("party_workbook_parsed", count=len(parties))
        return parties
