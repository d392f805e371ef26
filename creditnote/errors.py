"""
Error taxonomy for credit note issuance.

Everything the core raises derives from CreditNoteError so callers
can catch issuance failures with one clause. Storage exceptions live
with the storage interfaces.
"""

from typing import Optional


class CreditNoteError(Exception):
    """Base exception for credit note computation and issuance."""
    pass


class InvalidInputError(CreditNoteError):
    """
    Input rejected before any state was mutated.

    Raised for non-positive amounts, malformed periods, out-of-range
    word conversions and records missing required text. The caller can
    retry with corrected input.
    """
    pass


class AllocationError(CreditNoteError):
    """The counter store could not be read or incremented."""
    pass


class RenderError(CreditNoteError):
    """The PDF surface failed while drawing a valid record."""
    pass


class DispatchError(CreditNoteError):
    """
    The persistence/dispatch endpoint rejected or failed the request.

    If a number was already reserved it stays burnt; the gap is visible
    only in the audit trail.
    """

    def __init__(self, message: str, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(f"{message} Details: {detail}" if detail else message)
