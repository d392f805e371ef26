"""
Credit Note Number Allocation

DESIGN DECISION: Numbers come from one integer cell that is only ever
changed with an atomic increment. The allocator never computes
"read + 1" and writes it back; that race is how two documents end up
with the same number.

Guarantees:
- Two reservations never return the same value, across processes
- Every increment is kept (the counter equals the number of reservations)
- A reserved number is never handed out again, even if the document
  using it was never dispatched (a gap, visible only in the audit log)

preview_next() is ADVISORY. It is shown on the form and on previews;
the number actually printed on an issued document is whatever
reserve_next() returns.
"""

from typing import Optional

import structlog

from creditnote.errors import AllocationError
from creditnote.services.storage.interface import CounterStore, StorageError


logger = structlog.get_logger(__name__)


class SequenceAllocator:
    """
    Reserves credit note numbers from a CounterStore.

    Usage:
        allocator = SequenceAllocator(counter, last_issued, prefix="KA-EN-CN")
        value = await allocator.reserve_next()
        cn_number = allocator.format_number(value)   # "KA-EN-CN42"
    """

    def __init__(
        self,
        counter: CounterStore,
        last_issued: Optional[CounterStore] = None,
        prefix: str = "KA-EN-CN",
    ):
        self._counter = counter
        self._last_issued = last_issued
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    def format_number(self, value: int) -> str:
        """Display form of a counter value."""
        return f"{self._prefix}{value}"

    async def current_value(self) -> int:
        """
        Last value handed out (0 before the first reservation).

        Raises:
            AllocationError: If the counter store can't be read
        """
        try:
            return await self._counter.read()
        except StorageError as e:
            raise AllocationError(f"Could not read credit note counter: {e}") from e

    async def preview_next(self) -> int:
        """The value the next reservation would get if nobody else reserves first."""
        return await self.current_value() + 1

    async def reserve_next(self) -> int:
        """
        Atomically take the next number.

        Raises:
            AllocationError: If the counter store can't commit the increment.
                Nothing was reserved in that case.
        """
        try:
            value = await self._counter.increment()
        except StorageError as e:
            logger.error("cn_number_reservation_failed", error=str(e))
            raise AllocationError(f"Could not reserve credit note number: {e}") from e

        logger.info("cn_number_reserved", value=value, cn_number=self.format_number(value))
        return value

    async def mark_consumed(self, value: int) -> None:
        """
        Record that the document numbered `value` was dispatched.

        The marker only moves forward. Failures are logged, not raised:
        the document already exists at the endpoint.
        """
        if self._last_issued is None:
            return
        try:
            await self._last_issued.raise_to(value)
        except StorageError as e:
            logger.warning("cn_last_issued_update_failed", value=value, error=str(e))

    async def last_consumed(self) -> Optional[int]:
        """Highest dispatched value, or None when no marker is kept."""
        if self._last_issued is None:
            return None
        try:
            return await self._last_issued.read()
        except StorageError as e:
            raise AllocationError(f"Could not read last issued marker: {e}") from e
