"""
Tests for credit note number allocation.

Test strategy:
1. Concurrent reservations (coroutines and threads) never collide
2. Failures reserve nothing and surface as AllocationError
3. The Firebase counter is driven through a fake Reference
"""

import asyncio
import threading

import pytest
from firebase_admin import db

from creditnote.errors import AllocationError
from creditnote.services.sequence import SequenceAllocator
from creditnote.services.storage import (
    CounterStore,
    FirebaseCounterStore,
    InMemoryCounterStore,
    StorageError,
)


class BrokenCounterStore(CounterStore):
    """Counter whose every operation fails."""

    async def read(self) -> int:
        raise StorageError("database unreachable")

    async def increment(self) -> int:
        raise StorageError("database unreachable")

    async def raise_to(self, value: int) -> int:
        raise StorageError("database unreachable")


class FakeReference:
    """
    Stands in for firebase_admin.db.Reference.

    transaction() replays the update function once per simulated
    conflicting write, the way the SDK retries on contention.
    """

    def __init__(self, value=None, conflicts: int = 0, abort: bool = False):
        self.value = value
        self.conflicts = conflicts
        self.abort = abort
        self.calls = 0

    def get(self):
        return self.value

    def transaction(self, update):
        if self.abort:
            raise db.TransactionAbortedError("too many retries")
        while True:
            self.calls += 1
            proposed = update(self.value)
            if self.conflicts:
                # Someone else committed first
                self.conflicts -= 1
                self.value = (self.value or 0) + 1
                continue
            self.value = proposed
            return proposed


class FakeFirebaseClient:

    def __init__(self, ref: FakeReference):
        self.ref = ref

    def reference(self, path: str) -> FakeReference:
        return self.ref


class TestSequenceAllocator:
    """Tests for SequenceAllocator."""

    def test_format_number(self):
        allocator = SequenceAllocator(InMemoryCounterStore(), prefix="KA-EN-CN")
        assert allocator.format_number(42) == "KA-EN-CN42"

    def test_reserve_starts_after_current(self):
        allocator = SequenceAllocator(InMemoryCounterStore(initial=41))
        assert asyncio.run(allocator.reserve_next()) == 42
        assert asyncio.run(allocator.current_value()) == 42

    def test_preview_does_not_reserve(self):
        """Test that preview_next is advisory only."""
        counter = InMemoryCounterStore(initial=7)
        allocator = SequenceAllocator(counter)

        async def run():
            first = await allocator.preview_next()
            second = await allocator.preview_next()
            return first, second, await counter.read()

        assert asyncio.run(run()) == (8, 8, 7)

    def test_concurrent_coroutines_get_distinct_values(self):
        """Test N gathered reservations return exactly k+1..k+N."""
        counter = InMemoryCounterStore(initial=100)
        allocator = SequenceAllocator(counter)

        async def run():
            return await asyncio.gather(*(allocator.reserve_next() for _ in range(50)))

        values = asyncio.run(run())
        assert sorted(values) == list(range(101, 151))
        assert asyncio.run(counter.read()) == 150

    def test_concurrent_threads_get_distinct_values(self):
        """Test reservations from separate event loops on separate threads."""
        counter = InMemoryCounterStore(initial=0)
        allocator = SequenceAllocator(counter)
        results: list[int] = []
        results_lock = threading.Lock()

        def worker():
            for _ in range(25):
                value = asyncio.run(allocator.reserve_next())
                with results_lock:
                    results.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(results) == list(range(1, 201))

    def test_reservation_failure_raises_allocation_error(self):
        allocator = SequenceAllocator(BrokenCounterStore())
        with pytest.raises(AllocationError):
            asyncio.run(allocator.reserve_next())

    def test_read_failure_raises_allocation_error(self):
        allocator = SequenceAllocator(BrokenCounterStore())
        with pytest.raises(AllocationError):
            asyncio.run(allocator.preview_next())

    def test_mark_consumed_only_moves_forward(self):
        marker = InMemoryCounterStore()
        allocator = SequenceAllocator(InMemoryCounterStore(), last_issued=marker)

        async def run():
            await allocator.mark_consumed(5)
            await allocator.mark_consumed(3)
            return await allocator.last_consumed()

        assert asyncio.run(run()) == 5

    def test_mark_consumed_failure_is_not_raised(self):
        """Test that a broken marker never fails an issued document."""
        allocator = SequenceAllocator(InMemoryCounterStore(), last_issued=BrokenCounterStore())
        asyncio.run(allocator.mark_consumed(5))

    def test_without_marker(self):
        allocator = SequenceAllocator(InMemoryCounterStore())
        asyncio.run(allocator.mark_consumed(5))
        assert asyncio.run(allocator.last_consumed()) is None


class TestFirebaseCounterStore:
    """Tests for the transaction-backed counter."""

    def test_increment_from_empty(self):
        store = FirebaseCounterStore("/cnCounter", client=FakeFirebaseClient(FakeReference()))
        assert asyncio.run(store.increment()) == 1

    def test_increment_under_contention(self):
        """Test that a replayed transaction lands after the competing writes."""
        ref = FakeReference(value=10, conflicts=2)
        store = FirebaseCounterStore("/cnCounter", client=FakeFirebaseClient(ref))
        assert asyncio.run(store.increment()) == 13
        assert ref.calls == 3

    def test_raise_to_never_lowers(self):
        ref = FakeReference(value=20)
        store = FirebaseCounterStore("/cnLastIssued", client=FakeFirebaseClient(ref))
        assert asyncio.run(store.raise_to(15)) == 20
        assert asyncio.run(store.raise_to(25)) == 25

    def test_aborted_transaction_is_storage_error(self):
        ref = FakeReference(value=3, abort=True)
        store = FirebaseCounterStore("/cnCounter", client=FakeFirebaseClient(ref))
        with pytest.raises(StorageError):
            asyncio.run(store.increment())
        assert ref.value == 3

    def test_read(self):
        store = FirebaseCounterStore("/cnCounter", client=FakeFirebaseClient(FakeReference("41")))
        assert asyncio.run(store.read()) == 41
