"""
Unit tests for the batch applier.
"""

import asyncio

import pytest

from epgsync.exceptions import StoreBatchError
from epgsync.services.batch_applier import BatchApplier
from epgsync.services.program_types import Delete, Insert
from tests.factories import FakeStore, make_program


def make_ops(count: int):
    return [Insert(make_program(f"P{i}", i * 10, i * 10 + 10)) for i in range(count)]


class SlowStore:
    def __init__(self, delay: float):
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls = 0

    async def apply_batch(self, ops):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1


@pytest.mark.unit
class TestBatchApplier:
    """Tests for batching and failure handling."""

    async def test_250_operations_issue_three_batches(self):
        store = FakeStore()
        applier = BatchApplier(store, batch_size=100)

        committed = await applier.apply(make_ops(250))

        assert committed == 3
        assert [len(batch) for batch in store.batches] == [100, 100, 50]

    async def test_operation_order_is_preserved(self):
        store = FakeStore()
        ops = make_ops(5) + [Delete(7)]

        await BatchApplier(store, batch_size=2).apply(ops)

        assert [op for batch in store.batches for op in batch] == ops

    async def test_empty_operations_issue_no_batches(self):
        store = FakeStore()

        assert await BatchApplier(store).apply([]) == 0
        assert store.batches == []

    async def test_failure_stops_remaining_batches(self):
        store = FakeStore(fail_on_batch=2)
        applier = BatchApplier(store, batch_size=100)

        with pytest.raises(StoreBatchError) as exc_info:
            await applier.apply(make_ops(250))

        assert exc_info.value.committed_batches == 1
        assert exc_info.value.failed_batch == 2
        assert exc_info.value.total_batches == 3
        assert len(store.batches) == 1

    async def test_timeout_is_a_batch_failure(self):
        store = SlowStore(delay=1.0)
        applier = BatchApplier(store, batch_size=10, timeout_sec=0.01)

        with pytest.raises(StoreBatchError) as exc_info:
            await applier.apply(make_ops(25))

        assert exc_info.value.committed_batches == 0
        assert isinstance(exc_info.value.__cause__, asyncio.TimeoutError)
        assert store.calls == 1

    async def test_shared_lock_serializes_store_calls(self):
        store = SlowStore(delay=0.01)
        lock = asyncio.Lock()
        appliers = [BatchApplier(store, batch_size=1, lock=lock) for _ in range(3)]

        await asyncio.gather(*(applier.apply(make_ops(2)) for applier in appliers))

        assert store.calls == 6
        assert store.max_active == 1

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError):
            BatchApplier(FakeStore(), batch_size=0)
