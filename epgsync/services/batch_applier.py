"""
Batch Applier

Submits reconcile operations to the record store in bounded, atomic batches.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from epgsync.exceptions import StoreBatchError
from epgsync.services.program_types import Operation


logger = logging.getLogger(__name__)


class BatchStore(Protocol):
    async def apply_batch(self, ops: Sequence[Operation]) -> None: ...


class BatchApplier:
    """
    Groups operations into batches of at most batch_size and applies them in order.

    A failed batch stops the run; batches committed before it stay committed.
    There is no rollback across batches, so callers should simply retry the
    whole sync later, which recomputes the diff against what was committed.
    """

    def __init__(
        self,
        store: BatchStore,
        *,
        batch_size: int = 100,
        timeout_sec: float | None = None,
        lock: asyncio.Lock | None = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.store = store
        self.batch_size = batch_size
        self.timeout_sec = timeout_sec
        self._lock = lock

    async def apply(self, ops: Sequence[Operation]) -> int:
        """
        Apply operations batch by batch.

        Returns:
            Number of batches committed

        Raises:
            StoreBatchError: If a batch fails or times out
        """
        batches = [
            ops[start_index:start_index + self.batch_size]
            for start_index in range(0, len(ops), self.batch_size)
        ]
        total_batches = len(batches)

        for batch_number, batch in enumerate(batches, start=1):
            try:
                await self._submit(batch)
            except asyncio.TimeoutError as exc:
                logger.error(
                    "Batch %s/%s timed out after %ss",
                    batch_number,
                    total_batches,
                    self.timeout_sec,
                )
                raise StoreBatchError(
                    f"Batch {batch_number}/{total_batches} timed out",
                    committed_batches=batch_number - 1,
                    failed_batch=batch_number,
                    total_batches=total_batches,
                ) from exc
            except Exception as exc:
                logger.error(
                    "Failed to apply batch %s/%s (%s operations): %s",
                    batch_number,
                    total_batches,
                    len(batch),
                    exc,
                    exc_info=True,
                )
                raise StoreBatchError(
                    f"Batch {batch_number}/{total_batches} failed: {exc}",
                    committed_batches=batch_number - 1,
                    failed_batch=batch_number,
                    total_batches=total_batches,
                ) from exc

            logger.debug(
                "Batch %s/%s committed (%s operations)",
                batch_number,
                total_batches,
                len(batch),
            )

        return total_batches

    async def _submit(self, batch: Sequence[Operation]) -> None:
        if self._lock is None:
            await self._call_store(batch)
            return
        async with self._lock:
            await self._call_store(batch)

    async def _call_store(self, batch: Sequence[Operation]) -> None:
        if self.timeout_sec:
            await asyncio.wait_for(self.store.apply_batch(batch), timeout=self.timeout_sec)
        else:
            await self.store.apply_batch(batch)
