"""
EPG Sync Service

Drives schedule generation, reconciliation and batch application for every
channel of an input.
"""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from epgsync.config import settings
from epgsync.exceptions import EmptyCycleError, FetchError, ParseError, StoreBatchError
from epgsync.services.batch_applier import BatchApplier
from epgsync.services.listing_fetch_service import fetch_combined_listing
from epgsync.services.listing_types import Channel, Listing, RawProgram
from epgsync.services.reconcile_service import count_operations, reconcile
from epgsync.services.schedule_service import generate_programs
from epgsync.services.store_service import ProgramStore
from epgsync.services.sync_coordinator import get_sync_coordinator
from epgsync.utils.logging_helpers import (
    log_channel_processing,
    log_reconcile_summary,
    log_sync_end,
    log_sync_start,
    log_sync_window,
)
from epgsync.utils.timezone import millis_to_iso, utc_now_millis


logger = logging.getLogger(__name__)

ChannelStatus = Literal["success", "skipped", "failed", "cancelled"]
ProgressCallback = Callable[[int, int], None]


class SyncMode(str, Enum):
    FULL = "full"
    CURRENT_ONLY = "current_only"


def window_for_mode(mode: SyncMode, now_ms: int) -> tuple[int, int]:
    """Return the (start, end) window in epoch millis for a sync mode."""
    if mode == SyncMode.CURRENT_ONLY:
        # Fast first result; the full window follows in a later run.
        return now_ms, now_ms + settings.short_sync_window_sec * 1000
    return now_ms, now_ms + settings.full_sync_window_sec * 1000


@dataclass(slots=True)
class ChannelSummary:
    row_id: int
    channel_id: str | None
    status: ChannelStatus
    programs_generated: int = 0
    inserts: int = 0
    updates: int = 0
    deletes: int = 0
    batches_committed: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        payload = {
            "row_id": self.row_id,
            "channel_id": self.channel_id,
            "status": self.status,
            "programs_generated": self.programs_generated,
            "inserts": self.inserts,
            "updates": self.updates,
            "deletes": self.deletes,
            "batches_committed": self.batches_committed,
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class SyncReport:
    mode: SyncMode
    window_start: int
    window_end: int
    started_at: datetime
    completed_at: datetime
    channels: list[ChannelSummary] = field(default_factory=list)

    def count(self, status: ChannelStatus) -> int:
        return sum(1 for summary in self.channels if summary.status == status)

    @property
    def status(self) -> str:
        if self.count("cancelled"):
            return "cancelled"
        if self.count("failed"):
            return "partial"
        return "success"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "mode": self.mode.value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "window_start": millis_to_iso(self.window_start),
            "window_end": millis_to_iso(self.window_end),
            "channels_processed": len(self.channels),
            "channels_succeeded": self.count("success"),
            "channels_skipped": self.count("skipped"),
            "channels_failed": self.count("failed"),
            "channels_cancelled": self.count("cancelled"),
            "programs_inserted": sum(summary.inserts for summary in self.channels),
            "programs_updated": sum(summary.updates for summary in self.channels),
            "programs_deleted": sum(summary.deletes for summary in self.channels),
            "channel_details": [summary.to_dict() for summary in self.channels],
        }


class ChannelSyncPipeline:
    """Runs generate -> query -> reconcile -> apply for each channel of an input."""

    def __init__(
        self,
        store,
        *,
        batch_size: int | None = None,
        max_concurrency: int | None = None,
        store_timeout_sec: float | None = None,
        cancel_event: asyncio.Event | None = None,
        progress_callback: ProgressCallback | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.store = store
        self._store_timeout = store_timeout_sec if store_timeout_sec is not None else settings.store_timeout_sec
        self._concurrency = max(1, max_concurrency or settings.sync_max_concurrency)
        self._semaphore = asyncio.Semaphore(self._concurrency)
        self._cancel_event = cancel_event
        self._progress_callback = progress_callback
        self._clock = clock or utc_now_millis
        self._applier = BatchApplier(
            store,
            batch_size=batch_size or settings.batch_operation_count,
            timeout_sec=self._store_timeout,
            lock=asyncio.Lock(),
        )
        self._done = 0

    async def run(
        self,
        channel_map: Mapping[int, Channel | None],
        listing: Listing,
        mode: SyncMode = SyncMode.FULL,
    ) -> SyncReport:
        started_at = datetime.now(timezone.utc)
        window_start, window_end = window_for_mode(mode, self._clock())
        log_sync_window(logger, window_start, window_end)

        programs_by_channel: dict[str, list[RawProgram]] = defaultdict(list)
        for program in listing.programs:
            programs_by_channel[program.channel_id].append(program)

        total = len(channel_map)
        self._done = 0
        tasks = [
            asyncio.create_task(
                self._process_channel(
                    index,
                    total,
                    row_id,
                    channel,
                    programs_by_channel.get(channel.id, []) if channel else [],
                    window_start,
                    window_end,
                )
            )
            for index, (row_id, channel) in enumerate(channel_map.items(), start=1)
        ]
        summaries = list(await asyncio.gather(*tasks))

        return SyncReport(
            mode=mode,
            window_start=window_start,
            window_end=window_end,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            channels=summaries,
        )

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    async def _process_channel(
        self,
        index: int,
        total: int,
        row_id: int,
        channel: Channel | None,
        raw_programs: Sequence[RawProgram],
        window_start: int,
        window_end: int,
    ) -> ChannelSummary:
        async with self._semaphore:
            if self._cancelled():
                logger.info("[Channel %s] Not started: sync cancelled", row_id)
                summary = ChannelSummary(row_id=row_id, channel_id=channel.id if channel else None,
                                         status="cancelled")
            else:
                log_channel_processing(logger, index, total, row_id, channel.id if channel else None)
                summary = await self._sync_channel(row_id, channel, raw_programs, window_start, window_end)

        self._done += 1
        if self._progress_callback is not None:
            self._progress_callback(self._done, total)
        return summary

    async def _sync_channel(
        self,
        row_id: int,
        channel: Channel | None,
        raw_programs: Sequence[RawProgram],
        window_start: int,
        window_end: int,
    ) -> ChannelSummary:
        if channel is None:
            logger.warning("[Channel %s] No matching feed channel; skipping", row_id)
            return ChannelSummary(row_id=row_id, channel_id=None, status="skipped",
                                  error="no matching feed channel")

        try:
            new_programs = generate_programs(row_id, channel, raw_programs, window_start, window_end)
        except EmptyCycleError as exc:
            logger.warning("[Channel %s] %s; skipping", row_id, exc)
            return ChannelSummary(row_id=row_id, channel_id=channel.id, status="skipped", error=str(exc))

        summary = ChannelSummary(
            row_id=row_id,
            channel_id=channel.id,
            status="success",
            programs_generated=len(new_programs),
        )
        if not new_programs:
            logger.info("[Channel %s] No programs in window", row_id)
            return summary

        try:
            old_programs = await asyncio.wait_for(
                self.store.query_stored_programs(row_id),
                timeout=self._store_timeout,
            )
        except Exception as exc:
            logger.error("[Channel %s] Failed to query stored programs: %s", row_id, exc, exc_info=True)
            summary.status = "failed"
            summary.error = str(exc) or type(exc).__name__
            return summary

        ops = reconcile(old_programs, new_programs)
        summary.inserts, summary.updates, summary.deletes = count_operations(ops)
        log_reconcile_summary(logger, row_id, summary.inserts, summary.updates, summary.deletes)

        try:
            summary.batches_committed = await self._applier.apply(ops)
        except StoreBatchError as exc:
            logger.error("[Channel %s] Reconciliation partially applied: %s", row_id, exc)
            summary.status = "failed"
            summary.error = str(exc)
            summary.batches_committed = exc.committed_batches
        return summary


async def sync_and_process(
    mode: SyncMode = SyncMode.FULL,
    *,
    store: ProgramStore | None = None,
    progress_callback: ProgressCallback | None = None,
) -> dict:
    """
    Main entry point for a sync run with concurrency protection.

    Returns:
        Dictionary with sync statistics or error/skip message.
    """
    coordinator = get_sync_coordinator()
    return await coordinator.execute(
        lambda cancel_event: _run_sync(mode, cancel_event, store or ProgramStore(), progress_callback)
    )


async def _run_sync(
    mode: SyncMode,
    cancel_event: asyncio.Event,
    store: ProgramStore,
    progress_callback: ProgressCallback | None,
) -> dict:
    log_sync_start(logger, mode.value)

    if not settings.xmltv_source:
        logger.warning("XMLTV_SOURCE not configured - sync aborted")
        return {"error": "XMLTV_SOURCE not configured"}

    try:
        listing = await fetch_combined_listing(
            settings.xmltv_source,
            settings.m3u_source,
            parse_timeout_seconds=settings.parse_timeout_sec,
        )
    except (FetchError, ParseError) as exc:
        logger.error("Listing fetch failed, sync aborted: %s", exc, exc_info=True)
        return {"error": str(exc)}

    try:
        await store.update_channels(settings.input_id, listing.channels)
        channel_map = await store.resolve_channel_row_ids(settings.input_id, listing.channels)
        pipeline = ChannelSyncPipeline(
            store,
            cancel_event=cancel_event,
            progress_callback=progress_callback,
        )
        report = await pipeline.run(channel_map, listing, mode)
    except RuntimeError as exc:
        logger.error("EPG sync failed: %s", exc, exc_info=True)
        return {"error": str(exc)}
    except Exception as exc:  # Catch-all to ensure API stability
        logger.error("Unexpected error during EPG sync: %s", exc, exc_info=True)
        return {"error": str(exc)}

    log_sync_end(logger, mode.value)
    return report.to_dict()
