"""
Integration tests for the per-channel sync pipeline and the sync entry point.
"""

import asyncio

import pytest

from epgsync.config import settings
from epgsync.exceptions import FetchError
from epgsync.services import sync_service
from epgsync.services.listing_types import Listing
from epgsync.services.sync_coordinator import SyncCoordinator
from epgsync.services.sync_service import ChannelSyncPipeline, SyncMode, sync_and_process
from tests.factories import HOUR_MS, FakeStore, make_channel, make_raw, make_stored


pytestmark = pytest.mark.integration


def make_pipeline(store, **kwargs) -> ChannelSyncPipeline:
    kwargs.setdefault("clock", lambda: 0)
    kwargs.setdefault("store_timeout_sec", 5.0)
    return ChannelSyncPipeline(store, **kwargs)


def channel_map_for(listing: Listing) -> dict:
    return {row_id: channel for row_id, channel in enumerate(listing.channels, start=1)}


class FailingQueryStore(FakeStore):
    async def query_stored_programs(self, channel_row_id):
        raise ConnectionError("store unavailable")


class TestChannelSyncPipeline:
    """Tests for generate, reconcile and apply across channels."""

    async def test_programs_are_inserted_per_channel(self, fake_store, sample_listing):
        report = await make_pipeline(fake_store).run(
            channel_map_for(sample_listing), sample_listing, SyncMode.CURRENT_ONLY
        )

        assert report.status == "success"
        assert [summary.inserts for summary in report.channels] == [2, 2]
        assert [p.title for p in fake_store.programs[1]] == ["Morning News", "Weather"]
        assert [p.title for p in fake_store.programs[2]] == ["Cartoons", "Movie"]
        assert fake_store.programs[2][0].program.internal_provider_data == "0,http://stream.example/loop.mp4"

    async def test_second_run_is_a_no_op(self, fake_store, sample_listing):
        channel_map = channel_map_for(sample_listing)
        await make_pipeline(fake_store).run(channel_map, sample_listing, SyncMode.CURRENT_ONLY)
        batches_after_first_run = len(fake_store.batches)

        report = await make_pipeline(fake_store).run(channel_map, sample_listing, SyncMode.CURRENT_ONLY)

        assert report.status == "success"
        assert all(
            (summary.inserts, summary.updates, summary.deletes) == (0, 0, 0)
            for summary in report.channels
        )
        assert len(fake_store.batches) == batches_after_first_run

    async def test_changed_program_is_updated_in_place(self, sample_listing):
        store = FakeStore({1: [make_stored(77, "Morning News", 0, HOUR_MS, description="stale")]})

        report = await make_pipeline(store).run(
            {1: sample_listing.channels[0]}, sample_listing, SyncMode.CURRENT_ONLY
        )

        [summary] = report.channels
        assert (summary.inserts, summary.updates, summary.deletes) == (1, 1, 0)
        assert store.programs[1][0].program_id == 77

    async def test_failed_channel_does_not_affect_others(self, sample_listing):
        store = FakeStore(fail_channels=[2])

        report = await make_pipeline(store).run(
            channel_map_for(sample_listing), sample_listing, SyncMode.CURRENT_ONLY
        )

        news, loop = report.channels
        assert news.status == "success"
        assert loop.status == "failed"
        assert loop.batches_committed == 0
        assert report.status == "partial"
        assert len(store.programs[1]) == 2
        assert 2 not in store.programs

    async def test_partial_application_reports_committed_batches(self, sample_listing):
        loop = sample_listing.channels[1]
        store = FakeStore(fail_on_batch=3)

        report = await make_pipeline(store, batch_size=100).run({2: loop}, sample_listing, SyncMode.FULL)

        [summary] = report.channels
        # Two week window over a two hour, two program cycle
        assert summary.programs_generated == 336
        assert summary.status == "failed"
        assert summary.batches_committed == 2
        assert len(store.programs[2]) == 200

    async def test_query_failure_marks_channel_failed(self, sample_listing):
        store = FailingQueryStore()

        report = await make_pipeline(store).run(
            channel_map_for(sample_listing), sample_listing, SyncMode.CURRENT_ONLY
        )

        assert {summary.status for summary in report.channels} == {"failed"}
        assert store.batches == []

    async def test_unmatched_row_is_skipped(self, fake_store, sample_listing):
        report = await make_pipeline(fake_store).run(
            {1: sample_listing.channels[0], 9: None}, sample_listing, SyncMode.CURRENT_ONLY
        )

        assert [summary.status for summary in report.channels] == ["success", "skipped"]
        assert fake_store.queries == [1]

    async def test_empty_repeat_cycle_is_skipped(self, fake_store, sample_listing):
        empty = make_channel("empty.example", repeat=True, number="3")

        report = await make_pipeline(fake_store).run({3: empty}, sample_listing, SyncMode.CURRENT_ONLY)

        [summary] = report.channels
        assert summary.status == "skipped"
        assert "empty repeat cycle" in summary.error
        assert report.status == "success"

    async def test_channel_without_programs_in_window(self, fake_store, sample_listing):
        report = await make_pipeline(fake_store, clock=lambda: 100 * HOUR_MS).run(
            {1: sample_listing.channels[0]}, sample_listing, SyncMode.CURRENT_ONLY
        )

        [summary] = report.channels
        assert summary.status == "success"
        assert summary.programs_generated == 0
        assert fake_store.queries == []

    async def test_cancellation_stops_unstarted_channels(self, fake_store, sample_listing):
        cancel_event = asyncio.Event()
        pipeline = make_pipeline(
            fake_store,
            max_concurrency=1,
            cancel_event=cancel_event,
            progress_callback=lambda done, total: cancel_event.set(),
        )

        report = await pipeline.run(channel_map_for(sample_listing), sample_listing, SyncMode.CURRENT_ONLY)

        assert [summary.status for summary in report.channels] == ["success", "cancelled"]
        assert report.status == "cancelled"
        assert fake_store.queries == [1]

    async def test_progress_is_reported_per_channel(self, fake_store, sample_listing):
        progress = []

        await make_pipeline(fake_store, progress_callback=lambda done, total: progress.append((done, total))).run(
            channel_map_for(sample_listing), sample_listing, SyncMode.CURRENT_ONLY
        )

        assert progress == [(1, 2), (2, 2)]

    async def test_report_totals(self, fake_store, sample_listing):
        report = await make_pipeline(fake_store).run(
            channel_map_for(sample_listing), sample_listing, SyncMode.CURRENT_ONLY
        )

        payload = report.to_dict()

        assert payload["mode"] == "current_only"
        assert payload["channels_processed"] == 2
        assert payload["programs_inserted"] == 4
        assert payload["window_start"] == "1970-01-01T00:00:00+00:00"
        assert payload["window_end"] == "1970-01-01T01:00:00+00:00"


class TestResyncAgainstDatabase:
    """Repeated syncs through the SQLite store leave it untouched."""

    @pytest.fixture
    def rich_listing(self) -> Listing:
        news = make_channel("news.example", number="1")
        loop = make_channel("loop.example", repeat=True, number="2", url="http://stream.example/loop.mp4")
        return Listing(
            channels=[news, loop],
            programs=[
                make_raw(
                    "Evening Show",
                    0,
                    HOUR_MS,
                    description="Pilot",
                    category=("News, Weather", "Talk"),
                    rating="com.android.tv/US_TV/US_TV_PG/US_TV_V, TV-14",
                    icon_url="http://img.example/show.png",
                    video_src="http://vod.example/show.mpd",
                    video_type=2,
                ),
                make_raw("Cartoons", 0, 30 * 60 * 1000, channel_id="loop.example", category=("Kids",)),
                make_raw(
                    "Movie",
                    30 * 60 * 1000,
                    2 * HOUR_MS,
                    channel_id="loop.example",
                    rating="TV-PG",
                    video_src="http://vod.example/movie.m3u8",
                    video_type=1,
                ),
            ],
        )

    async def test_second_sync_issues_no_operations(self, store, rich_listing):
        await store.update_channels("input", rich_listing.channels)
        channel_map = await store.resolve_channel_row_ids("input", rich_listing.channels)

        first = await make_pipeline(store).run(channel_map, rich_listing, SyncMode.CURRENT_ONLY)
        second = await make_pipeline(store).run(channel_map, rich_listing, SyncMode.CURRENT_ONLY)

        assert first.status == "success"
        assert sum(summary.inserts for summary in first.channels) == 3
        assert second.status == "success"
        assert [
            (summary.inserts, summary.updates, summary.deletes) for summary in second.channels
        ] == [(0, 0, 0), (0, 0, 0)]


class TestSyncCoordinator:
    """Tests for run exclusivity and cancellation."""

    async def test_concurrent_run_is_skipped(self):
        coordinator = SyncCoordinator()
        started = asyncio.Event()
        release = asyncio.Event()

        async def long_sync(cancel_event):
            started.set()
            await release.wait()
            return {"status": "success", "cancelled": cancel_event.is_set()}

        first = asyncio.create_task(coordinator.execute(long_sync))
        await started.wait()

        assert coordinator.is_syncing()
        assert (await coordinator.execute(long_sync))["status"] == "skipped"
        assert coordinator.cancel() is True

        release.set()
        assert await first == {"status": "success", "cancelled": True}
        assert not coordinator.is_syncing()

    def test_cancel_without_running_sync(self):
        assert SyncCoordinator().cancel() is False


class TestSyncAndProcess:
    """Tests for the end-to-end sync entry point."""

    @pytest.fixture
    def configured(self, monkeypatch):
        monkeypatch.setattr(settings, "xmltv_source", "http://guide.example/epg.xml")
        monkeypatch.setattr(settings, "input_id", "test-input")
        monkeypatch.setattr(sync_service, "utc_now_millis", lambda: 0)

    async def test_sync_writes_programs_to_store(self, configured, monkeypatch, store, sample_listing):
        async def fake_fetch(xmltv_source, m3u_source=None, **kwargs):
            return sample_listing

        monkeypatch.setattr(sync_service, "fetch_combined_listing", fake_fetch)

        result = await sync_and_process(SyncMode.CURRENT_ONLY, store=store)

        assert result["status"] == "success"
        assert result["channels_processed"] == 2
        assert result["programs_inserted"] == 4
        channel_map = await store.resolve_channel_row_ids("test-input", sample_listing.channels)
        titles = {
            channel.id: [p.title for p in await store.query_stored_programs(row_id)]
            for row_id, channel in channel_map.items()
        }
        assert titles == {
            "news.example": ["Morning News", "Weather"],
            "loop.example": ["Cartoons", "Movie"],
        }

    async def test_missing_source_is_an_error(self, monkeypatch, fake_store):
        monkeypatch.setattr(settings, "xmltv_source", None)

        result = await sync_and_process(store=fake_store)

        assert "error" in result

    async def test_fetch_failure_is_an_error(self, configured, monkeypatch, fake_store):
        async def failing_fetch(*args, **kwargs):
            raise FetchError("HTTP 404 fetching http://guide.example/epg.xml")

        monkeypatch.setattr(sync_service, "fetch_combined_listing", failing_fetch)

        result = await sync_and_process(store=fake_store)

        assert result == {"error": "HTTP 404 fetching http://guide.example/epg.xml"}
        assert fake_store.queries == []
