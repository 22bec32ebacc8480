"""
EPG Sync Test Configuration

Shared fixtures and configuration for all tests.
"""

import os

os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest

from epgsync.database import close_db, init_db
from epgsync.services.listing_types import Listing
from epgsync.services.store_service import ProgramStore
from epgsync.services.sync_coordinator import reset_sync_coordinator
from tests.factories import HOUR_MS, MINUTE_MS, FakeStore, make_channel, make_raw


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def sample_listing() -> Listing:
    """Two channels: one with fixed times, one looping a 2 hour cycle."""
    news = make_channel("news.example", number="1")
    loop = make_channel("loop.example", repeat=True, number="2", url="http://stream.example/loop.mp4")
    return Listing(
        channels=[news, loop],
        programs=[
            make_raw("Morning News", 0, HOUR_MS),
            make_raw("Weather", HOUR_MS, 2 * HOUR_MS),
            make_raw("Cartoons", 0, 30 * MINUTE_MS, channel_id="loop.example"),
            make_raw("Movie", 30 * MINUTE_MS, 2 * HOUR_MS, channel_id="loop.example"),
        ],
    )


@pytest.fixture
async def session_factory():
    """Fresh in-memory database per test."""
    factory = await init_db(":memory:")
    try:
        yield factory
    finally:
        await close_db()


@pytest.fixture
async def store(session_factory) -> ProgramStore:
    return ProgramStore(session_factory)


@pytest.fixture(autouse=True)
def _reset_coordinator():
    reset_sync_coordinator()
    yield
    reset_sync_coordinator()
