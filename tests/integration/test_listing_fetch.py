"""
Integration tests for downloading and parsing listing sources.
"""

import asyncio

import httpx
import pytest

from epgsync.exceptions import FetchError, ParseError
from epgsync.services.listing_fetch_service import fetch_combined_listing, fetch_listing
from epgsync.utils.file_operations import download_file


pytestmark = pytest.mark.integration

GUIDE = b"""<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <channel id="news.example">
    <display-name>News</display-name>
    <display-number>1</display-number>
  </channel>
  <programme start="20240101000000 +0000" stop="20240101010000 +0000" channel="news.example">
    <title>Morning News</title>
  </programme>
</tv>
"""

PLAYLIST = b"""#EXTM3U
#EXTINF:-1 tvg-id="news.example" tvg-logo="http://img.example/news.png",News
http://iptv.example/news.ts
#EXTINF:-1 tvg-id="music.example" tvg-chno="5",Music
http://iptv.example/music.ts
"""


class RecordingHandler:
    """Serves fixed responses by path and counts requests."""

    def __init__(self, routes: dict[str, httpx.Response]):
        self.routes = routes
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        return self.routes.get(request.url.path, httpx.Response(404))


def make_transport(**routes: httpx.Response) -> tuple[httpx.MockTransport, RecordingHandler]:
    handler = RecordingHandler({f"/{name.replace('_', '.')}": response for name, response in routes.items()})
    return httpx.MockTransport(handler), handler


class TestFetchListing:
    """Tests for a single listing source."""

    async def test_guide_is_downloaded_and_parsed(self):
        transport, _ = make_transport(epg_xml=httpx.Response(200, content=GUIDE))

        listing = await fetch_listing("http://guide.example/epg.xml", "xmltv", transport=transport)

        assert [channel.id for channel in listing.channels] == ["news.example"]
        assert [program.title for program in listing.programs] == ["Morning News"]

    async def test_client_error_is_not_retried(self):
        transport, handler = make_transport()

        with pytest.raises(FetchError):
            await fetch_listing("http://guide.example/epg.xml", "xmltv", transport=transport)

        assert handler.calls == ["/epg.xml"]

    async def test_malformed_guide_is_a_parse_error(self):
        transport, _ = make_transport(epg_xml=httpx.Response(200, content=b"<tv><channel"))

        with pytest.raises(ParseError):
            await fetch_listing("http://guide.example/epg.xml", "xmltv", transport=transport)

    async def test_guide_without_channels_is_a_parse_error(self):
        transport, _ = make_transport(epg_xml=httpx.Response(200, content=b"<tv></tv>"))

        with pytest.raises(ParseError, match="No channels"):
            await fetch_listing("http://guide.example/epg.xml", "xmltv", transport=transport)

    async def test_unsupported_format(self):
        with pytest.raises(ValueError):
            await fetch_listing("http://guide.example/epg.json", "json")


class TestDownloadFile:
    """Tests for retry behaviour of the downloader."""

    async def test_server_error_is_retried(self):
        responses = iter([httpx.Response(503), httpx.Response(200, content=b"ok")])
        transport = httpx.MockTransport(lambda request: next(responses))

        path = await download_file(
            "http://guide.example/epg.xml",
            "epgsync_retry_test.xml",
            max_retries=2,
            backoff_factor=0.01,
            transport=transport,
        )

        try:
            assert path.read_bytes() == b"ok"
        finally:
            path.unlink()

    async def test_exhausted_retries_raise(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))

        with pytest.raises(FetchError, match="after 1 attempts"):
            await download_file(
                "http://guide.example/epg.xml",
                "epgsync_fail_test.xml",
                max_retries=1,
                transport=transport,
            )


class TestFetchCombinedListing:
    """Tests for merging the guide with the playlist."""

    async def test_guide_only(self):
        transport, handler = make_transport(epg_xml=httpx.Response(200, content=GUIDE))

        listing = await fetch_combined_listing("http://guide.example/epg.xml", transport=transport)

        assert len(listing.channels) == 1
        assert handler.calls == ["/epg.xml"]

    async def test_playlist_channels_are_merged(self):
        transport, _ = make_transport(
            epg_xml=httpx.Response(200, content=GUIDE),
            list_m3u=httpx.Response(200, content=PLAYLIST),
        )

        listing = await fetch_combined_listing(
            "http://guide.example/epg.xml",
            "http://iptv.example/list.m3u",
            transport=transport,
        )

        news, music = listing.channels
        assert news.url == "http://iptv.example/news.ts"
        assert news.icon_url == "http://img.example/news.png"
        assert news.display_number == "1"
        assert (music.id, music.display_number) == ("music.example", "5")
        assert [program.title for program in listing.programs] == ["Morning News"]

    async def test_failing_source_cancels_the_other(self):
        playlist_started = asyncio.Event()
        finished = []

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/list.m3u":
                playlist_started.set()
                await asyncio.sleep(30)
                finished.append(request.url.path)
                return httpx.Response(200, content=PLAYLIST)
            await playlist_started.wait()
            return httpx.Response(404)

        with pytest.raises(FetchError):
            await asyncio.wait_for(
                fetch_combined_listing(
                    "http://guide.example/epg.xml",
                    "http://iptv.example/list.m3u",
                    transport=httpx.MockTransport(handler),
                ),
                timeout=5,
            )

        assert finished == []
