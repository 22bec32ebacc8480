"""
Listing Fetch Service

Handles downloading and parsing listing sources (XMLTV guides and M3U playlists).
Separated from orchestration logic for better testability.
"""
import logging
import asyncio
from pathlib import Path
from typing import Literal
from uuid import uuid4

import httpx
from lxml import etree # type: ignore

from epgsync.config import settings
from epgsync.exceptions import ParseError
from epgsync.services.listing_types import Listing
from epgsync.services.m3u_parser_service import parse_m3u_file
from epgsync.services.xmltv_parser_service import parse_xmltv_file
from epgsync.utils.data_merging import merge_channels
from epgsync.utils.file_operations import download_file, cleanup_temp_file
from epgsync.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

ListingFormat = Literal["xmltv", "m3u"]

_PARSERS = {
    "xmltv": parse_xmltv_file,
    "m3u": parse_m3u_file,
}


async def fetch_listing(
    source: str,
    fmt: ListingFormat,
    *,
    parse_timeout_seconds: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Listing:
    """
    Download and parse a single listing source

    Args:
        source: URL to download from
        fmt: "xmltv" or "m3u"

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)
        transport: Optional httpx transport (used by tests)

    Returns:
        Parsed listing

    Raises:
        FetchError: If the source cannot be downloaded
        ParseError: If the content cannot be parsed or holds no channels
    """
    if fmt not in _PARSERS:
        raise ValueError(f"Unsupported listing format: {fmt}")

    temp_file = None
    safe_source = sanitize_url_for_logging(source)
    try:
        logger.info(f"  [{fmt}] Starting download: {safe_source}")
        temp_file = await download_file(
            source,
            f"epgsync_{fmt}_{uuid4().hex}.{'xml' if fmt == 'xmltv' else 'm3u'}",
            timeout=settings.download_timeout_sec,
            max_retries=settings.download_max_retries,
            transport=transport,
        )
        logger.info(f"  [{fmt}] Download successful, parsing {temp_file}")

        listing = await parse_listing_async(
            temp_file,
            fmt,
            parse_timeout_seconds=parse_timeout_seconds,
        )
        logger.info(
            f"  [{fmt}] Parsing complete: {len(listing.channels)} channels, {len(listing.programs)} programs"
        )
        return listing

    finally:
        if temp_file:
            if cleanup_temp_file(temp_file):
                logger.debug(f"  [{fmt}] Cleanup successful")
            else:
                logger.debug(f"  [{fmt}] Cleanup skipped (file not found)")


async def parse_listing_async(
    file_path: Path | str,
    fmt: ListingFormat,
    *,
    parse_timeout_seconds: int | None = None
) -> Listing:
    """
    Parse a listing file asynchronously with timeout protection.

    File parsing is offloaded to thread pool to avoid blocking event loop.

    Raises:
        ParseError: If parsing fails, times out, or finds no channels
    """
    if isinstance(file_path, str):
        file_path = Path(file_path)

    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None
    timeout_display = f"{effective_timeout}s" if effective_timeout else "disabled"

    try:
        loop = asyncio.get_running_loop()
        logger.debug("Offloading %s parsing to thread pool executor (timeout: %s)...", fmt, timeout_display)
        parse_task = loop.run_in_executor(None, _PARSERS[fmt], str(file_path))
        if effective_timeout:
            listing = await asyncio.wait_for(parse_task, timeout=effective_timeout)
        else:
            listing = await parse_task
    except asyncio.TimeoutError as exc:
        logger.error("Parsing timed out after %s for %s", timeout_display, file_path)
        raise ParseError(f"{fmt} parsing timed out - file may be too large or malformed") from exc
    except (etree.XMLSyntaxError, UnicodeDecodeError, OSError) as exc:
        logger.error("Failed to parse %s file %s: %s", fmt, file_path, exc)
        raise ParseError(f"Failed to parse {fmt} listing: {exc}") from exc

    if not listing.channels:
        logger.warning("No channels found in %s file", fmt)
        raise ParseError(f"No channels found in {fmt} listing")

    return listing


async def fetch_combined_listing(
    xmltv_source: str,
    m3u_source: str | None = None,
    *,
    parse_timeout_seconds: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Listing:
    """
    Fetch the program guide and, when configured, the channel playlist.

    Programs always come from the XMLTV guide. Channels are the guide channels
    merged with the playlist channels.
    """
    if m3u_source is None:
        return await fetch_listing(
            xmltv_source,
            "xmltv",
            parse_timeout_seconds=parse_timeout_seconds,
            transport=transport,
        )

    tasks = [
        asyncio.create_task(
            fetch_listing(xmltv_source, "xmltv", parse_timeout_seconds=parse_timeout_seconds, transport=transport)
        ),
        asyncio.create_task(
            fetch_listing(m3u_source, "m3u", parse_timeout_seconds=parse_timeout_seconds, transport=transport)
        ),
    ]
    try:
        guide, playlist = await asyncio.gather(*tasks)
    except BaseException:
        # One source failed; stop the other and reap its outcome
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    channels, playlist_only = merge_channels(guide.channels, playlist.channels)
    if playlist_only:
        logger.info("Added %s channel(s) present only in the playlist", playlist_only)
    return Listing(channels=channels, programs=guide.programs)
