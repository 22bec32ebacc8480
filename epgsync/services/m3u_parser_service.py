"""
M3U playlist parsing

Turns an extended M3U playlist into feed channels. Playlists carry no
programs; they supply stream URLs and channel numbering.
"""
import logging
import re

from epgsync.services.listing_types import Channel, Listing

logger = logging.getLogger(__name__)

ATTR_PATTERN = re.compile(r'([\w-]+)="([^"]*)"')


def parse_m3u_file(file_path: str) -> Listing:
    """Parse an M3U playlist file"""
    with open(file_path, encoding="utf-8", errors="replace") as f:
        return parse_m3u_text(f.read())


def parse_m3u_text(content: str) -> Listing:
    """
    Parse extended M3U content

    Format:
        #EXTINF:-1 tvg-id="..." tvg-name="..." tvg-logo="..." tvg-chno="..." group-title="...",Channel Name
        http://stream/url
    """
    channels: list[Channel] = []
    pending: dict[str, str] | None = None
    position = 0

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#EXTINF"):
            pending = _parse_extinf_line(line)
            continue
        if line.startswith("#"):
            continue
        if pending is None:
            logger.debug(f"Ignoring stream URL without #EXTINF header: {line}")
            continue

        position += 1
        channel_id = pending.get("tvg-id") or pending.get("title") or line
        channels.append(Channel(
            id=channel_id,
            display_name=pending.get("tvg-name") or pending.get("title") or channel_id,
            display_number=pending.get("tvg-chno") or str(position),
            url=line,
            icon_url=pending.get("tvg-logo") or None,
        ))
        pending = None

    logger.info(f"M3U parsing complete: {len(channels)} channels")
    return Listing(channels=channels, programs=[])


def _parse_extinf_line(line: str) -> dict[str, str]:
    """Extract tvg attributes and the trailing title from an #EXTINF line"""
    header, _, title = line.partition(",")
    # Quoted attribute values may themselves contain commas
    if header.count('"') % 2:
        quote_end = line.rfind('"')
        comma = line.find(",", quote_end)
        header = line[:comma] if comma != -1 else line
        title = line[comma + 1:] if comma != -1 else ""

    attributes = {key.lower(): value.strip() for key, value in ATTR_PATTERN.findall(header)}
    attributes["title"] = title.strip()
    return attributes
