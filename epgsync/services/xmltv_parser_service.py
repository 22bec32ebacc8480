from typing import Optional
import logging

from lxml import etree # type: ignore

from epgsync.services.listing_types import Channel, Listing, RawProgram
from epgsync.utils.provider_data import parse_video_type
from epgsync.utils.timezone import DateFormatError, parse_xmltv_time_to_millis

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "1", "yes"}


def parse_xmltv_file(file_path: str) -> Listing:
    """
    Parse XMLTV file and return its channels and programs

    Args:
        file_path: Path to XMLTV file

    Returns:
        Listing with channels and programs in feed order

    Raises:
        etree.XMLSyntaxError: If XML is malformed
        OSError: If file can't be read
    """
    logger.debug(f"Parsing XMLTV file: {file_path}")

    try:
        tree = etree.parse(file_path)
        root = tree.getroot()
    except etree.XMLSyntaxError as e:
        logger.error(f"  XML parsing error: {e}")
        raise

    return parse_xmltv_root(root)


def parse_xmltv_bytes(content: bytes) -> Listing:
    """Parse an in-memory XMLTV document"""
    return parse_xmltv_root(etree.fromstring(content))


def parse_xmltv_root(root: etree._Element) -> Listing:
    channels = _parse_channels(root)
    logger.debug(f"    Found {len(channels)} valid channels")

    programs = _parse_programs(root)
    logger.debug(f"    Found {len(programs)} valid programs")

    logger.info(f"XMLTV parsing complete: {len(channels)} channels, {len(programs)} programs")
    return Listing(channels=channels, programs=programs)


def _parse_channels(root: etree._Element) -> list[Channel]:
    """Extract channels from XMLTV root element"""
    channels = []

    for position, channel in enumerate(root.findall('channel'), start=1):
        xmltv_id = channel.get('id')
        if not xmltv_id:
            logger.debug("Skipping channel with missing ID attribute")
            continue

        display_name = _get_text(channel, 'display-name', default=xmltv_id)
        display_number = _get_text(channel, 'display-number', default=str(position))

        url = channel.get('url') or _get_text(channel, 'url') or _get_text(channel, 'stream')

        channels.append(Channel(
            id=xmltv_id,
            display_name=display_name or xmltv_id,
            display_number=display_number or str(position),
            repeat_programs=(channel.get('repeat-programs') or '').strip().lower() in _TRUE_VALUES,
            url=url,
            icon_url=_get_icon(channel),
            original_network_id=_get_int(channel, 'original-network-id'),
            transport_stream_id=_get_int(channel, 'transport-stream-id'),
            service_id=_get_int(channel, 'service-id'),
        ))

    return channels


def _parse_programs(root: etree._Element) -> list[RawProgram]:
    """Extract programs from XMLTV root element"""
    programs = []

    for programme in root.findall('programme'):
        program = _parse_single_program(programme)
        if program:
            programs.append(program)

    return programs


def _parse_single_program(programme: etree._Element) -> Optional[RawProgram]:
    """Parse single programme element"""
    channel_id = programme.get('channel')
    start_str = programme.get('start')
    stop_str = programme.get('stop')
    title_text = _get_text(programme, 'title')

    if not channel_id or not start_str or not stop_str or title_text is None:
        logger.debug("Skipping programme with missing required fields")
        return None

    try:
        start_ms = parse_xmltv_time_to_millis(start_str)
        stop_ms = parse_xmltv_time_to_millis(stop_str)
    except DateFormatError:
        logger.debug(f"Skipping programme '{title_text}' with invalid times")
        return None

    if stop_ms < start_ms:
        logger.debug(f"Skipping programme '{title_text}' that stops before it starts")
        return None

    video_src = programme.get('video-src')

    return RawProgram(
        channel_id=channel_id,
        title=title_text,
        start_time_utc_millis=start_ms,
        end_time_utc_millis=stop_ms,
        description=_get_text(programme, 'desc'),
        category=tuple(
            elem.text.strip() for elem in programme.findall('category') if elem.text and elem.text.strip()
        ),
        rating=_get_ratings(programme),
        icon_url=_get_icon(programme),
        video_src=video_src,
        video_type=parse_video_type(programme.get('video-type'), video_src),
    )


def _get_ratings(programme: etree._Element) -> Optional[str]:
    """Join all <rating><value> entries with commas"""
    values = []
    for rating in programme.findall('rating'):
        value = _get_text(rating, 'value')
        if value:
            values.append(value)
    return ",".join(values) if values else None


def _get_icon(element: etree._Element) -> Optional[str]:
    icon_elem = element.find('icon')
    if icon_elem is None:
        return None
    return icon_elem.get('src') or None


def _get_int(element: etree._Element, attribute: str) -> int:
    value = element.get(attribute)
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        logger.debug(f"Ignoring non-integer {attribute}={value!r}")
        return 0


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None or not child.text:
        return default
    return child.text.strip()
