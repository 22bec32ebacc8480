"""
Internal provider data and content rating codecs

The internal provider payload is the stable on-disk contract between the sync
pipeline and playback: "<videoType>,<videoUrl>".
"""
import logging
from collections.abc import Iterable

from epgsync.exceptions import MalformedPayloadError
from epgsync.services.program_types import ContentRating

logger = logging.getLogger(__name__)

VIDEO_TYPE_HTTP_PROGRESSIVE = 0
VIDEO_TYPE_HLS = 1
VIDEO_TYPE_MPEG_DASH = 2

_VIDEO_TYPE_NAMES = {
    "HTTP_PROGRESSIVE": VIDEO_TYPE_HTTP_PROGRESSIVE,
    "HLS": VIDEO_TYPE_HLS,
    "MPEG_DASH": VIDEO_TYPE_MPEG_DASH,
}


def build_internal_provider_data(video_type: int, video_url: str | None) -> str:
    """Encode video type and URL into the internal provider payload."""
    return f"{video_type},{video_url if video_url is not None else ''}"


def parse_internal_provider_data(internal_data: str | None) -> tuple[int, str]:
    """
    Decode an internal provider payload.

    Splits on the first comma only, so URLs may contain commas.

    Returns:
        Tuple of (video_type, video_url)

    Raises:
        MalformedPayloadError: If the payload has fewer than two parts or a
            non-integer video type
    """
    if internal_data is None:
        raise MalformedPayloadError(internal_data)
    values = internal_data.split(",", 1)
    if len(values) != 2:
        raise MalformedPayloadError(internal_data)
    try:
        video_type = int(values[0])
    except ValueError as exc:
        raise MalformedPayloadError(internal_data) from exc
    return video_type, values[1]


def parse_video_type(value: str | None, video_url: str | None = None) -> int:
    """
    Map an XMLTV video-type attribute to a video type constant.

    Falls back to the URL extension when no type is declared.
    """
    if value:
        normalized = value.strip().upper()
        if normalized in _VIDEO_TYPE_NAMES:
            return _VIDEO_TYPE_NAMES[normalized]
        if normalized.isdigit() and int(normalized) in _VIDEO_TYPE_NAMES.values():
            return int(normalized)
        logger.warning("Unknown video type '%s', using HTTP_PROGRESSIVE", value)
        return VIDEO_TYPE_HTTP_PROGRESSIVE

    if video_url:
        path = video_url.split("?", 1)[0].lower()
        if path.endswith(".m3u8"):
            return VIDEO_TYPE_HLS
        if path.endswith(".mpd"):
            return VIDEO_TYPE_MPEG_DASH
    return VIDEO_TYPE_HTTP_PROGRESSIVE


def parse_content_ratings(comma_separated_ratings: str | None) -> tuple[ContentRating, ...]:
    """Parse a comma separated rating string into one rating per token."""
    if not comma_separated_ratings:
        return ()
    return tuple(
        ContentRating.unflatten(token)
        for token in comma_separated_ratings.split(",")
        if token.strip()
    )


def content_ratings_to_string(content_ratings: Iterable[ContentRating]) -> str | None:
    """Join flattened ratings with commas, or None when there are none."""
    flattened = [rating.flatten() for rating in content_ratings]
    if not flattened:
        return None
    return ",".join(flattened)

