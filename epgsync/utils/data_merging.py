"""
Data merging utilities

This module merges channel metadata coming from an XMLTV guide and an M3U
playlist into a single channel list.
"""
import logging
from collections.abc import Sequence
from dataclasses import replace

from epgsync.services.listing_types import Channel

logger = logging.getLogger(__name__)


def merge_channels(
    guide_channels: Sequence[Channel],
    playlist_channels: Sequence[Channel],
) -> tuple[list[Channel], int]:
    """
    Merge playlist channels into guide channels by feed id.

    Guide data wins where it is present; the playlist fills in the stream URL,
    icon and display number when the guide lacks them. Playlist channels that
    are not in the guide are appended in playlist order.

    Args:
        guide_channels: Channels parsed from the XMLTV guide
        playlist_channels: Channels parsed from the M3U playlist

    Returns:
        Tuple of (merged_channels, count_of_playlist_only_channels)
    """
    merged: dict[str, Channel] = {channel.id: channel for channel in guide_channels}
    new_count = 0

    for channel in playlist_channels:
        current = merged.get(channel.id)
        if current is None:
            merged[channel.id] = channel
            new_count += 1
            continue

        updated = replace(
            current,
            url=current.url or channel.url,
            icon_url=current.icon_url or channel.icon_url,
            display_number=current.display_number or channel.display_number,
        )
        if updated != current:
            merged[channel.id] = updated
            logger.debug("Updated channel %s with playlist data", channel.id)

    return list(merged.values()), new_count
