"""
Playback Query Service

Read path for stored programs: decodes the internal provider payload into the
details a player needs.
"""
from datetime import datetime, timezone
import logging

from epgsync.schemas import PlaybackProgram, PlaybackRequest, PlaybackResponse
from epgsync.services.store_service import ProgramStore
from epgsync.utils.timezone import millis_to_iso

logger = logging.getLogger(__name__)


async def get_playback_data(
    store: ProgramStore,
    channel_row_id: int,
    request: PlaybackRequest,
) -> PlaybackResponse:
    """
    Get playback details for the programs of a channel within a window

    Args:
        store: Record store
        channel_row_id: Stored channel row id
        request: Window and limit

    Returns:
        Programs overlapping the window; records with a malformed payload are left out
    """
    logger.info(
        f"Playback request for channel {channel_row_id}: "
        f"{millis_to_iso(request.from_ms)} to {millis_to_iso(request.to_ms)}"
    )

    infos = await store.get_program_playback_info(
        channel_row_id,
        request.from_ms,
        request.to_ms,
        max_programs=request.limit,
    )
    programs = [
        PlaybackProgram(
            start_time_utc_millis=info.start_time_utc_millis,
            end_time_utc_millis=info.end_time_utc_millis,
            start_time=millis_to_iso(info.start_time_utc_millis),
            end_time=millis_to_iso(info.end_time_utc_millis),
            video_url=info.video_url,
            video_type=info.video_type,
            content_ratings=[rating.flatten() for rating in info.content_ratings],
        )
        for info in infos
    ]

    return PlaybackResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        channel_row_id=channel_row_id,
        total_programs=len(programs),
        programs=programs,
    )
