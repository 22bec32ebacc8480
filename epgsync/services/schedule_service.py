"""
Schedule Generation Service

Turns a channel's raw feed programs into the concrete programs that must exist
inside a requested time window.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence

from epgsync.exceptions import EmptyCycleError, InvalidWindowError
from epgsync.services.listing_types import Channel, RawProgram
from epgsync.services.program_types import GeneratedProgram
from epgsync.utils.provider_data import build_internal_provider_data, parse_content_ratings


logger = logging.getLogger(__name__)


def generate_programs(
    channel_row_id: int,
    channel: Channel,
    raw_programs: Sequence[RawProgram],
    window_start: int,
    window_end: int,
) -> list[GeneratedProgram]:
    """
    Return the programs of a channel for the given time range.

    Non-repeating channels keep their declared times. Repeating channels loop
    their program list back to back, with cycles anchored at the UNIX epoch so
    that every process computes the same schedule for the same window.

    Args:
        channel_row_id: Stored row id of the channel the programs belong to
        channel: Feed channel
        raw_programs: Feed programs (any channel; filtered here)
        window_start: Start of the requested range (epoch millis)
        window_end: End of the requested range (epoch millis)

    Returns:
        Programs ordered by start time

    Raises:
        InvalidWindowError: If window_start > window_end
        EmptyCycleError: If a repeating channel has zero total duration
    """
    if window_start > window_end:
        raise InvalidWindowError(window_start, window_end)

    channel_programs = [program for program in raw_programs if program.channel_id == channel.id]

    if not channel.repeat_programs:
        return [
            _to_generated(channel_row_id, channel, program,
                          program.start_time_utc_millis, program.end_time_utc_millis)
            for program in channel_programs
            if program.start_time_utc_millis <= window_end
            and program.end_time_utc_millis >= window_start
        ]

    total_duration_ms = sum(program.duration_millis for program in channel_programs)
    if total_duration_ms <= 0:
        raise EmptyCycleError(channel.id)

    program_count = len(channel_programs)
    program_start_ms = window_start - window_start % total_duration_ms
    generated: list[GeneratedProgram] = []
    i = 0
    while program_start_ms < window_end:
        program = channel_programs[i % program_count]
        i += 1
        program_end_ms = program_start_ms + program.duration_millis
        if program_end_ms <= window_start:
            program_start_ms = program_end_ms
            continue
        generated.append(
            _to_generated(channel_row_id, channel, program, program_start_ms, program_end_ms)
        )
        program_start_ms = program_end_ms

    logger.debug(
        "Channel %s: generated %s repeating programs (cycle %sms)",
        channel.id,
        len(generated),
        total_duration_ms,
    )
    return generated


def _to_generated(
    channel_row_id: int,
    channel: Channel,
    program: RawProgram,
    start_ms: int,
    end_ms: int,
) -> GeneratedProgram:
    video_url = program.video_src if program.video_src is not None else channel.url
    return GeneratedProgram(
        channel_id=channel_row_id,
        title=program.title,
        description=program.description,
        content_ratings=parse_content_ratings(program.rating),
        canonical_genres=tuple(program.category),
        poster_art_uri=program.icon_url,
        internal_provider_data=build_internal_provider_data(program.video_type, video_url),
        start_time_utc_millis=start_ms,
        end_time_utc_millis=end_ms,
    )
