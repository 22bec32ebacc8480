"""
Database operations for EPG sync

This module contains the record store used by the sync pipeline: channel
registration, program queries, and atomic batch application of reconcile
operations.
"""
import logging
from collections.abc import Sequence

from sqlalchemy import delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from epgsync.database import get_session_factory, session_scope
from epgsync.exceptions import MalformedPayloadError
from epgsync.models import Channel as ChannelRow
from epgsync.models import Program
from epgsync.services.listing_types import Channel
from epgsync.services.program_types import (
    Delete,
    GeneratedProgram,
    Insert,
    Operation,
    PlaybackInfo,
    StoredProgram,
    Update,
)
from epgsync.utils.provider_data import (
    content_ratings_to_string,
    parse_content_ratings,
    parse_internal_provider_data,
)


logger = logging.getLogger(__name__)


class ProgramStore:
    """Record store backed by the service's SQLite database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def query_stored_programs(self, channel_row_id: int) -> list[StoredProgram]:
        """
        Return the programs stored for a channel in chronological order.

        Args:
            channel_row_id: Stored channel row id

        Returns:
            Stored programs sorted by start time
        """
        async with session_scope(session_factory=self.session_factory) as session:
            result = await session.execute(
                select(Program)
                .where(Program.channel_id == channel_row_id)
                .order_by(Program.start_time_utc_millis, Program.id)
            )
            rows = result.scalars().all()
        return [_row_to_stored(row) for row in rows]

    async def apply_batch(self, ops: Sequence[Operation]) -> None:
        """
        Apply a batch of operations in a single transaction.

        Either every operation in the batch is committed or none is.
        """
        if not ops:
            return

        async with session_scope(session_factory=self.session_factory) as session:
            for op in ops:
                if isinstance(op, Insert):
                    await session.execute(insert(Program).values(**_program_values(op.program)))
                elif isinstance(op, Update):
                    result = await session.execute(
                        update(Program)
                        .where(Program.id == op.program_id)
                        .values(**_program_values(op.program))
                    )
                    if result.rowcount == 0:
                        logger.debug("Update matched no program with id %s", op.program_id)
                elif isinstance(op, Delete):
                    await session.execute(delete(Program).where(Program.id == op.program_id))
                else:
                    raise TypeError(f"Unsupported operation: {op!r}")

        logger.debug("Applied batch of %s operations", len(ops))

    async def resolve_channel_row_ids(
        self,
        input_id: str,
        channels: Sequence[Channel],
    ) -> dict[int, Channel | None]:
        """
        Map stored channel row ids of an input to feed channels by display number.

        Rows without a matching feed channel map to None.
        """
        by_number = {channel.display_number: channel for channel in channels}

        async with session_scope(session_factory=self.session_factory) as session:
            result = await session.execute(
                select(ChannelRow.id, ChannelRow.display_number)
                .where(ChannelRow.input_id == input_id)
                .order_by(ChannelRow.id)
            )
            rows = result.all()

        channel_map: dict[int, Channel | None] = {}
        for row_id, display_number in rows:
            channel = by_number.get(display_number)
            if channel is None:
                logger.warning("Unknown channel number %s for row %s", display_number, row_id)
            channel_map[row_id] = channel
        return channel_map

    async def update_channels(self, input_id: str, channels: Sequence[Channel]) -> dict[str, int]:
        """
        Register feed channels for an input.

        Existing rows are updated in place (keeping their row id), new channels
        are inserted, and rows whose channel left the feed are deleted along
        with their programs.

        Returns:
            Counts of inserted, updated and deleted channel rows
        """
        # Deduplicate by feed id while preserving last occurrence
        deduped: dict[str, Channel] = {channel.id: channel for channel in channels}
        inserted = updated = 0

        async with session_scope(session_factory=self.session_factory) as session:
            result = await session.execute(
                select(ChannelRow).where(ChannelRow.input_id == input_id)
            )
            existing = {row.feed_id: row for row in result.scalars().all()}

            for channel in deduped.values():
                row = existing.pop(channel.id, None)
                values = _channel_values(channel)
                if row is None:
                    session.add(ChannelRow(input_id=input_id, feed_id=channel.id, **values))
                    inserted += 1
                else:
                    for key, value in values.items():
                        setattr(row, key, value)
                    updated += 1

            for row in existing.values():
                await session.execute(delete(Program).where(Program.channel_id == row.id))
                await session.delete(row)

        deleted = len(existing)
        logger.info(
            "Channel registration for %s: %s inserted, %s updated, %s deleted",
            input_id,
            inserted,
            updated,
            deleted,
        )
        return {"inserted": inserted, "updated": updated, "deleted": deleted}

    async def get_program_playback_info(
        self,
        channel_row_id: int,
        start_ms: int,
        end_ms: int,
        max_programs: int = 100,
    ) -> list[PlaybackInfo]:
        """
        Return playback details of the programs overlapping a time range.

        Records whose internal provider data cannot be decoded are skipped.
        """
        async with session_scope(session_factory=self.session_factory) as session:
            result = await session.execute(
                select(Program)
                .where(
                    Program.channel_id == channel_row_id,
                    Program.start_time_utc_millis <= end_ms,
                    Program.end_time_utc_millis >= start_ms,
                )
                .order_by(Program.start_time_utc_millis, Program.id)
            )
            rows = result.scalars().all()

        playback: list[PlaybackInfo] = []
        for row in rows:
            try:
                video_type, video_url = parse_internal_provider_data(row.internal_provider_data)
            except MalformedPayloadError as exc:
                logger.warning("Skipping program %s: %s", row.id, exc)
                continue
            playback.append(
                PlaybackInfo(
                    start_time_utc_millis=row.start_time_utc_millis,
                    end_time_utc_millis=row.end_time_utc_millis,
                    video_url=video_url,
                    video_type=video_type,
                    content_ratings=parse_content_ratings(row.content_rating),
                )
            )
            if len(playback) >= max_programs:
                break
        return playback


def _program_values(program: GeneratedProgram) -> dict[str, object]:
    return {
        "channel_id": program.channel_id,
        "title": program.title,
        "description": program.description,
        "content_rating": content_ratings_to_string(program.content_ratings),
        "canonical_genre": list(program.canonical_genres) or None,
        "poster_art_uri": program.poster_art_uri,
        "internal_provider_data": program.internal_provider_data,
        "start_time_utc_millis": program.start_time_utc_millis,
        "end_time_utc_millis": program.end_time_utc_millis,
    }


def _row_to_stored(row: Program) -> StoredProgram:
    return StoredProgram(
        program_id=row.id,
        program=GeneratedProgram(
            channel_id=row.channel_id,
            title=row.title,
            description=row.description,
            content_ratings=parse_content_ratings(row.content_rating),
            canonical_genres=tuple(row.canonical_genre or ()),
            poster_art_uri=row.poster_art_uri,
            internal_provider_data=row.internal_provider_data,
            start_time_utc_millis=row.start_time_utc_millis,
            end_time_utc_millis=row.end_time_utc_millis,
        ),
    )


def _channel_values(channel: Channel) -> dict[str, object]:
    return {
        "display_number": channel.display_number,
        "display_name": channel.display_name,
        "original_network_id": channel.original_network_id,
        "transport_stream_id": channel.transport_stream_id,
        "service_id": channel.service_id,
        "internal_provider_data": channel.url,
        "logo_url": channel.icon_url,
    }
