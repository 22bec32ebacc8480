"""
Feed-side dataclasses produced by the listing fetcher.
"""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class Channel:
    """A channel as declared by the feed."""
    id: str
    display_name: str
    display_number: str
    repeat_programs: bool = False
    url: str | None = None
    icon_url: str | None = None
    original_network_id: int = 0
    transport_stream_id: int = 0
    service_id: int = 0


@dataclass(frozen=True, slots=True)
class RawProgram:
    """A program as declared by the feed, before schedule generation."""
    channel_id: str
    title: str
    start_time_utc_millis: int
    end_time_utc_millis: int
    description: str | None = None
    category: tuple[str, ...] = ()
    rating: str | None = None
    icon_url: str | None = None
    video_src: str | None = None
    video_type: int = 0

    @property
    def duration_millis(self) -> int:
        return self.end_time_utc_millis - self.start_time_utc_millis


@dataclass(slots=True)
class Listing:
    """Channels and programs fetched for one sync run."""
    channels: list[Channel] = field(default_factory=list)
    programs: list[RawProgram] = field(default_factory=list)


__all__ = ["Channel", "RawProgram", "Listing"]
