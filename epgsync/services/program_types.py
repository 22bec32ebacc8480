"""
Program-side dataclasses shared by the schedule, reconcile and store layers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True, slots=True)
class ContentRating:
    """A parental content rating, flattened as domain/system/rating[/sub...]."""
    domain: str
    rating_system: str
    rating: str
    sub_ratings: tuple[str, ...] = ()

    def flatten(self) -> str:
        if not self.domain and not self.rating_system and not self.sub_ratings:
            return self.rating
        return "/".join((self.domain, self.rating_system, self.rating, *self.sub_ratings))

    @classmethod
    def unflatten(cls, value: str) -> "ContentRating":
        parts = value.strip().split("/")
        if len(parts) < 3:
            return cls(domain="", rating_system="", rating=value.strip())
        return cls(
            domain=parts[0],
            rating_system=parts[1],
            rating=parts[2],
            sub_ratings=tuple(parts[3:]),
        )


@dataclass(frozen=True, slots=True)
class GeneratedProgram:
    """A concrete program inside a sync window.

    Equality compares every field, which is what "content-equal" means for
    reconciliation.
    """
    channel_id: int
    title: str
    start_time_utc_millis: int
    end_time_utc_millis: int
    description: str | None = None
    content_ratings: tuple[ContentRating, ...] = ()
    canonical_genres: tuple[str, ...] = ()
    poster_art_uri: str | None = None
    internal_provider_data: str | None = None


@dataclass(frozen=True, slots=True)
class StoredProgram:
    """A persisted program with the identifier assigned by the store."""
    program_id: int
    program: GeneratedProgram

    @property
    def title(self) -> str:
        return self.program.title

    @property
    def start_time_utc_millis(self) -> int:
        return self.program.start_time_utc_millis

    @property
    def end_time_utc_millis(self) -> int:
        return self.program.end_time_utc_millis


@dataclass(frozen=True, slots=True)
class Insert:
    program: GeneratedProgram


@dataclass(frozen=True, slots=True)
class Update:
    program_id: int
    program: GeneratedProgram


@dataclass(frozen=True, slots=True)
class Delete:
    program_id: int


Operation = Union[Insert, Update, Delete]


@dataclass(frozen=True, slots=True)
class PlaybackInfo:
    """Decoded playback details for a stored program."""
    start_time_utc_millis: int
    end_time_utc_millis: int
    video_url: str
    video_type: int
    content_ratings: tuple[ContentRating, ...] = field(default_factory=tuple)


__all__ = [
    "ContentRating",
    "GeneratedProgram",
    "StoredProgram",
    "Insert",
    "Update",
    "Delete",
    "Operation",
    "PlaybackInfo",
]
