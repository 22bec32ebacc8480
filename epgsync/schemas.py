from pydantic import BaseModel, Field, model_validator

from epgsync.services.sync_service import SyncMode


class SyncRequest(BaseModel):
    """Sync trigger request"""
    mode: SyncMode = Field(
        default=SyncMode.FULL,
        description="'full' syncs the long window, 'current_only' only the next hour",
    )


class PlaybackRequest(BaseModel):
    """Playback lookup window for one channel"""
    from_ms: int = Field(..., ge=0, description="Window start in UTC epoch millis")
    to_ms: int = Field(..., ge=0, description="Window end in UTC epoch millis")
    limit: int = Field(default=100, ge=1, le=1000, description="Maximum programs to return")

    @model_validator(mode='after')
    def validate_window(self):
        """Validate that from_ms is not after to_ms"""
        if self.from_ms > self.to_ms:
            raise ValueError(f"from_ms ({self.from_ms}) must not be after to_ms ({self.to_ms})")
        return self


class PlaybackProgram(BaseModel):
    """Decoded playback details of a stored program"""
    start_time_utc_millis: int
    end_time_utc_millis: int
    start_time: str = Field(..., description="ISO8601 UTC start time")
    end_time: str = Field(..., description="ISO8601 UTC end time")
    video_url: str
    video_type: int = Field(..., description="0 = HTTP progressive, 1 = HLS, 2 = MPEG-DASH")
    content_ratings: list[str] = Field(default_factory=list)


class PlaybackResponse(BaseModel):
    """Playback data response"""
    timestamp: str
    channel_row_id: int
    total_programs: int
    programs: list[PlaybackProgram]


class CancelResponse(BaseModel):
    cancelled: bool
    message: str
