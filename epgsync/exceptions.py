"""
Error taxonomy for the EPG sync pipeline.

Every error raised by the schedule, reconcile, store and fetch layers derives
from EPGSyncError so callers can catch the whole family at the top level.
"""


class EPGSyncError(Exception):
    """Base class for all sync pipeline errors"""
    pass


class InvalidWindowError(EPGSyncError, ValueError):
    """Raised when a requested window starts after it ends"""

    def __init__(self, window_start: int, window_end: int):
        self.window_start = window_start
        self.window_end = window_end
        super().__init__(
            f"Invalid window: start {window_start} is after end {window_end}"
        )


class EmptyCycleError(EPGSyncError):
    """Raised when a repeating channel has zero total program duration"""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id
        super().__init__(f"Channel {channel_id} has an empty repeat cycle")


class MalformedPayloadError(EPGSyncError, ValueError):
    """Raised when a stored internal provider payload cannot be decoded"""

    def __init__(self, payload: str | None):
        self.payload = payload
        super().__init__(f"Malformed internal provider data: {payload!r}")


class FetchError(EPGSyncError):
    """Raised when a listing source cannot be downloaded"""
    pass


class ParseError(EPGSyncError):
    """Raised when a downloaded listing cannot be parsed"""
    pass


class StoreBatchError(EPGSyncError):
    """Raised when a batch submission to the store fails.

    Batches committed before the failure stay committed.
    """

    def __init__(
        self,
        message: str,
        *,
        committed_batches: int,
        failed_batch: int,
        total_batches: int,
    ):
        self.committed_batches = committed_batches
        self.failed_batch = failed_batch
        self.total_batches = total_batches
        super().__init__(message)
