"""
Sync Coordination

Manages sync run coordination with concurrency protection and cancellation.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


class SyncCoordinator:
    """
    Coordinates sync runs to prevent concurrent executions.

    Uses an internal asyncio.Lock to ensure only one sync runs at a time, and
    hands each run a fresh cancellation event that cancel() can set.
    """

    def __init__(self):
        """Initialize the sync coordinator with a lock."""
        self._sync_lock = asyncio.Lock()
        self._cancel_event: asyncio.Event | None = None

    async def execute(self, sync_func: Callable[[asyncio.Event], Awaitable[Any]]) -> Any:
        """
        Execute a sync run with concurrency protection.

        Args:
            sync_func: Async function taking the run's cancellation event

        Returns:
            Result from sync_func or a skip response if already running
        """
        if self._sync_lock.locked():
            logger.warning("EPG sync already in progress, skipping this request")
            return {
                "status": "skipped",
                "message": "EPG sync operation already in progress"
            }

        async with self._sync_lock:
            self._cancel_event = asyncio.Event()
            try:
                return await sync_func(self._cancel_event)
            finally:
                self._cancel_event = None

    def cancel(self) -> bool:
        """
        Request cancellation of the running sync.

        Channels already in flight finish; no new channel starts.

        Returns:
            True if a running sync was signalled, False if none is running
        """
        if self._cancel_event is None:
            return False
        self._cancel_event.set()
        logger.info("Cancellation requested for running EPG sync")
        return True

    def is_syncing(self) -> bool:
        return self._sync_lock.locked()


# Global singleton instance
_coordinator: SyncCoordinator | None = None


def get_sync_coordinator() -> SyncCoordinator:
    """
    Get or create the global sync coordinator singleton.

    Returns:
        The global SyncCoordinator instance
    """
    global _coordinator
    if _coordinator is None:
        _coordinator = SyncCoordinator()
    return _coordinator


def reset_sync_coordinator() -> None:
    """
    Reset the sync coordinator (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _coordinator
    _coordinator = None
