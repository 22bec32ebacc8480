"""
Structured logging helpers for consistent log formatting.

Provides utilities for structured, clean logging without excessive decorative separators.
"""
import logging
from datetime import datetime, timezone

from epgsync.utils.timezone import millis_to_iso


def log_sync_start(logger: logging.Logger, mode: str) -> None:
    """Log sync operation start."""
    logger.info(f"EPG sync ({mode}) started at {datetime.now(timezone.utc).isoformat()}")


def log_sync_end(logger: logging.Logger, mode: str) -> None:
    """Log sync operation end."""
    logger.info(f"EPG sync ({mode}) completed at {datetime.now(timezone.utc).isoformat()}")


def log_sync_window(logger: logging.Logger, window_start: int, window_end: int) -> None:
    """
    Log the requested sync window.

    Args:
        logger: Logger instance
        window_start: Window start in epoch millis
        window_end: Window end in epoch millis
    """
    logger.info(
        f"Target window: {millis_to_iso(window_start)} -> {millis_to_iso(window_end)}"
    )


def log_channel_processing(
    logger: logging.Logger,
    idx: int,
    total: int,
    row_id: int,
    channel_id: str | None,
) -> None:
    """
    Log channel processing header.

    Args:
        logger: Logger instance
        idx: Current channel index (1-based)
        total: Total number of channels
        row_id: Stored channel row id
        channel_id: Feed channel id, if the row matched one
    """
    logger.info(f"Processing channel {idx}/{total}: row={row_id} feed={channel_id}")


def log_reconcile_summary(
    logger: logging.Logger,
    row_id: int,
    inserts: int,
    updates: int,
    deletes: int,
) -> None:
    """Log the operation counts produced for one channel."""
    logger.info(
        f"[Channel {row_id}] Reconcile summary - "
        f"inserts: {inserts}, updates: {updates}, deletes: {deletes}"
    )


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url
