"""
File operation utilities

Listing downloads are streamed to a temp file in chunks so multi-megabyte
guides never sit in memory whole. Transient failures are retried with
exponential backoff.
"""
import asyncio
import logging
import tempfile
from pathlib import Path

import aiofiles
import httpx

from epgsync.exceptions import FetchError
from epgsync.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def _is_retryable(error: Exception) -> bool:
    """Network errors and 5xx responses are worth another attempt; 4xx are not"""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500
    return isinstance(error, (httpx.TimeoutException, httpx.TransportError))


async def _stream_to_file(client: httpx.AsyncClient, url: str, destination: Path) -> int:
    """Write the response body to destination and return the byte count"""
    written = 0
    async with client.stream("GET", url) as response:
        response.raise_for_status()
        async with aiofiles.open(destination, "wb") as f:
            async for chunk in response.aiter_bytes(CHUNK_SIZE):
                await f.write(chunk)
                written += len(chunk)
    return written


async def download_file(
    url: str,
    filename: str,
    timeout: float = 120.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Path:
    """
    Download a listing into the system temp directory

    Args:
        url: Listing URL
        filename: Name for the temporary file
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Wait before retry n is backoff_factor ** n seconds
        transport: Optional httpx transport (used by tests)

    Returns:
        Path to the downloaded file

    Raises:
        FetchError: On a 4xx response, a local write failure, or when every
            attempt failed
    """
    safe_url = sanitize_url_for_logging(url)
    destination = Path(tempfile.gettempdir()) / filename
    logger.info(f"Downloading listing from {safe_url}...")

    last_error: Exception | None = None
    async with httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True) as client:
        for attempt in range(1, max_retries + 1):
            try:
                size = await _stream_to_file(client, url, destination)
            except asyncio.CancelledError:
                cleanup_temp_file(destination)
                raise
            except OSError as e:
                cleanup_temp_file(destination)
                raise FetchError(f"Cannot write downloaded listing to {destination}: {e}") from e
            except httpx.HTTPError as e:
                cleanup_temp_file(destination)
                if not _is_retryable(e):
                    if isinstance(e, httpx.HTTPStatusError):
                        status = e.response.status_code
                        logger.error(f"HTTP {status} (client error) for {safe_url}")
                        raise FetchError(f"HTTP {status} fetching {safe_url}") from e
                    raise FetchError(f"Failed to download {safe_url}: {e}") from e

                last_error = e
                if attempt == max_retries:
                    logger.error(f"Download failed after {max_retries} attempts: {type(e).__name__}")
                    break
                wait_time = backoff_factor ** (attempt - 1)
                logger.warning(
                    f"Download attempt {attempt}/{max_retries} failed ({type(e).__name__}). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
                continue

            logger.info(f"Downloaded {size / 1024:.1f} KB to {destination}")
            return destination

    raise FetchError(
        f"Failed to download {safe_url} after {max_retries} attempts: {last_error}"
    ) from last_error


def cleanup_temp_file(file_path: Path | None) -> bool:
    """
    Delete a temporary file if it exists

    Returns:
        True if a file was deleted
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up temporary file: {file_path}")
        return True
    except OSError as e:
        logger.warning(f"Failed to delete temporary file {file_path}: {e}")
        return False
