from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from epgsync.schemas import CancelResponse, PlaybackRequest, PlaybackResponse, SyncRequest
from epgsync.services.playback_query_service import get_playback_data
from epgsync.services.store_service import ProgramStore
from epgsync.services.sync_coordinator import get_sync_coordinator
from epgsync.services.sync_service import sync_and_process


logger = logging.getLogger(__name__)

main_router = APIRouter()


def get_store() -> ProgramStore:
    """Record store dependency"""
    return ProgramStore()


@main_router.get("/")
async def root() -> dict:
    """Root endpoint with service information"""
    return {
        "service": "EPG Sync Service",
        "version": "0.1.0",
        "endpoints": {
            "sync": "/sync - Run a sync (POST)",
            "cancel": "/sync/cancel - Cancel the running sync (POST)",
            "playback": "/channels/{row_id}/playback - Playback info for a channel",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check() -> dict:
    """Health check endpoint"""
    return {
        "status": "ok",
        "sync_running": get_sync_coordinator().is_syncing(),
    }


@main_router.post("/sync")
async def trigger_sync(request: SyncRequest | None = None) -> dict:
    """
    Run a sync for the configured input

    Fetches the listing, registers channels and reconciles programs for the
    window selected by the mode.
    """
    mode = request.mode if request else SyncRequest().mode
    logger.info("Manual EPG sync (%s) triggered via API", mode.value)
    result = await sync_and_process(mode)

    if "error" in result:
        raise HTTPException(status_code=500, detail=result["error"])

    return result


@main_router.post("/sync/cancel", response_model=CancelResponse)
async def cancel_sync() -> CancelResponse:
    """Stop a running sync before its next channel starts"""
    cancelled = get_sync_coordinator().cancel()
    return CancelResponse(
        cancelled=cancelled,
        message="Cancellation requested" if cancelled else "No sync in progress",
    )


@main_router.get("/channels/{row_id}/playback", response_model=PlaybackResponse)
async def get_playback(
    row_id: int,
    store: Annotated[ProgramStore, Depends(get_store)],
    from_ms: Annotated[int, Query(ge=0)],
    to_ms: Annotated[int, Query(ge=0)],
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> PlaybackResponse:
    """
    Get playback details for a channel's programs within a window
    """
    try:
        request = PlaybackRequest(from_ms=from_ms, to_ms=to_ms, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return await get_playback_data(store, row_id, request)
