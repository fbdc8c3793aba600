"""
Database sync API - manual reconciliation trigger and store status

Endpoints:
- POST /api/db/sync    start a reconciliation run in the background
- GET  /api/db/status  primary connectivity, fallback store stats, last sync outcome
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from smartbooking.startup import SyncServices

router = APIRouter(prefix="/api/db", tags=["database-sync"])
logger = logging.getLogger(__name__)


class SyncTriggerResponse(BaseModel):
    """Acknowledgement for a manual sync request."""
    message: str
    status: str
    job_id: str


class PrimaryStatus(BaseModel):
    connected: bool
    last_error: Optional[str] = None


class FallbackStatus(BaseModel):
    available: bool
    snapshot_count: int
    last_synced_with_primary: Optional[datetime] = None


class DatabaseStatusResponse(BaseModel):
    """Current store selection and the outcome of the last sync."""
    primary: PrimaryStatus
    fallback: FallbackStatus
    last_sync: Optional[datetime] = None
    sync_success: bool = False


def get_sync_services(request: Request) -> SyncServices:
    services = getattr(request.app.state, "sync_services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Sync services are not initialized")
    return services


@router.post("/sync", response_model=SyncTriggerResponse)
async def trigger_sync(services: SyncServices = Depends(get_sync_services)):
    """Acknowledge immediately; the run's outcome shows up on /status."""
    try:
        ticket = services.job.trigger()
    except Exception as e:
        logger.error(f"Failed to start synchronization: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to start synchronization: {e}")

    return SyncTriggerResponse(
        message="Database synchronization started",
        status=ticket.status,
        job_id=ticket.job_id,
    )


@router.get("/status", response_model=DatabaseStatusResponse)
async def get_database_status(services: SyncServices = Depends(get_sync_services)):
    last = await services.status_store.load()
    snapshot_count = await asyncio.to_thread(services.fallback.snapshot_count)
    last_synced = None
    if services.fallback.is_available:
        last_synced = await services.fallback.last_synced_with_primary()

    return DatabaseStatusResponse(
        primary=PrimaryStatus(
            connected=services.selector.is_primary_connected(),
            last_error=services.probe.last_error,
        ),
        fallback=FallbackStatus(
            available=services.fallback.is_available,
            snapshot_count=snapshot_count,
            last_synced_with_primary=last_synced,
        ),
        last_sync=last.end_time if last else None,
        sync_success=last.success if last else False,
    )
