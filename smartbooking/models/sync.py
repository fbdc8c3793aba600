"""
Pydantic models for reconciliation results and the persisted sync status.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from smartbooking.utils.time_utils import utc_now


class SyncStats(BaseModel):
    """Counters for one reconciliation pass."""
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: int = 0


class SyncStatus(BaseModel):
    """Outcome of the last reconciliation run, persisted as db-status.json."""
    start_time: datetime = Field(default_factory=utc_now)
    end_time: Optional[datetime] = None
    success: bool = False
    primary_connected: bool = False
    sync_performed: bool = False
    stats: SyncStats = Field(default_factory=SyncStats)
    error: Optional[str] = None


class SyncTicket(BaseModel):
    """Handle returned by a manual sync trigger."""
    job_id: str
    status: str = "running"
    started_at: datetime = Field(default_factory=utc_now)
