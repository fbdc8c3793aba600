"""
Pydantic models for appointments.
"""

import uuid
import datetime as dt
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from smartbooking.utils.time_utils import format_minutes, normalize_time, parse_time, parse_timestamp, utc_now

LOCAL_ID_PREFIX = "local_"

# Fields that only exist on the client-side cache copy
SYNC_FLAGS = ("pending_sync", "pending_delete")


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status."""
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELED = "Canceled"


def generate_local_id() -> str:
    """Client-issued id for an appointment that has not reached the backend yet."""
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"


class BookingCandidate(BaseModel):
    """A requested date/time/duration checked by the conflict guard."""
    date: dt.date = Field(..., description="Calendar date of the booking")
    time: str = Field(..., description="Local start time, HH:MM")
    duration_minutes: int = Field(..., gt=0, description="Length of the booking in minutes")

    @field_validator("time")
    @classmethod
    def _normalize_time(cls, value: str) -> str:
        return normalize_time(value)

    @property
    def start_minutes(self) -> int:
        return parse_time(self.time)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    @property
    def starts_at(self) -> datetime:
        """Naive local datetime of the start."""
        return datetime.combine(self.date, datetime.min.time()) + timedelta(minutes=self.start_minutes)


class Appointment(BookingCandidate):
    """Appointment record as held by the cache and the backend stores."""
    id: str = Field(default_factory=generate_local_id, description="Appointment identifier")
    customer_id: str = Field(..., description="Customer reference")
    service_id: str = Field(..., description="Service reference")
    status: AppointmentStatus = Field(AppointmentStatus.PENDING, description="Lifecycle status")
    notes: str = Field("", description="Free text notes")
    pending_sync: bool = Field(False, description="Local changes not yet confirmed by the backend")
    pending_delete: bool = Field(False, description="Deleted locally, delete not yet confirmed")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp (UTC)")
    updated_at: datetime = Field(default_factory=utc_now, description="Last modification (UTC)")

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_timestamps(cls, value: Any) -> datetime:
        return parse_timestamp(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_default(cls, value: Any) -> str:
        return value or ""

    @property
    def is_active(self) -> bool:
        """Canceled appointments never block a slot."""
        return self.status != AppointmentStatus.CANCELED

    def interval(self) -> Tuple[int, int]:
        """Half-open [start, end) interval in minutes since midnight."""
        return self.start_minutes, self.end_minutes

    @property
    def end_time(self) -> str:
        return format_minutes(self.end_minutes)

    def touch(self) -> "Appointment":
        """Copy with updated_at bumped to now."""
        return self.model_copy(update={"updated_at": utc_now()})

    def to_document(self) -> Dict[str, Any]:
        """Row/document shape for the backend stores (sync flags stripped)."""
        return self.model_dump(mode="json", exclude=set(SYNC_FLAGS))

    def to_cache(self) -> Dict[str, Any]:
        """Full JSON shape for the client cache, sync flags included."""
        return self.model_dump(mode="json")

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> "Appointment":
        """Build from a backend row; sync flags are always cleared."""
        clean = {k: v for k, v in data.items() if k not in SYNC_FLAGS}
        # Older fallback files keep the document id under "_id"
        if "id" not in clean and "_id" in clean:
            clean["id"] = str(clean.pop("_id"))
        return cls.model_validate(clean)


class AppointmentRequest(BaseModel):
    """Input for creating an appointment through the booking flow."""
    customer_id: str
    service_id: str
    date: dt.date
    time: str
    duration_minutes: Optional[int] = Field(None, gt=0, description="Defaults to the service duration")
    notes: str = ""
    status: AppointmentStatus = AppointmentStatus.PENDING
