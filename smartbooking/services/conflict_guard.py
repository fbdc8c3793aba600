"""
Conflict Guard - validates a booking candidate before it is written

Checks run in order and stop at the first failure:
1. DAY_OFF        the business is closed that day
2. OUTSIDE_HOURS  start is outside [open, close - duration - buffer]
3. IN_PAST        date + time is before now
4. OVERLAP        the candidate overlaps a non-canceled appointment on the same date
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from smartbooking.exceptions import BookingValidationError, RejectionReason
from smartbooking.models.appointment import Appointment, BookingCandidate
from smartbooking.models.settings import BusinessSettings
from smartbooking.services.availability import resolve_business_hours
from smartbooking.utils.time_utils import format_24_to_12

logger = logging.getLogger(__name__)


def intervals_overlap(start: int, end: int, other_start: int, other_end: int) -> bool:
    """
    Half-open interval overlap: the candidate starts inside the other
    interval, ends inside it, or fully contains it.
    """
    starts_inside = other_start <= start < other_end
    ends_inside = other_start < end <= other_end
    contains = start <= other_start and end >= other_end
    return starts_inside or ends_inside or contains


class ConflictGuard:
    """Side-effect free booking validation."""

    def check(
        self,
        candidate: BookingCandidate,
        settings: BusinessSettings,
        existing: Iterable[Appointment],
        now: Optional[datetime] = None,
        service_id: Optional[str] = None,
        exclude_id: Optional[str] = None
    ) -> Optional[RejectionReason]:
        """
        Returns:
            The first RejectionReason that applies, or None if the booking is valid
        """
        hours = resolve_business_hours(candidate.date, settings, service_id)
        if hours is None:
            return RejectionReason.DAY_OFF

        latest_start = hours.end - candidate.duration_minutes - settings.appointment_buffer
        if candidate.start_minutes < hours.start or candidate.start_minutes > latest_start:
            return RejectionReason.OUTSIDE_HOURS

        now = now or datetime.now()
        if candidate.starts_at < now:
            return RejectionReason.IN_PAST

        for appointment in existing:
            if appointment.id == exclude_id or not appointment.is_active:
                continue
            if appointment.date != candidate.date:
                continue
            if intervals_overlap(candidate.start_minutes, candidate.end_minutes, *appointment.interval()):
                logger.debug(f"Candidate {candidate.time} on {candidate.date} overlaps appointment {appointment.id}")
                return RejectionReason.OVERLAP

        return None

    def validate(
        self,
        candidate: BookingCandidate,
        settings: BusinessSettings,
        existing: Iterable[Appointment],
        now: Optional[datetime] = None,
        service_id: Optional[str] = None,
        exclude_id: Optional[str] = None
    ) -> None:
        """
        Raises:
            BookingValidationError: with a message naming the conflict
        """
        existing = list(existing)
        reason = self.check(candidate, settings, existing, now, service_id, exclude_id)
        if reason is None:
            return

        raise BookingValidationError(reason, self._message(reason, candidate, settings, existing, service_id))

    def _message(self, reason, candidate, settings, existing, service_id) -> str:
        if reason == RejectionReason.OUTSIDE_HOURS:
            hours = resolve_business_hours(candidate.date, settings, service_id)
            return (
                f"{format_24_to_12(candidate.time)} is outside business hours "
                f"({format_24_to_12(hours.start_time)} - {format_24_to_12(hours.end_time)})"
            )
        if reason == RejectionReason.OVERLAP:
            return (
                f"{format_24_to_12(candidate.time)} on {candidate.date.isoformat()} "
                f"overlaps an existing appointment"
            )
        if reason == RejectionReason.DAY_OFF:
            return f"The business is closed on {candidate.date.strftime('%A')}"
        return f"{candidate.date.isoformat()} {candidate.time} is in the past"
