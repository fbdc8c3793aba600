"""
Availability Calculator

Pure slot generation over business settings and existing appointments. The
only clock input is `now`, which callers may pass explicitly; with the same
inputs every function returns the same output.

Slots run back to back from the effective start to `end - duration`,
stepping by the service duration. A slot is available when no non-canceled
appointment on that date starts at the same time and the slot has not passed.
"""

import hashlib
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from smartbooking.models.appointment import Appointment
from smartbooking.models.service import Service
from smartbooking.models.settings import BusinessSettings
from smartbooking.utils.time_utils import format_minutes, parse_time, weekday_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusinessHours:
    """Effective opening hours for one date, in minutes since midnight."""
    start: int
    end: int

    @property
    def start_time(self) -> str:
        return format_minutes(self.start)

    @property
    def end_time(self) -> str:
        return format_minutes(self.end)


@dataclass(frozen=True)
class TimeSlot:
    time: str
    available: bool


@dataclass(frozen=True)
class DateAvailability:
    is_day_off: bool
    is_past: bool
    is_fully_booked: bool
    available_slot_count: int


def resolve_business_hours(
    day: date,
    settings: BusinessSettings,
    service_id: Optional[str] = None
) -> Optional[BusinessHours]:
    """
    Effective hours for a date, or None when the business is closed.

    First match wins: service override (unless all_day), the day's own hours,
    then the default working hours.
    """
    config = settings.day_config(weekday_name(day))
    if not config.open:
        return None

    override = settings.service_availabilities.get(service_id) if service_id else None
    if override is not None and override.overrides_hours:
        start, end = override.start, override.end
    elif config.start and config.end:
        start, end = config.start, config.end
    else:
        start, end = settings.working_hours.start, settings.working_hours.end

    return BusinessHours(start=parse_time(start), end=parse_time(end))


def slots_for_date(
    day: date,
    service: Service,
    settings: BusinessSettings,
    existing: Iterable[Appointment] = (),
    now: Optional[datetime] = None
) -> List[str]:
    """Every candidate start time for the day, available or not."""
    hours = resolve_business_hours(day, settings, service.id)
    if hours is None:
        return []

    if hours.end <= hours.start:
        logger.error(
            f"Invalid business hours for {day.isoformat()}: "
            f"end {hours.end_time} is not after start {hours.start_time}"
        )
        return []

    duration = service.duration_minutes
    return [format_minutes(minute) for minute in range(hours.start, hours.end - duration + 1, duration)]


def _booked_times(day: date, existing: Iterable[Appointment]) -> set:
    return {a.time for a in existing if a.date == day and a.is_active}


def generate_time_slots(
    day: date,
    service: Service,
    settings: BusinessSettings,
    existing: Iterable[Appointment] = (),
    now: Optional[datetime] = None
) -> List[TimeSlot]:
    now = now or datetime.now()
    existing = list(existing)
    booked = _booked_times(day, existing)
    midnight = datetime.combine(day, datetime.min.time())

    slots = []
    for time in slots_for_date(day, service, settings, existing, now):
        passed = midnight + timedelta(minutes=parse_time(time)) < now
        slots.append(TimeSlot(time=time, available=time not in booked and not passed))
    return slots


def available_slots_for_date(
    day: date,
    service: Service,
    settings: BusinessSettings,
    existing: Iterable[Appointment] = (),
    now: Optional[datetime] = None
) -> List[str]:
    return [slot.time for slot in generate_time_slots(day, service, settings, existing, now) if slot.available]


def date_availability(
    day: date,
    service: Service,
    settings: BusinessSettings,
    existing: Iterable[Appointment] = (),
    now: Optional[datetime] = None
) -> DateAvailability:
    now = now or datetime.now()
    is_day_off = resolve_business_hours(day, settings, service.id) is None
    slots = generate_time_slots(day, service, settings, existing, now)
    available = sum(1 for slot in slots if slot.available)

    return DateAvailability(
        is_day_off=is_day_off,
        is_past=day < now.date(),
        is_fully_booked=bool(slots) and available == 0,
        available_slot_count=available,
    )


def _appointments_fingerprint(day: date, existing: Iterable[Appointment]) -> str:
    relevant = sorted(
        (a.id, a.time, a.duration_minutes, a.status.value)
        for a in existing if a.date == day
    )
    return hashlib.sha256(repr(relevant).encode()).hexdigest()


class AvailabilityCache:
    """
    Memoizes generate_time_slots results.

    Keys combine the date, the service, a settings fingerprint, an appointment
    snapshot fingerprint and `now` truncated to the minute, so a stale entry is
    never served for changed inputs. Entries are computed with the exact `now`,
    matching the past check the conflict guard applies. invalidate() drops
    everything and is called on every settings change.
    """

    def __init__(self):
        self._entries: Dict[Tuple, List[TimeSlot]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get_time_slots(
        self,
        day: date,
        service: Service,
        settings: BusinessSettings,
        existing: Iterable[Appointment] = (),
        now: Optional[datetime] = None
    ) -> List[TimeSlot]:
        now = now or datetime.now()
        minute = now.replace(second=0, microsecond=0)
        existing = list(existing)
        key = (
            day,
            service.id,
            service.duration_minutes,
            settings.fingerprint(),
            _appointments_fingerprint(day, existing),
            minute,
            # the slot starting at `minute` is past for the rest of that minute
            now > minute,
        )
        if key not in self._entries:
            self._entries[key] = generate_time_slots(day, service, settings, existing, now)
        return list(self._entries[key])

    def invalidate(self) -> None:
        if self._entries:
            logger.debug(f"Invalidating {len(self._entries)} cached slot computations")
        self._entries.clear()
