"""
Booking flow - client-side orchestration of cache, guard and backend

Writes always land in the appointment cache first with pending_sync set. When
online they are pushed through the backend store; a successful push replaces
the cached copy with flags cleared, a failed one leaves it pending for the
reconciliation job.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from smartbooking.config import AUTO_COMPLETE_GRACE_SECONDS
from smartbooking.exceptions import AppointmentNotFoundError, CustomerNotFoundError, ServiceNotFoundError
from smartbooking.models.appointment import Appointment, AppointmentRequest, AppointmentStatus
from smartbooking.models.service import CustomerLookup, Service, ServiceLookup
from smartbooking.services.appointment_cache import AppointmentCache
from smartbooking.services.availability import AvailabilityCache, DateAvailability, TimeSlot, date_availability
from smartbooking.services.business_settings import BusinessSettingsService
from smartbooking.services.conflict_guard import ConflictGuard
from smartbooking.utils.time_utils import local_now

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = ("date", "time", "duration_minutes")

# Statuses the completion sweep leaves alone
FINAL_STATUSES = (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED)


class AppointmentService:

    def __init__(
        self,
        cache: AppointmentCache,
        backend,
        settings_service: BusinessSettingsService,
        service_lookup: ServiceLookup,
        guard: Optional[ConflictGuard] = None,
        availability_cache: Optional[AvailabilityCache] = None,
        is_online: Callable[[], bool] = lambda: True,
        grace_seconds: int = AUTO_COMPLETE_GRACE_SECONDS,
        customer_lookup: Optional[CustomerLookup] = None,
    ):
        self.cache = cache
        self.backend = backend
        self.settings_service = settings_service
        self.service_lookup = service_lookup
        self.guard = guard or ConflictGuard()
        self.availability_cache = availability_cache or settings_service.availability_cache
        self.is_online = is_online
        self.grace_seconds = grace_seconds
        self.customer_lookup = customer_lookup

    async def _get_service(self, service_id: str) -> Service:
        service = await self.service_lookup.lookup_by_id(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)
        return service

    async def _push(self, appointment: Appointment, create: bool) -> Appointment:
        """Send a cached write to the backend; returns the cached copy either way."""
        if not self.is_online():
            return appointment

        try:
            if create:
                saved = await self.backend.create_appointment(appointment)
            else:
                try:
                    saved = await self.backend.update_appointment(appointment)
                except AppointmentNotFoundError:
                    saved = await self.backend.create_appointment(appointment)
        except Exception as e:
            logger.warning(f"Appointment {appointment.id} saved locally, backend push failed: {e}")
            return appointment

        return await self.cache.put(saved, local=False)

    async def create_appointment(self, request: AppointmentRequest, now: Optional[datetime] = None) -> Appointment:
        """
        Validate and book an appointment.

        Raises:
            BookingValidationError: if the guard rejects the booking
            ServiceNotFoundError: if no duration is given and the service is unknown
            CustomerNotFoundError: if a customer lookup is configured and does not know the customer
        """
        if self.customer_lookup is not None:
            if await self.customer_lookup.lookup_by_id(request.customer_id) is None:
                raise CustomerNotFoundError(request.customer_id)

        duration = request.duration_minutes
        if duration is None:
            duration = (await self._get_service(request.service_id)).duration_minutes

        appointment = Appointment(
            customer_id=request.customer_id,
            service_id=request.service_id,
            date=request.date,
            time=request.time,
            duration_minutes=duration,
            notes=request.notes,
            status=request.status,
        )

        settings = await self.settings_service.get_settings()
        existing = await self.cache.get_by_date_range(appointment.date, appointment.date)
        now = now or local_now(settings.timezone)
        self.guard.validate(appointment, settings, existing, now=now, service_id=appointment.service_id)

        cached = await self.cache.put(appointment, local=True)
        logger.info(f"Booked appointment {cached.id} on {cached.date.isoformat()} at {cached.time}")
        return await self._push(cached, create=True)

    async def get_appointment(self, appointment_id: str) -> Appointment:
        appointment = await self.cache.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError(appointment_id)
        return appointment

    async def update_appointment(
        self,
        appointment_id: str,
        changes: Dict[str, Any],
        now: Optional[datetime] = None
    ) -> Appointment:
        current = await self.get_appointment(appointment_id)

        data = current.model_dump()
        data.update({k: v for k, v in changes.items() if k not in ("id", "created_at", "updated_at")})
        updated = Appointment.model_validate(data)

        rescheduled = any(getattr(updated, f) != getattr(current, f) for f in SCHEDULE_FIELDS)
        reactivated = updated.is_active and not current.is_active
        if updated.is_active and (rescheduled or reactivated):
            settings = await self.settings_service.get_settings()
            existing = await self.cache.get_by_date_range(updated.date, updated.date)
            now = now or local_now(settings.timezone)
            self.guard.validate(
                updated, settings, existing, now=now,
                service_id=updated.service_id, exclude_id=appointment_id
            )

        cached = await self.cache.put(updated.touch(), local=True)
        return await self._push(cached, create=False)

    async def delete_appointment(self, appointment_id: str) -> None:
        await self.get_appointment(appointment_id)
        await self.cache.delete(appointment_id, local=True)

        if not self.is_online():
            return

        try:
            await self.backend.delete_appointment(appointment_id)
        except AppointmentNotFoundError:
            logger.debug(f"Appointment {appointment_id} was already absent from backend")
        except Exception as e:
            logger.warning(f"Appointment {appointment_id} deleted locally, backend delete failed: {e}")
            return

        await self.cache.purge(appointment_id)

    async def complete_past_appointments(self, now: Optional[datetime] = None) -> List[Appointment]:
        """
        Mark appointments that started more than the grace period ago as Completed.

        Canceled and already completed appointments are left untouched.
        """
        if now is None:
            now = local_now((await self.settings_service.get_settings()).timezone)
        cutoff = now - timedelta(seconds=self.grace_seconds)

        completed = []
        for appointment in await self.cache.get_all():
            if appointment.status in FINAL_STATUSES or appointment.starts_at >= cutoff:
                continue
            updated = appointment.model_copy(update={"status": AppointmentStatus.COMPLETED}).touch()
            cached = await self.cache.put(updated, local=True)
            completed.append(await self._push(cached, create=False))

        if completed:
            logger.info(f"Auto-completed {len(completed)} past appointments")
        return completed

    async def get_time_slots(self, day: date, service_id: str, now: Optional[datetime] = None) -> List[TimeSlot]:
        service = await self._get_service(service_id)
        settings = await self.settings_service.get_settings()
        existing = await self.cache.get_by_date_range(day, day)
        return self.availability_cache.get_time_slots(
            day, service, settings, existing, now or local_now(settings.timezone)
        )

    async def get_day_availability(self, day: date, service_id: str, now: Optional[datetime] = None) -> DateAvailability:
        service = await self._get_service(service_id)
        settings = await self.settings_service.get_settings()
        existing = await self.cache.get_by_date_range(day, day)
        return date_availability(day, service, settings, existing, now or local_now(settings.timezone))
