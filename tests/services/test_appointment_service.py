"""
Tests for the booking flow
"""

from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from smartbooking.exceptions import (
    AppointmentNotFoundError,
    BookingValidationError,
    CustomerNotFoundError,
    RejectionReason,
    ServiceNotFoundError,
)
from smartbooking.models.appointment import AppointmentRequest, AppointmentStatus
from smartbooking.services.appointment_service import AppointmentService
from smartbooking.services.business_settings import BusinessSettingsService
from tests.test_base import MONDAY, NOW, make_appointment


@pytest.fixture
async def settings_service(redis_client, selector, monday_settings):
    service = BusinessSettingsService(redis_client, selector)
    await service.update_settings(monday_settings.model_dump(mode="json"))
    return service


@pytest.fixture
async def booking(cache, selector, settings_service, service_lookup):
    await selector.initialize()
    return AppointmentService(cache, selector, settings_service, service_lookup)


def request(time="09:00", **overrides):
    data = {"customer_id": "cust-1", "service_id": "svc-haircut", "date": MONDAY, "time": time}
    data.update(overrides)
    return AppointmentRequest(**data)


class TestCreateAppointment:

    async def test_books_and_pushes_to_primary(self, booking, cache, supabase_client):
        appointment = await booking.create_appointment(request(), now=NOW)

        assert appointment.duration_minutes == 30
        assert appointment.id.startswith("local_")
        assert [row["id"] for row in supabase_client.data["appointments"]] == [appointment.id]
        assert (await cache.get(appointment.id)).pending_sync is False

    async def test_overlap_is_rejected_and_not_cached(self, booking, cache):
        await booking.create_appointment(request("09:00"), now=NOW)

        with pytest.raises(BookingValidationError) as exc_info:
            await booking.create_appointment(request("09:15"), now=NOW)

        assert exc_info.value.reason == RejectionReason.OVERLAP
        assert len(await cache.get_all()) == 1

    async def test_outside_hours_is_rejected(self, booking):
        with pytest.raises(BookingValidationError) as exc_info:
            await booking.create_appointment(request("17:00"), now=NOW)

        assert exc_info.value.reason == RejectionReason.OUTSIDE_HOURS

    async def test_explicit_duration_skips_lookup(self, booking):
        appointment = await booking.create_appointment(
            request(service_id="svc-unknown", duration_minutes=45), now=NOW
        )

        assert appointment.duration_minutes == 45

    async def test_unknown_service_without_duration(self, booking):
        with pytest.raises(ServiceNotFoundError):
            await booking.create_appointment(request(service_id="svc-unknown"), now=NOW)

    async def test_offline_booking_stays_pending(self, booking, cache, supabase_client):
        booking.is_online = lambda: False

        appointment = await booking.create_appointment(request(), now=NOW)

        assert appointment.pending_sync is True
        assert supabase_client.data.get("appointments", []) == []
        assert [a.id for a in await cache.get_pending()] == [appointment.id]

    async def test_failed_push_stays_pending(self, cache, settings_service, service_lookup):
        backend = AsyncMock()
        backend.create_appointment.side_effect = OSError("unreachable")
        booking = AppointmentService(cache, backend, settings_service, service_lookup)

        appointment = await booking.create_appointment(request(), now=NOW)

        assert appointment.pending_sync is True
        assert (await cache.get(appointment.id)).pending_sync is True

    async def test_primary_down_lands_in_fallback(self, booking, supabase_client, fallback_store, cache):
        supabase_client.fail_with = ConnectionError("refused")

        appointment = await booking.create_appointment(request(), now=NOW)

        assert [a.id for a in await fallback_store.list_appointments()] == [appointment.id]
        assert (await cache.get(appointment.id)).pending_sync is False

    async def test_unknown_customer_is_rejected_and_not_cached(self, booking, cache):
        booking.customer_lookup = AsyncMock()
        booking.customer_lookup.lookup_by_id.return_value = None

        with pytest.raises(CustomerNotFoundError) as exc_info:
            await booking.create_appointment(request(), now=NOW)

        assert exc_info.value.customer_id == "cust-1"
        assert await cache.get_all() == []

    async def test_known_customer_books(self, booking):
        booking.customer_lookup = AsyncMock()
        booking.customer_lookup.lookup_by_id.return_value = {"id": "cust-1", "name": "Ana"}

        appointment = await booking.create_appointment(request(), now=NOW)

        assert appointment.customer_id == "cust-1"
        booking.customer_lookup.lookup_by_id.assert_awaited_once_with("cust-1")


class TestUpdateAndDelete:

    async def test_update_unknown_raises(self, booking):
        with pytest.raises(AppointmentNotFoundError):
            await booking.update_appointment("missing", {"notes": "x"})

    async def test_update_bumps_timestamp_and_pushes(self, booking, supabase_client):
        created = await booking.create_appointment(request(), now=NOW)

        updated = await booking.update_appointment(created.id, {"notes": "bring photos"}, now=NOW)

        assert updated.updated_at > created.updated_at
        assert supabase_client.data["appointments"][0]["notes"] == "bring photos"

    async def test_reschedule_into_conflict_is_rejected(self, booking):
        await booking.create_appointment(request("09:00"), now=NOW)
        second = await booking.create_appointment(request("10:00"), now=NOW)

        with pytest.raises(BookingValidationError):
            await booking.update_appointment(second.id, {"time": "09:15"}, now=NOW)

    async def test_reschedule_may_overlap_itself(self, booking):
        created = await booking.create_appointment(request("09:00"), now=NOW)

        updated = await booking.update_appointment(created.id, {"time": "09:15"}, now=NOW)

        assert updated.time == "09:15"

    async def test_delete_purges_after_backend_confirms(self, booking, cache, supabase_client):
        created = await booking.create_appointment(request(), now=NOW)

        await booking.delete_appointment(created.id)

        assert await cache.get(created.id) is None
        assert await cache.get_pending() == []
        assert supabase_client.data["appointments"] == []

    async def test_offline_delete_leaves_tombstone(self, booking, cache):
        created = await booking.create_appointment(request(), now=NOW)
        booking.is_online = lambda: False

        await booking.delete_appointment(created.id)

        assert await cache.get(created.id) is None
        pending = await cache.get_pending()
        assert [a.id for a in pending] == [created.id]
        assert pending[0].pending_delete is True


class TestCompletionSweep:

    async def test_past_appointments_are_completed(self, booking, cache):
        pending = await cache.put(make_appointment(time="09:00"))
        canceled = await cache.put(make_appointment(time="10:00", status=AppointmentStatus.CANCELED))
        recent = await cache.put(make_appointment(time="11:00"))
        now = datetime(2030, 1, 7, 11, 0) + timedelta(seconds=30)

        completed = await booking.complete_past_appointments(now=now)

        assert [a.id for a in completed] == [pending.id]
        assert (await cache.get(pending.id)).status == AppointmentStatus.COMPLETED
        assert (await cache.get(canceled.id)).status == AppointmentStatus.CANCELED
        assert (await cache.get(recent.id)).status == AppointmentStatus.PENDING

    async def test_completed_appointments_are_left_alone(self, booking, cache):
        await cache.put(make_appointment(time="09:00", status=AppointmentStatus.COMPLETED))

        assert await booking.complete_past_appointments(now=datetime(2030, 2, 1)) == []

    async def test_defaults_to_current_local_time(self, booking, cache):
        old = await cache.put(make_appointment(date=date(2020, 1, 6)))

        completed = await booking.complete_past_appointments()

        assert [a.id for a in completed] == [old.id]


class TestDayAvailability:

    async def test_reflects_cached_bookings(self, booking):
        before = await booking.get_day_availability(MONDAY, "svc-haircut", now=NOW)
        await booking.create_appointment(request("09:00"), now=NOW)
        after = await booking.get_day_availability(MONDAY, "svc-haircut", now=NOW)

        assert before.available_slot_count == 16
        assert after.available_slot_count == 15

    async def test_time_slots_use_slot_cache(self, booking):
        slots = await booking.get_time_slots(MONDAY, "svc-haircut", now=NOW)

        assert len(slots) == 16
        assert len(booking.availability_cache) == 1
