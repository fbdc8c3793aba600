"""
Tests for slot generation and date availability
"""

from datetime import date, datetime

from smartbooking.exceptions import RejectionReason
from smartbooking.models.appointment import AppointmentStatus, BookingCandidate
from smartbooking.models.service import Service
from smartbooking.models.settings import BusinessSettings, DayConfig, ServiceAvailability
from smartbooking.services.availability import (
    AvailabilityCache,
    available_slots_for_date,
    date_availability,
    generate_time_slots,
    resolve_business_hours,
    slots_for_date,
)
from smartbooking.services.conflict_guard import ConflictGuard
from tests.test_base import FRIDAY, MONDAY, NOW, make_appointment


class TestSlotsForDate:

    def test_monday_nine_to_five_yields_sixteen_slots(self, monday_settings, haircut):
        slots = slots_for_date(MONDAY, haircut, monday_settings, now=NOW)

        assert len(slots) == 16
        assert slots[0] == "09:00"
        assert slots[1] == "09:30"
        assert slots[-1] == "16:30"

    def test_identical_inputs_give_identical_output(self, monday_settings, haircut):
        existing = [make_appointment(time="10:00")]

        first = generate_time_slots(MONDAY, haircut, monday_settings, existing, now=NOW)
        second = generate_time_slots(MONDAY, haircut, monday_settings, existing, now=NOW)

        assert first == second

    def test_closed_day_has_no_slots(self, monday_settings, haircut):
        assert slots_for_date(FRIDAY, haircut, monday_settings, now=NOW) == []

        availability = date_availability(FRIDAY, haircut, monday_settings, now=NOW)
        assert availability.is_day_off is True
        assert availability.available_slot_count == 0
        assert availability.is_fully_booked is False

    def test_steps_by_service_duration(self, monday_settings):
        long_service = Service(id="svc-color", duration_minutes=90)

        slots = slots_for_date(MONDAY, long_service, monday_settings, now=NOW)

        assert slots == ["09:00", "10:30", "12:00", "13:30", "15:00"]

    def test_inverted_hours_give_no_slots(self, haircut):
        settings = BusinessSettings(days_open={"monday": DayConfig(open=True, start="18:00", end="09:00")})

        assert slots_for_date(MONDAY, haircut, settings, now=NOW) == []

    def test_missing_day_uses_working_hours(self, haircut):
        settings = BusinessSettings(
            working_hours={"start": "08:00", "end": "09:00"},
            days_open={"monday": {"open": True}},
        )

        assert slots_for_date(MONDAY, haircut, settings, now=NOW) == ["08:00", "08:30"]


class TestResolveBusinessHours:

    def test_service_override_wins(self, monday_settings):
        settings = monday_settings.model_copy(update={
            "service_availabilities": {"svc-haircut": ServiceAvailability(start="12:00", end="14:00")}
        })

        hours = resolve_business_hours(MONDAY, settings, "svc-haircut")

        assert (hours.start_time, hours.end_time) == ("12:00", "14:00")

    def test_all_day_service_follows_day_hours(self, monday_settings):
        settings = monday_settings.model_copy(update={
            "service_availabilities": {"svc-haircut": ServiceAvailability(all_day=True, start="12:00", end="14:00")}
        })

        hours = resolve_business_hours(MONDAY, settings, "svc-haircut")

        assert (hours.start_time, hours.end_time) == ("09:00", "17:00")

    def test_closed_day_resolves_to_none(self, monday_settings):
        assert resolve_business_hours(FRIDAY, monday_settings) is None


class TestAvailability:

    def test_booked_slot_is_unavailable(self, monday_settings, haircut):
        existing = [make_appointment(time="09:00")]

        available = available_slots_for_date(MONDAY, haircut, monday_settings, existing, now=NOW)

        assert "09:00" not in available
        assert len(available) == 15

    def test_canceled_appointment_frees_slot(self, monday_settings, haircut):
        existing = [make_appointment(time="09:00", status=AppointmentStatus.CANCELED)]

        available = available_slots_for_date(MONDAY, haircut, monday_settings, existing, now=NOW)

        assert "09:00" in available

    def test_past_times_today_are_unavailable(self, monday_settings, haircut):
        now = datetime(2030, 1, 7, 12, 10)

        slots = generate_time_slots(MONDAY, haircut, monday_settings, now=now)

        assert [s.time for s in slots if s.available][0] == "12:30"
        assert all(not s.available for s in slots if s.time < "12:10")

    def test_past_date_is_entirely_unavailable(self, monday_settings, haircut):
        now = datetime(2030, 1, 8, 9, 0)

        availability = date_availability(MONDAY, haircut, monday_settings, now=now)

        assert availability.is_past is True
        assert availability.available_slot_count == 0
        assert availability.is_fully_booked is True

    def test_fully_booked_day(self, monday_settings, haircut):
        existing = [make_appointment(time=t) for t in slots_for_date(MONDAY, haircut, monday_settings)]

        availability = date_availability(MONDAY, haircut, monday_settings, existing, now=NOW)

        assert availability.is_fully_booked is True
        assert availability.is_day_off is False
        assert availability.is_past is False


class TestAvailabilityCache:

    def test_memoizes_until_invalidated(self, monday_settings, haircut):
        cache = AvailabilityCache()

        first = cache.get_time_slots(MONDAY, haircut, monday_settings, now=NOW)
        second = cache.get_time_slots(MONDAY, haircut, monday_settings, now=NOW)

        assert first == second
        assert len(cache) == 1

        cache.invalidate()
        assert len(cache) == 0

    def test_new_booking_changes_key(self, monday_settings, haircut):
        cache = AvailabilityCache()
        cache.get_time_slots(MONDAY, haircut, monday_settings, now=NOW)

        slots = cache.get_time_slots(MONDAY, haircut, monday_settings, [make_appointment(time="09:00")], now=NOW)

        assert slots[0].available is False
        assert len(cache) == 2

    def test_other_dates_do_not_affect_key(self, monday_settings, haircut):
        cache = AvailabilityCache()
        cache.get_time_slots(MONDAY, haircut, monday_settings, now=NOW)

        cache.get_time_slots(MONDAY, haircut, monday_settings, [make_appointment(date=date(2030, 1, 14))], now=NOW)

        assert len(cache) == 1

    def test_slot_starting_this_minute_matches_guard(self, monday_settings, haircut):
        cache = AvailabilityCache()
        on_the_minute = datetime(2030, 1, 7, 10, 0)
        seconds_later = datetime(2030, 1, 7, 10, 0, 30)
        ten = next(slot for slot in cache.get_time_slots(MONDAY, haircut, monday_settings, now=on_the_minute)
                   if slot.time == "10:00")

        slots = cache.get_time_slots(MONDAY, haircut, monday_settings, now=seconds_later)
        later_ten = next(slot for slot in slots if slot.time == "10:00")

        assert ten.available is True
        assert later_ten.available is False
        assert len(cache) == 2
        reason = ConflictGuard().check(
            BookingCandidate(date=MONDAY, time="10:00", duration_minutes=30), monday_settings, [], now=seconds_later
        )
        assert reason == RejectionReason.IN_PAST
