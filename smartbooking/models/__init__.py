"""
Data models for appointments, business settings and sync bookkeeping.
"""
from smartbooking.models.appointment import (
    Appointment,
    AppointmentRequest,
    AppointmentStatus,
    BookingCandidate,
    generate_local_id,
)
from smartbooking.models.service import CustomerLookup, InMemoryServiceLookup, Service, ServiceLookup
from smartbooking.models.settings import BusinessSettings, DayConfig, ServiceAvailability, WorkingHours
from smartbooking.models.sync import SyncStats, SyncStatus, SyncTicket

__all__ = [
    "Appointment",
    "AppointmentRequest",
    "AppointmentStatus",
    "BookingCandidate",
    "BusinessSettings",
    "CustomerLookup",
    "DayConfig",
    "InMemoryServiceLookup",
    "Service",
    "ServiceAvailability",
    "ServiceLookup",
    "SyncStats",
    "SyncStatus",
    "SyncTicket",
    "WorkingHours",
    "generate_local_id",
]
