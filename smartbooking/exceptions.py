"""
Custom exceptions for the SmartBooking backend.
"""
from enum import Enum
from typing import Optional


class SmartBookingError(Exception):
    """Base class for all domain errors."""


class RejectionReason(str, Enum):
    """Why a booking request was rejected."""
    DAY_OFF = "day_off"
    OUTSIDE_HOURS = "outside_hours"
    IN_PAST = "in_past"
    OVERLAP = "overlap"


REJECTION_MESSAGES = {
    RejectionReason.DAY_OFF: "The business is closed on this day",
    RejectionReason.OUTSIDE_HOURS: "The requested time is outside business hours",
    RejectionReason.IN_PAST: "The requested time is in the past",
    RejectionReason.OVERLAP: "The requested time overlaps an existing appointment",
}


class BookingValidationError(SmartBookingError):
    """Raised when a booking fails validation. Never retried."""

    def __init__(self, reason: RejectionReason, message: Optional[str] = None):
        self.reason = reason
        self.message = message or REJECTION_MESSAGES[reason]
        super().__init__(self.message)


class AppointmentNotFoundError(SmartBookingError):
    """Raised when an appointment does not exist in the store being queried."""

    def __init__(self, appointment_id: str):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment {appointment_id} not found")


class ConnectivityError(SmartBookingError):
    """Raised when the primary store cannot be reached."""

    def __init__(self, message: str = "Primary store is unreachable"):
        super().__init__(message)


class SyncError(SmartBookingError):
    """Raised when a single record fails to push during reconciliation."""

    def __init__(self, record_id: str, cause: Optional[BaseException] = None):
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"Failed to sync record {record_id}: {cause}")


class InitializationError(SmartBookingError):
    """Raised when a required store fails to open. Must be retried."""


class CacheInitializationError(InitializationError):
    """Raised when the appointment cache is unavailable or corrupt."""

    def __init__(self, message: str = "Appointment cache is not initialized"):
        super().__init__(message)


class StoreInitializationError(InitializationError):
    """Raised when the fallback file store cannot be opened."""

    def __init__(self, message: str = "Fallback store is not initialized"):
        super().__init__(message)


class ServiceNotFoundError(SmartBookingError):
    """Raised when a booking references a service the lookup does not know."""

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Service {service_id} not found")


class CustomerNotFoundError(SmartBookingError):
    """Raised when a booking references a customer the lookup does not know."""

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} not found")
