"""
Utility modules for the SmartBooking backend.
"""
from smartbooking.utils.logging_config import configure_logging

__all__ = ["configure_logging"]
