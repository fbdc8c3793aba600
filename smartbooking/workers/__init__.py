"""
Background workers for the SmartBooking backend.
"""
