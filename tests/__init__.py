"""
SmartBooking test suite
"""
