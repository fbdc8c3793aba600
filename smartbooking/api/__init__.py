"""
API routers for the SmartBooking backend
"""
