"""
Appointment storage, synchronization and availability services.
"""
