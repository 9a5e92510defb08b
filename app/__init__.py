"""
Appointment Scheduling Service

A FastAPI-based backend where patients book time slots with doctors,
doctors manage their weekly availability, and admins oversee all records.
Bookings are validated against the doctor's weekly hours and existing
appointments before they are stored.
"""

__version__ = "1.0.0"
