"""Overlap detection between a proposed appointment and existing bookings."""
from datetime import date, time
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..models.appointment import Appointment, ACTIVE_STATUSES

def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open intervals [start, end) overlap; touching ends do not."""
    return start_a < end_b and start_b < end_a

def find_conflicts(
    bookings: Iterable[Appointment],
    start: time,
    end: time,
    exclude_appointment_id: Optional[str] = None
) -> List[Appointment]:
    """Active bookings overlapping ``[start, end)``."""
    return [
        booking for booking in bookings
        if booking.id != exclude_appointment_id
        and booking.status in ACTIVE_STATUSES
        and intervals_overlap(start, end, booking.start_time, booking.end_time)
    ]

def active_bookings(db: Session, doctor_id: int, appointment_date: date) -> List[Appointment]:
    """Snapshot of the bookings occupying a doctor's calendar on one day."""
    return (
        db.query(Appointment)
        .filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == appointment_date,
            Appointment.status.in_(list(ACTIVE_STATUSES)),
        )
        .order_by(Appointment.start_time)
        .all()
    )

def has_conflict(
    db: Session,
    doctor_id: int,
    appointment_date: date,
    start: time,
    end: time,
    exclude_appointment_id: Optional[str] = None
) -> bool:
    bookings = active_bookings(db, doctor_id, appointment_date)
    return bool(find_conflicts(bookings, start, end, exclude_appointment_id))
