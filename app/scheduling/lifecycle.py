"""
Appointment status state machine.

scheduled -> confirmed -> completed, with cancelled and no_show reachable
from either non-terminal status. Terminal statuses accept no transitions
and freeze the appointment's date, time and notes.
"""
from typing import Optional

from ..core.exceptions import InvalidTransitionError, ValidationError
from ..core.security import AuthorizationError, UserRole
from ..models.appointment import AppointmentStatus

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.CANCELLED,
    }),
}

# Patients may only cancel; every other transition belongs to staff
STAFF_ROLES = frozenset({UserRole.DOCTOR, UserRole.ADMIN})

def parse_status(value) -> Optional[AppointmentStatus]:
    """Recognised status or None for anything else."""
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(str(value).strip().lower())
    except ValueError:
        return None

def is_terminal(status: AppointmentStatus) -> bool:
    return status in TERMINAL_STATUSES

def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())

def check_transition(current: AppointmentStatus, target: AppointmentStatus, role: UserRole) -> None:
    """Raise unless ``role`` may move an appointment from ``current`` to ``target``."""
    if target != AppointmentStatus.CANCELLED and UserRole(role) not in STAFF_ROLES:
        raise AuthorizationError("Only the assigned doctor or an admin can change appointment status")

    if current == AppointmentStatus.CANCELLED:
        raise InvalidTransitionError("Appointment is already cancelled", field="status")
    if current == AppointmentStatus.COMPLETED:
        if target == AppointmentStatus.CANCELLED:
            raise InvalidTransitionError("Cannot cancel a completed appointment", field="status")
        raise InvalidTransitionError("Appointment is already completed", field="status")
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot change appointment status from {current.value} to {target.value}",
            field="status"
        )

def ensure_mutable(status: AppointmentStatus) -> None:
    """Date, time and notes are frozen once an appointment reaches a terminal status."""
    if is_terminal(status):
        raise ValidationError(
            f"Cannot modify a {status.value} appointment",
            field="status"
        )
