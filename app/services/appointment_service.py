from contextlib import contextmanager
from dataclasses import dataclass, fields, replace
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session, selectinload
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.sql import func

from ..core.config import settings
from ..core.exceptions import (
    AvailabilityError, ConflictError, NotFoundError, TransientStoreError, ValidationError
)
from ..core.security import AuthorizationError, UserRole
from ..models.appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES
from ..models.doctor import Doctor
from ..scheduling.availability import (
    available_windows, covering_window, day_of_week_for, describe_windows
)
from ..scheduling.conflicts import has_conflict
from ..scheduling.lifecycle import check_transition, ensure_mutable, is_terminal, parse_status
from ..schemas.appointment import AppointmentUpdate

logger = logging.getLogger(__name__)

SLOT_TAKEN_MESSAGE = "This time slot is already booked. Please choose a different time."
CONCURRENT_CHANGE_MESSAGE = "Appointment was changed by another request. Please try again."

class _Unset:
    def __repr__(self):
        return "UNSET"

UNSET: Any = _Unset()

@dataclass(frozen=True)
class AppointmentPatch:
    """Fields a caller explicitly asked to change; anything left UNSET is untouched."""
    appointment_date: Any = UNSET
    start_time: Any = UNSET
    notes: Any = UNSET
    status: Any = UNSET

    @classmethod
    def from_update(cls, payload: AppointmentUpdate) -> "AppointmentPatch":
        provided = payload.model_dump(exclude_unset=True)
        values = {
            name: provided[name]
            for name in ("appointment_date", "start_time", "status")
            if provided.get(name) is not None
        }
        # An explicit null clears the notes
        if "notes" in provided:
            values["notes"] = provided["notes"]
        return cls(**values)

    def has(self, name: str) -> bool:
        return getattr(self, name) is not UNSET

    def provided(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if self.has(f.name)}

    def without(self, name: str) -> "AppointmentPatch":
        return replace(self, **{name: UNSET})

    @property
    def is_empty(self) -> bool:
        return not self.provided()

    @property
    def reschedules(self) -> bool:
        return self.has("appointment_date") or self.has("start_time")

    @property
    def touches_details(self) -> bool:
        return self.reschedules or self.has("notes")

class AppointmentService:
    """Books, reschedules and cancels appointments.

    Every conflict-sensitive operation runs in one transaction that first
    locks the doctor row, so bookings for the same doctor are serialised
    while different doctors proceed independently. Updates and cancellations
    lock the appointment row before reading its status.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock

    def list_appointments(self, caller_id: int, caller_role: UserRole) -> List[Appointment]:
        """Appointments visible to the caller.

        Patients and admins get the most recent first, doctors get their
        upcoming schedule first.
        """
        role = UserRole(caller_role)
        query = self.db.query(Appointment).options(
            selectinload(Appointment.doctor).selectinload(Doctor.user),
            selectinload(Appointment.doctor).selectinload(Doctor.specialty),
            selectinload(Appointment.patient),
        )

        try:
            if role == UserRole.PATIENT:
                query = query.filter(Appointment.patient_id == caller_id)
            elif role == UserRole.DOCTOR:
                doctor = self.db.query(Doctor).filter(Doctor.user_id == caller_id).first()
                if not doctor:
                    return []
                query = query.filter(Appointment.doctor_id == doctor.id)

            if role == UserRole.DOCTOR:
                query = query.order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc())
            else:
                query = query.order_by(Appointment.appointment_date.desc(), Appointment.start_time.desc())
            return query.all()
        except SQLAlchemyError as exc:
            logger.exception(f"Failed to list appointments for user {caller_id}")
            raise TransientStoreError() from exc

    def create_appointment(
        self,
        patient_id: int,
        doctor_id: int,
        appointment_date: date,
        start_time: time,
        notes: Optional[str] = None
    ) -> Appointment:
        """Book a new appointment for a patient."""
        self._ensure_future(appointment_date, start_time)

        with self._transaction("creating appointment"):
            doctor = self._bookable_doctor(doctor_id)
            end_time = self._end_time(appointment_date, start_time, self._duration_minutes(doctor))
            self._validate_window(doctor, appointment_date, start_time, end_time)

            appointment = Appointment(
                patient_id=patient_id,
                doctor_id=doctor.id,
                appointment_date=appointment_date,
                start_time=start_time,
                end_time=end_time,
                status=AppointmentStatus.SCHEDULED,
                notes=notes,
            )
            self.db.add(appointment)

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} booked: patient={patient_id} doctor={doctor_id} "
            f"{appointment_date} {start_time:%H:%M}-{end_time:%H:%M}"
        )
        return appointment

    def update_appointment(
        self,
        appointment_id: str,
        caller_id: int,
        caller_role: UserRole,
        patch: AppointmentPatch
    ) -> Appointment:
        """Apply a partial update: reschedule, notes, or a status transition."""
        role = UserRole(caller_role)

        with self._transaction("updating appointment"):
            appointment = self._load_appointment(appointment_id)
            self._authorize(appointment, caller_id, role, "modify")

            patch = self._screen_status(patch, appointment, role)
            if patch.is_empty:
                raise ValidationError("No valid fields provided for update")

            if patch.touches_details:
                ensure_mutable(appointment.status)

            target_status = patch.status if patch.has("status") else appointment.status
            if target_status != appointment.status or is_terminal(appointment.status):
                check_transition(appointment.status, target_status, role)

            if patch.reschedules:
                self._reschedule(appointment, patch, keeps_slot=target_status in ACTIVE_STATUSES)
            if patch.has("notes"):
                appointment.notes = patch.notes
            appointment.status = target_status
            appointment.updated_at = func.now()

        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} updated by {role.value} {caller_id}: {sorted(patch.provided())}"
        )
        return appointment

    def cancel_appointment(self, appointment_id: str, caller_id: int, caller_role: UserRole) -> Appointment:
        """Cancel an appointment. The record is kept with status cancelled."""
        role = UserRole(caller_role)

        with self._transaction("cancelling appointment"):
            appointment = self._load_appointment(appointment_id)
            self._authorize(appointment, caller_id, role, "cancel")
            check_transition(appointment.status, AppointmentStatus.CANCELLED, role)

            appointment.status = AppointmentStatus.CANCELLED
            appointment.updated_at = func.now()

        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} cancelled by {role.value} {caller_id}")
        return appointment

    @contextmanager
    def _transaction(self, action: str):
        """Commit on success; roll back and translate storage failures otherwise."""
        try:
            yield
            self.db.commit()
        except StaleDataError as exc:
            self.db.rollback()
            logger.warning(f"Concurrent change detected while {action}")
            raise ConflictError(CONCURRENT_CHANGE_MESSAGE) from exc
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"Integrity violation while {action}: {exc.orig}")
            raise ConflictError(SLOT_TAKEN_MESSAGE, field="startTime") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Storage failure while {action}")
            raise TransientStoreError() from exc
        except Exception:
            self.db.rollback()
            raise

    def _ensure_future(self, appointment_date: date, start_time: time) -> None:
        if datetime.combine(appointment_date, start_time) <= self.clock():
            raise ValidationError(
                "Appointment must be scheduled for a future date and time",
                field="startTime"
            )

    def _locked_doctor_query(self, doctor_id: int) -> Query:
        return self.db.query(Doctor).filter(Doctor.id == doctor_id).with_for_update()

    def _locked_appointment_query(self, appointment_id: str) -> Query:
        return self.db.query(Appointment).filter(Appointment.id == appointment_id).with_for_update()

    def _lock_doctor(self, doctor_id: int) -> Optional[Doctor]:
        return self._locked_doctor_query(doctor_id).first()

    def _bookable_doctor(self, doctor_id: int) -> Doctor:
        doctor = self._lock_doctor(doctor_id)
        if not doctor or not doctor.is_available or not (doctor.user and doctor.user.is_active):
            raise NotFoundError("Doctor not found or not available", field="doctorId")
        return doctor

    def _duration_minutes(self, doctor: Doctor) -> int:
        specialty = doctor.specialty
        if specialty and specialty.duration_minutes:
            return specialty.duration_minutes
        return settings.DEFAULT_APPOINTMENT_DURATION_MINUTES

    def _end_time(self, appointment_date: date, start_time: time, minutes: int) -> time:
        end = datetime.combine(appointment_date, start_time) + timedelta(minutes=minutes)
        if end.date() != appointment_date:
            raise ValidationError("Appointment must end on the same day it starts", field="startTime")
        return end.time()

    def _validate_window(
        self,
        doctor: Doctor,
        appointment_date: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: Optional[str] = None
    ) -> None:
        windows = available_windows(self.db, doctor.id, day_of_week_for(appointment_date))
        if not windows:
            logger.info(f"Doctor {doctor.id} has no hours on {appointment_date}")
            raise AvailabilityError(
                f"Doctor is not available on {appointment_date.strftime('%A')}s",
                field="appointmentDate"
            )
        if covering_window(windows, start_time, end_time) is None:
            logger.info(f"Doctor {doctor.id} unavailable on {appointment_date} at {start_time:%H:%M}")
            raise AvailabilityError(
                f"Doctor is available {describe_windows(windows)} on this day",
                field="startTime"
            )
        if has_conflict(self.db, doctor.id, appointment_date, start_time, end_time, exclude_appointment_id):
            logger.info(f"Booking conflict for doctor {doctor.id} on {appointment_date} at {start_time:%H:%M}")
            raise ConflictError(SLOT_TAKEN_MESSAGE, field="startTime")

    def _load_appointment(self, appointment_id: str) -> Appointment:
        # Locked before its status is read; the doctor row, if needed, is locked after
        appointment = self._locked_appointment_query(appointment_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def _authorize(self, appointment: Appointment, caller_id: int, role: UserRole, action: str) -> None:
        if role == UserRole.PATIENT and appointment.patient_id != caller_id:
            raise AuthorizationError(f"You can only {action} your own appointments")
        if role == UserRole.DOCTOR and appointment.doctor.user_id != caller_id:
            raise AuthorizationError(f"You can only {action} appointments scheduled with you")

    def _screen_status(self, patch: AppointmentPatch, appointment: Appointment, role: UserRole) -> AppointmentPatch:
        """Drop status values the caller may not set or that are not recognised."""
        if not patch.has("status"):
            return patch
        if role == UserRole.PATIENT:
            logger.debug(f"Ignoring status change from patient on appointment {appointment.id}")
            return patch.without("status")
        status = parse_status(patch.status)
        if status is None:
            logger.debug(f"Ignoring unknown status {patch.status!r} on appointment {appointment.id}")
            return patch.without("status")
        return replace(patch, status=status)

    def _reschedule(self, appointment: Appointment, patch: AppointmentPatch, keeps_slot: bool) -> None:
        new_date = patch.appointment_date if patch.has("appointment_date") else appointment.appointment_date
        new_start = patch.start_time if patch.has("start_time") else appointment.start_time
        self._ensure_future(new_date, new_start)

        doctor = self._bookable_doctor(appointment.doctor_id)
        if patch.has("start_time"):
            new_end = self._end_time(new_date, new_start, self._duration_minutes(doctor))
        else:
            new_end = appointment.end_time

        if keeps_slot:
            self._validate_window(doctor, new_date, new_start, new_end, exclude_appointment_id=appointment.id)

        appointment.appointment_date = new_date
        appointment.start_time = new_start
        appointment.end_time = new_end

