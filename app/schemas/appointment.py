from datetime import date, datetime, time
from typing import List, Optional
from pydantic import Field, field_serializer, field_validator

from ..core.config import settings
from ..core.security import UserRole
from ..models.appointment import Appointment
from .common import CamelModel

def _clean_notes(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > settings.MAX_NOTES_LENGTH:
        raise ValueError(f"Notes must be {settings.MAX_NOTES_LENGTH} characters or fewer")
    return normalized

class AppointmentCreate(CamelModel):
    doctor_id: int = Field(..., gt=0)
    appointment_date: date
    start_time: time
    notes: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def drop_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_notes(value)

class AppointmentUpdate(CamelModel):
    """Partial update; only keys present in the request body are applied."""
    appointment_date: Optional[date] = None
    start_time: Optional[time] = None
    notes: Optional[str] = None
    # Kept as a plain string: unrecognised values are dropped, not rejected
    status: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def drop_seconds(cls, value: Optional[time]) -> Optional[time]:
        if value is None:
            return None
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, value: Optional[str]) -> Optional[str]:
        return _clean_notes(value)

class PartyInfo(CamelModel):
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

class AppointmentOut(CamelModel):
    id: str
    appointment_date: date
    start_time: time
    end_time: time
    status: str
    notes: Optional[str] = None
    specialty_name: Optional[str] = None
    duration_minutes: int
    consultation_fee: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    doctor: Optional[PartyInfo] = None
    patient: Optional[PartyInfo] = None

    @field_serializer("start_time", "end_time")
    def serialize_clock(self, value: time) -> str:
        return value.strftime("%H:%M")

    @classmethod
    def project(cls, appointment: Appointment, role: UserRole) -> "AppointmentOut":
        """Shape an appointment for the caller's role.

        Patients see their doctor and the fee, doctors see the patient's
        contact details, admins see both parties by name.
        """
        doctor = appointment.doctor
        specialty = doctor.specialty if doctor else None
        start = datetime.combine(appointment.appointment_date, appointment.start_time)
        end = datetime.combine(appointment.appointment_date, appointment.end_time)

        out = cls(
            id=appointment.id,
            appointment_date=appointment.appointment_date,
            start_time=appointment.start_time,
            end_time=appointment.end_time,
            status=appointment.status.value,
            notes=appointment.notes,
            specialty_name=specialty.name if specialty else None,
            duration_minutes=int((end - start).total_seconds() // 60),
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )

        doctor_user = doctor.user if doctor else None
        patient_user = appointment.patient
        fee = float(doctor.consultation_fee) if doctor and doctor.consultation_fee is not None else None

        role = UserRole(role)
        if role == UserRole.PATIENT:
            if doctor_user:
                out.doctor = PartyInfo(
                    first_name=doctor_user.first_name,
                    last_name=doctor_user.last_name,
                    email=doctor_user.email,
                )
            out.consultation_fee = fee
        elif role == UserRole.DOCTOR:
            if patient_user:
                out.patient = PartyInfo(
                    first_name=patient_user.first_name,
                    last_name=patient_user.last_name,
                    email=patient_user.email,
                    phone=patient_user.phone,
                )
        else:
            if patient_user:
                out.patient = PartyInfo(first_name=patient_user.first_name, last_name=patient_user.last_name)
            if doctor_user:
                out.doctor = PartyInfo(first_name=doctor_user.first_name, last_name=doctor_user.last_name)
            out.consultation_fee = fee
        return out

class AppointmentData(CamelModel):
    appointment: AppointmentOut

class AppointmentListData(CamelModel):
    appointments: List[AppointmentOut]
    count: int
