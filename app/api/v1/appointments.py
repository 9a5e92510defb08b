from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_current_user, get_patient_user
from ...services.appointment_service import AppointmentService, AppointmentPatch
from ...schemas.appointment import (
    AppointmentCreate, AppointmentUpdate, AppointmentOut,
    AppointmentData, AppointmentListData
)
from ...schemas.common import Envelope
from ...models.user import User

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.get("", response_model=Envelope[AppointmentListData], response_model_exclude_none=True)
async def list_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Patients see their bookings, doctors their schedule, admins everything."""
    service = AppointmentService(db)
    appointments = service.list_appointments(current_user.id, current_user.role)

    return Envelope[AppointmentListData](
        message="Appointments retrieved successfully",
        data=AppointmentListData(
            appointments=[AppointmentOut.project(a, current_user.role) for a in appointments],
            count=len(appointments)
        )
    )

@router.post(
    "",
    response_model=Envelope[AppointmentData],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED
)
async def create_appointment(
    booking: AppointmentCreate,
    current_user: User = Depends(get_patient_user),
    db: Session = Depends(get_db)
):
    """Book an appointment with a doctor (patients only)."""
    service = AppointmentService(db)
    appointment = service.create_appointment(
        patient_id=current_user.id,
        doctor_id=booking.doctor_id,
        appointment_date=booking.appointment_date,
        start_time=booking.start_time,
        notes=booking.notes
    )

    return Envelope[AppointmentData](
        message="Appointment scheduled successfully",
        data=AppointmentData(appointment=AppointmentOut.project(appointment, current_user.role))
    )

@router.put("/{appointment_id}", response_model=Envelope[AppointmentData], response_model_exclude_none=True)
async def update_appointment(
    appointment_id: str,
    changes: AppointmentUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Reschedule, edit notes, or (doctor/admin) change status."""
    service = AppointmentService(db)
    appointment = service.update_appointment(
        appointment_id,
        current_user.id,
        current_user.role,
        AppointmentPatch.from_update(changes)
    )

    return Envelope[AppointmentData](
        message="Appointment updated successfully",
        data=AppointmentData(appointment=AppointmentOut.project(appointment, current_user.role))
    )

@router.delete("/{appointment_id}", response_model=Envelope[AppointmentData], response_model_exclude_none=True)
async def cancel_appointment(
    appointment_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Cancel an appointment; the record is kept for history."""
    service = AppointmentService(db)
    appointment = service.cancel_appointment(appointment_id, current_user.id, current_user.role)

    return Envelope[AppointmentData](
        message="Appointment cancelled successfully",
        data=AppointmentData(appointment=AppointmentOut.project(appointment, current_user.role))
    )
