from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_current_user
from ...services.doctor_service import DoctorService
from ...schemas.doctor import (
    AvailabilityToggle, DoctorData, DoctorListData, DoctorOut,
    TimeSlotCreate, TimeSlotData, TimeSlotListData, TimeSlotOut
)
from ...schemas.common import Envelope
from ...models.user import User

router = APIRouter(prefix="/doctors", tags=["Doctors"])

@router.get("", response_model=Envelope[DoctorListData])
async def list_doctors(
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Doctors currently accepting bookings."""
    doctors = DoctorService(db).list_available_doctors()

    return Envelope[DoctorListData](
        message="Doctors retrieved successfully",
        data=DoctorListData(doctors=[DoctorOut.project(d) for d in doctors], count=len(doctors))
    )

@router.get("/{doctor_id}/time-slots", response_model=Envelope[TimeSlotListData])
async def list_time_slots(
    doctor_id: int,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """A doctor's weekly availability template."""
    slots = DoctorService(db).list_time_slots(doctor_id)

    return Envelope[TimeSlotListData](
        message="Time slots retrieved successfully",
        data=TimeSlotListData(time_slots=[TimeSlotOut.model_validate(s) for s in slots], count=len(slots))
    )

@router.post(
    "/{doctor_id}/time-slots",
    response_model=Envelope[TimeSlotData],
    status_code=status.HTTP_201_CREATED
)
async def add_time_slot(
    doctor_id: int,
    slot: TimeSlotCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Add a weekly window (owning doctor or admin)."""
    time_slot = DoctorService(db).add_time_slot(doctor_id, current_user.id, current_user.role, slot)

    return Envelope[TimeSlotData](
        message="Time slot added successfully",
        data=TimeSlotData(time_slot=TimeSlotOut.model_validate(time_slot))
    )

@router.delete("/{doctor_id}/time-slots/{slot_id}", response_model=Envelope[TimeSlotData])
async def remove_time_slot(
    doctor_id: int,
    slot_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Remove a weekly window (owning doctor or admin)."""
    DoctorService(db).remove_time_slot(doctor_id, slot_id, current_user.id, current_user.role)

    return Envelope[TimeSlotData](message="Time slot removed successfully")

@router.patch("/{doctor_id}/availability", response_model=Envelope[DoctorData])
async def set_availability(
    doctor_id: int,
    toggle: AvailabilityToggle,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Switch a doctor's bookability on or off (owning doctor or admin)."""
    doctor = DoctorService(db).set_availability(
        doctor_id, current_user.id, current_user.role, toggle.is_available
    )

    return Envelope[DoctorData](
        message="Doctor availability updated",
        data=DoctorData(doctor=DoctorOut.project(doctor))
    )
