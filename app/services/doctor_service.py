from typing import List
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.exceptions import ConflictError, NotFoundError, TransientStoreError
from ..core.security import AuthorizationError, UserRole
from ..models.doctor import Doctor, TimeSlot
from ..models.user import User
from ..scheduling.conflicts import intervals_overlap
from ..schemas.doctor import TimeSlotCreate

logger = logging.getLogger(__name__)

class DoctorService:
    """Doctor directory and weekly time slot administration."""

    def __init__(self, db: Session):
        self.db = db

    def list_available_doctors(self) -> List[Doctor]:
        return (
            self.db.query(Doctor)
            .join(User, Doctor.user_id == User.id)
            .options(selectinload(Doctor.user), selectinload(Doctor.specialty))
            .filter(Doctor.is_available == True, User.is_active == True)  # noqa: E712
            .order_by(User.last_name, User.first_name)
            .all()
        )

    def get_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found", field="doctorId")
        return doctor

    def list_time_slots(self, doctor_id: int) -> List[TimeSlot]:
        return self.get_doctor(doctor_id).time_slots

    def add_time_slot(self, doctor_id: int, caller_id: int, caller_role: UserRole, slot: TimeSlotCreate) -> TimeSlot:
        """Add a weekly window. Windows of the same day may touch but not overlap."""
        doctor = self._owned_doctor(doctor_id, caller_id, caller_role)

        for existing in doctor.time_slots:
            if existing.day_of_week == slot.day_of_week and intervals_overlap(
                slot.start_time, slot.end_time, existing.start_time, existing.end_time
            ):
                raise ConflictError(
                    "Time slot overlaps an existing slot on the same day",
                    field="startTime"
                )

        time_slot = TimeSlot(
            doctor_id=doctor.id,
            day_of_week=slot.day_of_week,
            start_time=slot.start_time,
            end_time=slot.end_time,
        )
        self.db.add(time_slot)
        self._commit("adding time slot")
        self.db.refresh(time_slot)

        logger.info(
            f"Doctor {doctor.id} time slot added: day={slot.day_of_week} "
            f"{slot.start_time:%H:%M}-{slot.end_time:%H:%M}"
        )
        return time_slot

    def remove_time_slot(self, doctor_id: int, slot_id: int, caller_id: int, caller_role: UserRole) -> None:
        doctor = self._owned_doctor(doctor_id, caller_id, caller_role)

        time_slot = self.db.query(TimeSlot).filter(
            TimeSlot.id == slot_id,
            TimeSlot.doctor_id == doctor.id
        ).first()
        if not time_slot:
            raise NotFoundError("Time slot not found")

        self.db.delete(time_slot)
        self._commit("removing time slot")
        logger.info(f"Doctor {doctor.id} time slot {slot_id} removed")

    def set_availability(self, doctor_id: int, caller_id: int, caller_role: UserRole, is_available: bool) -> Doctor:
        doctor = self._owned_doctor(doctor_id, caller_id, caller_role)
        doctor.is_available = is_available
        self._commit("updating doctor availability")
        self.db.refresh(doctor)

        logger.info(f"Doctor {doctor.id} is_available={is_available}")
        return doctor

    def _owned_doctor(self, doctor_id: int, caller_id: int, caller_role: UserRole) -> Doctor:
        doctor = self.get_doctor(doctor_id)
        role = UserRole(caller_role)
        if role == UserRole.ADMIN:
            return doctor
        if role != UserRole.DOCTOR or doctor.user_id != caller_id:
            raise AuthorizationError("You can only manage your own schedule")
        return doctor

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"Storage failure while {action}")
            raise TransientStoreError() from exc
