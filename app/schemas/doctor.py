from datetime import time
from typing import List, Optional
from pydantic import Field, field_serializer, model_validator

from ..core.config import settings
from ..models.doctor import Doctor
from .common import CamelModel

class TimeSlotCreate(CamelModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_window(self) -> "TimeSlotCreate":
        if self.start_time >= self.end_time:
            raise ValueError("startTime must be before endTime")
        return self

class TimeSlotOut(CamelModel):
    id: int
    day_of_week: int
    start_time: time
    end_time: time

    @field_serializer("start_time", "end_time")
    def serialize_clock(self, value: time) -> str:
        return value.strftime("%H:%M")

class AvailabilityToggle(CamelModel):
    is_available: bool

class DoctorOut(CamelModel):
    id: int
    first_name: str
    last_name: str
    specialty_name: Optional[str] = None
    duration_minutes: int
    consultation_fee: float
    is_available: bool

    @classmethod
    def project(cls, doctor: Doctor) -> "DoctorOut":
        specialty = doctor.specialty
        return cls(
            id=doctor.id,
            first_name=doctor.user.first_name,
            last_name=doctor.user.last_name,
            specialty_name=specialty.name if specialty else None,
            duration_minutes=(
                specialty.duration_minutes
                if specialty and specialty.duration_minutes
                else settings.DEFAULT_APPOINTMENT_DURATION_MINUTES
            ),
            consultation_fee=float(doctor.consultation_fee or 0),
            is_available=doctor.is_available,
        )

class DoctorListData(CamelModel):
    doctors: List[DoctorOut]
    count: int

class TimeSlotData(CamelModel):
    time_slot: TimeSlotOut

class TimeSlotListData(CamelModel):
    time_slots: List[TimeSlotOut]
    count: int

class DoctorData(CamelModel):
    doctor: DoctorOut
