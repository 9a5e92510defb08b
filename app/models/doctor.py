from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Boolean, Text, Numeric, Time,
    CheckConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

class MedicalSpecialty(Base):
    __tablename__ = "medical_specialties"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    # Default appointment length for doctors of this specialty
    duration_minutes = Column(Integer, nullable=True)

    doctors = relationship("Doctor", back_populates="specialty")

    def __repr__(self):
        return f"<MedicalSpecialty(id={self.id}, name='{self.name}')>"

class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    specialty_id = Column(Integer, ForeignKey("medical_specialties.id"), nullable=True)

    # Professional information
    license_number = Column(String(50), nullable=True, unique=True)
    bio = Column(Text, nullable=True)
    consultation_fee = Column(Numeric(10, 2), nullable=False, default=0)

    # Global on/off switch, independent of the weekly time slots
    is_available = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="doctor")
    specialty = relationship("MedicalSpecialty", back_populates="doctors")
    time_slots = relationship(
        "TimeSlot",
        back_populates="doctor",
        order_by=lambda: [TimeSlot.day_of_week, TimeSlot.start_time],
        cascade="all, delete-orphan",
    )
    appointments = relationship("Appointment", back_populates="doctor")

    def __repr__(self):
        return f"<Doctor(id={self.id}, user_id={self.user_id}, specialty_id={self.specialty_id})>"

class TimeSlot(Base):
    """Recurring weekly window in which a doctor accepts appointments."""
    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_time_slots_start_before_end"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_time_slots_day_of_week"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    doctor = relationship("Doctor", back_populates="time_slots")

    def __repr__(self):
        return (
            f"<TimeSlot(doctor_id={self.doctor_id}, day_of_week={self.day_of_week}, "
            f"{self.start_time}-{self.end_time})>"
        )
