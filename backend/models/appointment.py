"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from backend.database import Base

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"
COMPLETED = "COMPLETED"
NO_SHOW = "NO_SHOW"

APPOINTMENT_STATUSES = (PENDING, CONFIRMED, CANCELLED, COMPLETED, NO_SHOW)
# Only these statuses hold their time on the calendar.
OCCUPYING_STATUSES = (PENDING, CONFIRMED)


class Appointment(Base):
    """Represents a scheduled session."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    date_time = Column(DateTime, nullable=False)
    status = Column(String, default=PENDING, nullable=False)
    notes = Column(String)
    cancellation_reason = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    service = relationship("Service")
    user = relationship("User", back_populates="appointments")


class AppointmentHistory(Base):
    """Audit record written alongside every appointment mutation."""
    __tablename__ = "appointment_history"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    action = Column(String, nullable=False)  # BOOKED/RESCHEDULED/STATUS_CHANGED/CANCELLED
    old_date_time = Column(DateTime)
    new_date_time = Column(DateTime)
    old_status = Column(String)
    new_status = Column(String)
    reason = Column(String)
    actor_id = Column(Integer)
    actor_name = Column(String)
    created_at = Column(DateTime, default=datetime.now)
