"""Schedule lock model definitions."""

from sqlalchemy import Column, Integer
from backend.database import Base

SCHEDULE_LOCK_ID = 1


class ScheduleLock(Base):
    """Single row locked FOR UPDATE by every transaction that books or moves a session."""
    __tablename__ = "schedule_lock"

    id = Column(Integer, primary_key=True)
