"""Blocked slot model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from backend.database import Base


class BlockedSlot(Base):
    """Represents an admin-declared period in which nothing can be booked."""
    __tablename__ = "blocked_slots"

    id = Column(Integer, primary_key=True)
    date_time = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, nullable=False)  # minutes
    reason = Column(String)
    created_at = Column(DateTime, default=datetime.now)
