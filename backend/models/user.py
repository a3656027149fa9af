"""User model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from backend.database import Base

CLIENT_ROLE = "client"
ADMIN_ROLE = "admin"


class User(Base):
    """A client who books sessions, or a practice administrator."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String)
    phone = Column(String(32))
    hashed_password = Column(String)
    role = Column(String(16), default=CLIENT_ROLE, nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    appointments = relationship("Appointment", back_populates="user")
