"""Service model definitions."""

from sqlalchemy import Boolean, Column, Integer, Numeric, String
from backend.database import Base


class Service(Base):
    """Represents a bookable counseling service."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(String)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Numeric(10, 2), default=0)
    is_active = Column(Boolean, default=True, nullable=False)
