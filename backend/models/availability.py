"""Availability model definitions."""

from sqlalchemy import JSON, Column, Date, DateTime, Integer, String, UniqueConstraint
from backend.core.timeutils import utcnow
from backend.database import Base


class UserAvailability(Base):
    """A user's declared weekly schedule, one row per (user, week)."""
    __tablename__ = "user_availability"
    __table_args__ = (
        UniqueConstraint("user_id", "week_start_date", name="uq_user_availability_user_week"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    week_start_date = Column(Date, nullable=False)
    availability = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
