"""Profile model definitions."""

from sqlalchemy import Column, DateTime, String
from backend.core.timeutils import utcnow
from backend.database import Base


class Profile(Base):
    """Represents a platform user as seen by the booking flows."""
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, index=True)
    full_name = Column(String)
    role = Column(String, default="user")  # user/admin
    created_at = Column(DateTime, default=utcnow)
