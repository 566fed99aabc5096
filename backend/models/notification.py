"""Notification model definitions."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from backend.core.timeutils import utcnow
from backend.database import Base


class Notification(Base):
    """A stored in-app notification."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    action_performed_by = Column(String)
    thread_id = Column(String)
    message = Column(String, nullable=False)
    type = Column(String, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
