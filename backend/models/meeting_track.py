"""Meeting track model definitions."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from backend.core.timeutils import utcnow
from backend.database import Base


class MeetingTrack(Base):
    """Lifecycle events observed for one remote meeting."""
    __tablename__ = "meetings_track"

    id = Column(Integer, primary_key=True)
    zoom_meeting_id = Column(String, nullable=False, unique=True, index=True)
    booking_id = Column(Integer, ForeignKey("slots_booking.id"), nullable=False)
    event_type = Column(String, nullable=False)
    event_time = Column(DateTime, nullable=False)
    meeting_start_time = Column(DateTime)
    meeting_end_time = Column(DateTime)
    duration = Column(Integer)
    participant_count = Column(Integer, nullable=False, default=0)
    participant_details = Column(JSON, nullable=False, default=list)
    settled_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
