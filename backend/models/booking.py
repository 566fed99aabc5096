"""Booking model definitions."""

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Time
from backend.core.timeutils import utcnow
from backend.database import Base

BOOKING_PENDING = "pending"
BOOKING_CONFIRMED = "confirmed"
BOOKING_DECLINED = "declined"
BOOKING_CANCELLED = "cancelled"
BOOKING_COMPLETED = "completed"
BOOKING_NO_SHOW = "no_show"
BOOKING_STATUSES = frozenset({
    BOOKING_PENDING,
    BOOKING_CONFIRMED,
    BOOKING_DECLINED,
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_NO_SHOW,
})
ACTIVE_BOOKING_STATUSES = (BOOKING_PENDING, BOOKING_CONFIRMED)
TERMINAL_BOOKING_STATUSES = frozenset({
    BOOKING_DECLINED,
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_NO_SHOW,
})

MEETING_NOT_SCHEDULED = "not_scheduled"
MEETING_SCHEDULED = "scheduled"
MEETING_IN_PROGRESS = "in_progress"
MEETING_COMPLETED = "completed"
MEETING_CANCELLED = "cancelled"

PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"


class Booking(Base):
    """A paid 1:1 session between a buyer and a seller."""
    __tablename__ = "slots_booking"

    id = Column(Integer, primary_key=True)
    service_id = Column(String, nullable=False)
    seller_id = Column(String, nullable=False, index=True)
    buyer_id = Column(String, nullable=False, index=True)
    meeting_date = Column(Date, nullable=False)
    meeting_start_time = Column(Time, nullable=False)
    meeting_end_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)
    service_title = Column(String)
    seller_name = Column(String)
    buyer_name = Column(String)
    booking_status = Column(String, nullable=False, default=BOOKING_PENDING)
    meeting_status = Column(String, nullable=False, default=MEETING_NOT_SCHEDULED)  # no_show is also written here
    payment_status = Column(String, nullable=False, default=PAYMENT_PAID)
    zoom_meeting_id = Column(String, index=True)
    zoom_join_url = Column(String)
    zoom_password = Column(String)
    zoom_host_url = Column(String)
    zoom_meeting_created = Column(Boolean, nullable=False, default=False)
    is_historical = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
