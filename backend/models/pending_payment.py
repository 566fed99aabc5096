"""Pending payment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from backend.core.timeutils import utcnow
from backend.database import Base

PAYOUT_PENDING = "pending"
PAYOUT_PROCESSING = "processing"
PAYOUT_COMPLETED = "completed"
PAYOUT_FAILED = "failed"


class PendingPayment(Base):
    """Seller earnings held until the payout date."""
    __tablename__ = "pending_payments"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("slots_booking.id"), nullable=False, index=True)
    seller_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    meeting_end_time = Column(DateTime, nullable=False)
    payout_date = Column(DateTime, nullable=False, index=True)
    status = Column(String, nullable=False, default=PAYOUT_PENDING)
    error_message = Column(String)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
