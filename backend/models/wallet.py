"""Wallet model definitions."""

from sqlalchemy import Column, DateTime, Integer, String
from backend.core.timeutils import utcnow
from backend.database import Base


class Wallet(Base):
    """Per-user coin balance."""
    __tablename__ = "wallets"

    user_id = Column(String, primary_key=True)
    available_coins = Column(Integer, nullable=False, default=0)
    spent_coins = Column(Integer, nullable=False, default=0)
    earned_coins = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
