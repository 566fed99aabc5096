"""Coin balance movements for bookings, refunds and payouts.

None of these functions commit; they run inside the caller's transaction so a
debit and the row it pays for are persisted together.
"""

import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.core.exceptions import InsufficientFundsError, NotFoundError
from backend.core.timeutils import utcnow
from backend.models.wallet import Wallet

logger = logging.getLogger(__name__)


def get_wallet(db: Session, user_id: str) -> Wallet | None:
    return db.query(Wallet).filter(Wallet.user_id == user_id).first()


def debit(db: Session, user_id: str, amount: int) -> None:
    """Move ``amount`` from available to spent, only if the balance covers it."""
    result = db.execute(
        update(Wallet)
        .where(Wallet.user_id == user_id, Wallet.available_coins >= amount)
        .values(
            available_coins=Wallet.available_coins - amount,
            spent_coins=Wallet.spent_coins + amount,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InsufficientFundsError('Insufficient coins')
    _reload(db, user_id)


def refund(db: Session, user_id: str, amount: int) -> None:
    _apply(
        db,
        user_id,
        available_coins=Wallet.available_coins + amount,
        spent_coins=Wallet.spent_coins - amount,
    )
    logger.info('Refunded %s coins to user %s', amount, user_id)


def credit_earnings(db: Session, user_id: str, amount: int) -> None:
    _apply(
        db,
        user_id,
        available_coins=Wallet.available_coins + amount,
        earned_coins=Wallet.earned_coins + amount,
    )


def _apply(db: Session, user_id: str, **values) -> None:
    result = db.execute(
        update(Wallet)
        .where(Wallet.user_id == user_id)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(f'Wallet not found for user {user_id}')
    _reload(db, user_id)


def _reload(db: Session, user_id: str) -> None:
    # Bulk updates bypass the identity map; refresh any cached copy.
    db.get(Wallet, user_id, populate_existing=True)
