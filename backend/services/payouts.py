import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from backend.core import config
from backend.core.timeutils import utcnow
from backend.models.pending_payment import (
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
    PAYOUT_PENDING,
    PAYOUT_PROCESSING,
    PendingPayment,
)
from backend.services import wallet

logger = logging.getLogger(__name__)


@dataclass
class PayoutSummary:
    processed: int = 0
    completed: int = 0
    failed: int = 0


def process_pending_payments(
    db: Session,
    now: datetime | None = None,
    batch_size: int | None = None,
) -> PayoutSummary:
    """Release every pending payout whose payout date has passed to the seller's wallet."""
    now = now or utcnow()
    batch_size = batch_size or config.PAYOUT_BATCH_SIZE
    summary = PayoutSummary()

    while True:
        # Each processed row leaves the pending state, so the next batch starts from the top.
        payments = db.query(PendingPayment).filter(
            PendingPayment.status == PAYOUT_PENDING,
            PendingPayment.payout_date <= now,
        ).order_by(
            PendingPayment.payout_date.asc(),
            PendingPayment.id.asc(),
        ).limit(batch_size).all()

        if not payments:
            break

        for payment in payments:
            summary.processed += 1
            if release_payment(db, payment):
                summary.completed += 1
            else:
                summary.failed += 1

    logger.info(
        'Payout run finished: %s processed, %s completed, %s failed',
        summary.processed,
        summary.completed,
        summary.failed,
    )
    return summary


def release_payment(db: Session, payment: PendingPayment) -> bool:
    payment_id = payment.id
    try:
        payment.status = PAYOUT_PROCESSING
        db.commit()

        wallet.credit_earnings(db, payment.seller_id, payment.amount)
        payment.status = PAYOUT_COMPLETED
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.exception('Failed to process payout %s', payment_id)
        failed = db.get(PendingPayment, payment_id)
        failed.status = PAYOUT_FAILED
        failed.error_message = str(getattr(exc, 'message', exc))[:500]
        db.commit()
        return False

    logger.info('Transferred %s coins to seller %s (payout %s)', payment.amount, payment.seller_id, payment_id)
    return True
