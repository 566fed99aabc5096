"""Booking creation, listing and the single write path for booking updates."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import ConflictError, InsufficientFundsError, InternalError, NotFoundError
from backend.core.timeutils import format_date_readable, format_time_ampm, minutes_since_midnight, utcnow
from backend.models.booking import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_PENDING,
    MEETING_NOT_SCHEDULED,
    PAYMENT_PAID,
    Booking,
)
from backend.models.profile import Profile
from backend.services import wallet
from backend.services.notifications import NotificationMessage

logger = logging.getLogger(__name__)


@dataclass
class NewBooking:
    service_id: str
    seller_id: str
    buyer_id: str
    meeting_date: date
    meeting_start_time: time
    meeting_end_time: time
    duration_minutes: int
    price: int
    service_title: str
    seller_name: str
    buyer_name: str


@dataclass
class BookingResult:
    booking: Booking
    message: str
    notifications: list[NotificationMessage] = field(default_factory=list)


def intervals_overlap(new_start: int, new_end: int, existing_start: int, existing_end: int) -> bool:
    """Half-open interval overlap in minutes since midnight; touching intervals do not overlap."""
    return (
        (existing_start <= new_start < existing_end)
        or (existing_start < new_end <= existing_end)
        or (new_start <= existing_start and new_end >= existing_end)
    )


def find_conflicting_booking(db: Session, data: NewBooking) -> Booking | None:
    new_start = minutes_since_midnight(data.meeting_start_time)
    new_end = minutes_since_midnight(data.meeting_end_time)

    existing_bookings = db.query(Booking).filter(
        Booking.seller_id == data.seller_id,
        Booking.meeting_date == data.meeting_date,
        Booking.booking_status.in_(ACTIVE_BOOKING_STATUSES),
    ).all()

    for existing in existing_bookings:
        if intervals_overlap(
            new_start,
            new_end,
            minutes_since_midnight(existing.meeting_start_time),
            minutes_since_midnight(existing.meeting_end_time),
        ):
            return existing
    return None


def create_booking(db: Session, data: NewBooking) -> BookingResult:
    """Check for conflicts, debit the buyer and store the booking as one transaction."""
    try:
        # Serializes concurrent bookings against the same seller.
        seller = db.query(Profile).filter(Profile.id == data.seller_id).with_for_update().first()
        if seller is None:
            raise NotFoundError('Seller not found')

        conflict = find_conflicting_booking(db, data)
        if conflict is not None:
            logger.info(
                'Booking request for seller %s on %s overlaps booking %s',
                data.seller_id,
                data.meeting_date,
                conflict.id,
            )
            raise ConflictError(
                'Time slot overlaps with an existing booking',
                details='Please choose a different time slot',
            )

        buyer_wallet = wallet.get_wallet(db, data.buyer_id)
        if buyer_wallet is None:
            raise NotFoundError('Buyer wallet not found')
        if buyer_wallet.available_coins < data.price:
            raise InsufficientFundsError('Insufficient coins')

        wallet.debit(db, data.buyer_id, data.price)

        booking = Booking(
            service_id=data.service_id,
            seller_id=data.seller_id,
            buyer_id=data.buyer_id,
            meeting_date=data.meeting_date,
            meeting_start_time=data.meeting_start_time,
            meeting_end_time=data.meeting_end_time,
            duration_minutes=data.duration_minutes,
            price=data.price,
            service_title=data.service_title,
            seller_name=data.seller_name,
            buyer_name=data.buyer_name,
            booking_status=BOOKING_PENDING,
            meeting_status=MEETING_NOT_SCHEDULED,
            payment_status=PAYMENT_PAID,
            zoom_meeting_created=False,
        )
        db.add(booking)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to create booking for buyer %s', data.buyer_id)
        raise InternalError('Failed to request a meeting slot') from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info('Booking %s created: buyer %s, seller %s', booking.id, booking.buyer_id, booking.seller_id)

    buyer = db.get(Profile, data.buyer_id)
    return BookingResult(
        booking=booking,
        message='Meeting request sent to seller successfully.',
        notifications=_new_booking_notifications(booking, seller, buyer),
    )


def _new_booking_notifications(
    booking: Booking,
    seller: Profile,
    buyer: Profile | None,
) -> list[NotificationMessage]:
    formatted_date = format_date_readable(booking.meeting_date)
    formatted_time = format_time_ampm(booking.meeting_start_time)
    shared = {
        'booking_id': booking.id,
        'service_title': booking.service_title,
        'meeting_date': booking.meeting_date.isoformat(),
        'meeting_time': booking.meeting_start_time.strftime('%H:%M'),
        'formatted_date': formatted_date,
        'formatted_time': formatted_time,
    }

    messages = [
        NotificationMessage(
            recipient_user_id=seller.id,
            recipient_email=seller.email,
            message=(
                f'You have received a new booking request from _{booking.buyer_name}_ for '
                f'**"{booking.service_title}"** on _{formatted_date}_ at **{formatted_time}**.'
            ),
            type='slot_booking',
            metadata={**shared, 'buyer_name': booking.buyer_name},
        )
    ]
    if buyer is not None:
        messages.append(
            NotificationMessage(
                recipient_user_id=buyer.id,
                recipient_email=buyer.email,
                message=(
                    f'Your booking request for **"{booking.service_title}"** with '
                    f'_**{booking.seller_name}**_ on _{formatted_date}_ at **{formatted_time}** '
                    'has been submitted successfully.'
                ),
                type='slot_booking_confirmation',
                metadata={**shared, 'seller_name': booking.seller_name},
            )
        )
    return messages


def list_upcoming_bookings(db: Session, user_id: str, now: datetime | None = None) -> list[dict]:
    now = now or utcnow()
    bookings = db.query(Booking).filter(
        or_(Booking.seller_id == user_id, Booking.buyer_id == user_id),
        Booking.meeting_date >= now.date(),
    ).order_by(
        Booking.meeting_date.asc(),
        Booking.meeting_start_time.asc(),
    ).limit(config.UPCOMING_BOOKINGS_LIMIT).all()

    return [
        {
            'booking': booking,
            'user_role': 'seller' if booking.seller_id == user_id else 'buyer',
            'is_upcoming': datetime.combine(booking.meeting_date, booking.meeting_end_time) > now,
        }
        for booking in bookings
    ]


def get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError('Booking not found')
    return booking


def apply_booking_update(db: Session, booking: Booking, expected_status: str, **values) -> Booking:
    """Write ``values`` only if the booking still has ``expected_status``.

    Every writer after creation goes through here so a stale read fails with a
    conflict instead of overwriting a concurrent change. The caller commits.
    """
    result = db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.booking_status == expected_status)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.warning(
            'Booking %s was modified concurrently (expected status %s)',
            booking.id,
            expected_status,
        )
        raise ConflictError('Booking was modified concurrently')

    db.flush()
    db.refresh(booking)
    return booking
