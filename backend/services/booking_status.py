"""Booking status transitions and their side effects.

    pending --> confirmed --> completed | no_show
    pending, confirmed --> cancelled | declined

Confirming creates the Zoom meeting; cancelling or declining tears it down.
Terminal bookings never change status again.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core.exceptions import (
    ConflictError,
    InternalError,
    ProviderUnavailableError,
    ValidationError,
)
from backend.core.timeutils import format_date_readable, format_time_ampm, minutes_since_midnight
from backend.integrations.zoom_client import ZoomClient, ZoomError, ZoomMeeting
from backend.models.booking import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_DECLINED,
    BOOKING_NO_SHOW,
    BOOKING_PENDING,
    BOOKING_STATUSES,
    MEETING_CANCELLED,
    MEETING_SCHEDULED,
    Booking,
)
from backend.models.profile import Profile
from backend.services.bookings import BookingResult, apply_booking_update, get_booking
from backend.services.notifications import NotificationMessage

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    BOOKING_PENDING: frozenset({BOOKING_PENDING, BOOKING_CONFIRMED, BOOKING_CANCELLED, BOOKING_DECLINED}),
    BOOKING_CONFIRMED: frozenset({
        BOOKING_CONFIRMED,
        BOOKING_CANCELLED,
        BOOKING_DECLINED,
        BOOKING_COMPLETED,
        BOOKING_NO_SHOW,
    }),
    BOOKING_CANCELLED: frozenset(),
    BOOKING_DECLINED: frozenset(),
    BOOKING_COMPLETED: frozenset(),
    BOOKING_NO_SHOW: frozenset(),
}

CLEARED_ZOOM_FIELDS = {
    'zoom_meeting_id': None,
    'zoom_join_url': None,
    'zoom_password': None,
    'zoom_host_url': None,
    'zoom_meeting_created': False,
}


def ensure_transition_allowed(current: str, target: str) -> None:
    if target not in BOOKING_STATUSES:
        raise ValidationError(
            f'Unknown booking status: {target}',
            details=sorted(BOOKING_STATUSES),
        )
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise ConflictError(f'Cannot change booking status from {current} to {target}')


def update_booking_status(db: Session, booking_id: int, status: str, zoom: ZoomClient) -> BookingResult:
    booking = get_booking(db, booking_id)
    ensure_transition_allowed(booking.booking_status, status)

    if status == BOOKING_CONFIRMED:
        return confirm_booking(db, booking, zoom)
    if status in (BOOKING_CANCELLED, BOOKING_DECLINED):
        return cancel_booking(db, booking, status, zoom)
    if status in (BOOKING_COMPLETED, BOOKING_NO_SHOW):
        return complete_booking(db, booking, status)

    expected = booking.booking_status
    apply_booking_update(
        db,
        booking,
        expected,
        booking_status=status,
        is_historical=status in (BOOKING_COMPLETED, BOOKING_NO_SHOW),
    )
    _commit(db, booking)
    return BookingResult(booking=booking, message='Booking status updated')


def confirm_booking(db: Session, booking: Booking, zoom: ZoomClient) -> BookingResult:
    expected = booking.booking_status

    if booking.zoom_meeting_created:
        apply_booking_update(db, booking, expected, booking_status=BOOKING_CONFIRMED)
        _commit(db, booking)
        return BookingResult(booking=booking, message='Booking confirmed (existing Zoom meeting)')

    buyer = db.get(Profile, booking.buyer_id)
    seller = db.get(Profile, booking.seller_id)
    if buyer is None or seller is None or not buyer.email or not seller.email:
        raise InternalError('Could not fetch buyer or seller information')

    duration = minutes_since_midnight(booking.meeting_end_time) - minutes_since_midnight(booking.meeting_start_time)
    try:
        meeting = zoom.create_meeting(
            topic=f'{booking.service_title} - 1:1 Consultation',
            start_time=datetime.combine(booking.meeting_date, booking.meeting_start_time),
            duration_minutes=duration,
            host_email=seller.email,
            attendee_email=buyer.email,
            timezone='UTC',
        )
    except ZoomError as exc:
        logger.error('Could not create Zoom meeting for booking %s: %s', booking.id, exc.message)
        raise ProviderUnavailableError(
            'Failed to create meeting room',
            details='Meeting scheduling service is temporarily unavailable',
        ) from exc

    try:
        apply_booking_update(
            db,
            booking,
            expected,
            booking_status=BOOKING_CONFIRMED,
            zoom_meeting_id=meeting.id,
            zoom_join_url=meeting.join_url,
            zoom_password=meeting.password,
            zoom_host_url=meeting.host_url,
            zoom_meeting_created=True,
            meeting_status=MEETING_SCHEDULED,
        )
        _commit(db, booking)
    except (ConflictError, InternalError, SQLAlchemyError):
        db.rollback()
        logger.error('Removing Zoom meeting %s after failing to save booking %s', meeting.id, booking.id)
        zoom.delete_meeting(meeting.id)
        raise

    return BookingResult(
        booking=booking,
        message='Booking confirmed and Zoom meeting created',
        notifications=_confirmation_notifications(booking, buyer, seller, meeting),
    )


def cancel_booking(db: Session, booking: Booking, status: str, zoom: ZoomClient) -> BookingResult:
    expected = booking.booking_status
    meeting_id = booking.zoom_meeting_id if booking.zoom_meeting_created else None

    apply_booking_update(
        db,
        booking,
        expected,
        booking_status=status,
        meeting_status=MEETING_CANCELLED,
        **CLEARED_ZOOM_FIELDS,
    )
    _commit(db, booking)

    # Remote cleanup runs only after the status change is committed.
    if meeting_id:
        zoom.delete_meeting(meeting_id)

    return BookingResult(
        booking=booking,
        message=f'Booking {status} and marked as historical',
        notifications=_cancellation_notifications(db, booking, status),
    )


def complete_booking(db: Session, booking: Booking, status: str) -> BookingResult:
    expected = booking.booking_status
    apply_booking_update(
        db,
        booking,
        expected,
        booking_status=status,
        meeting_status=status,
        is_historical=True,
    )
    _commit(db, booking)

    return BookingResult(
        booking=booking,
        message=f'Booking marked as {status}',
        notifications=_completion_notifications(db, booking, status),
    )


def _commit(db: Session, booking: Booking) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Failed to update booking %s', booking.id)
        raise InternalError('Failed to update booking') from exc
    db.refresh(booking)


def _booking_metadata(booking: Booking, formatted_date: str, **extra) -> dict:
    return {
        'booking_id': booking.id,
        'service_title': booking.service_title,
        'meeting_date': booking.meeting_date.isoformat(),
        'formatted_date': formatted_date,
        **extra,
    }


def _confirmation_notifications(
    booking: Booking,
    buyer: Profile,
    seller: Profile,
    meeting: ZoomMeeting,
) -> list[NotificationMessage]:
    formatted_date = format_date_readable(booking.meeting_date)
    formatted_time = format_time_ampm(booking.meeting_start_time)
    meeting_time = booking.meeting_start_time.strftime('%H:%M')

    return [
        NotificationMessage(
            recipient_user_id=buyer.id,
            recipient_email=buyer.email,
            message=(
                f'Your booking with _**{booking.seller_name}**_ for **"{booking.service_title}"** '
                f'has been confirmed for _{formatted_date}_ at **{formatted_time}**.'
            ),
            type='slot_confirmation',
            metadata=_booking_metadata(
                booking,
                formatted_date,
                meeting_time=meeting_time,
                formatted_time=formatted_time,
                seller_name=booking.seller_name,
                zoom_join_url=meeting.join_url,
                zoom_password=meeting.password,
            ),
        ),
        NotificationMessage(
            recipient_user_id=seller.id,
            recipient_email=seller.email,
            message=(
                f'You confirmed a booking with _**{booking.buyer_name}**_ for **"{booking.service_title}"** '
                f'on _{formatted_date}_ at **{formatted_time}**.'
            ),
            type='slot_confirmation_host',
            metadata=_booking_metadata(
                booking,
                formatted_date,
                meeting_time=meeting_time,
                formatted_time=formatted_time,
                buyer_name=booking.buyer_name,
                zoom_host_url=meeting.host_url,
            ),
        ),
    ]


def _cancellation_notifications(db: Session, booking: Booking, status: str) -> list[NotificationMessage]:
    formatted_date = format_date_readable(booking.meeting_date)
    formatted_time = format_time_ampm(booking.meeting_start_time)
    meeting_time = booking.meeting_start_time.strftime('%H:%M')
    messages: list[NotificationMessage] = []

    buyer = db.get(Profile, booking.buyer_id)
    if buyer is not None:
        messages.append(
            NotificationMessage(
                recipient_user_id=buyer.id,
                recipient_email=buyer.email,
                message=(
                    f'Your booking with _**{booking.seller_name}**_ for **"{booking.service_title}"** '
                    f'on _{formatted_date}_ at **{formatted_time}** has been {status}.'
                ),
                type='slot_cancellation',
                metadata=_booking_metadata(
                    booking,
                    formatted_date,
                    meeting_time=meeting_time,
                    formatted_time=formatted_time,
                    seller_name=booking.seller_name,
                    cancellation_reason='declined by seller' if status == BOOKING_DECLINED else 'cancelled',
                ),
            )
        )

    # A declining seller is the actor, so only cancellations are echoed back to them.
    if status == BOOKING_CANCELLED:
        seller = db.get(Profile, booking.seller_id)
        if seller is not None:
            messages.append(
                NotificationMessage(
                    recipient_user_id=seller.id,
                    recipient_email=seller.email,
                    message=(
                        f'Booking with _**{booking.buyer_name}**_ for **"{booking.service_title}"** '
                        f'on _{formatted_date}_ at **{formatted_time}** has been cancelled.'
                    ),
                    type='slot_cancellation_host',
                    metadata=_booking_metadata(
                        booking,
                        formatted_date,
                        meeting_time=meeting_time,
                        formatted_time=formatted_time,
                        buyer_name=booking.buyer_name,
                    ),
                )
            )

    return messages


def _completion_notifications(db: Session, booking: Booking, status: str) -> list[NotificationMessage]:
    formatted_date = format_date_readable(booking.meeting_date)
    messages: list[NotificationMessage] = []

    buyer = db.get(Profile, booking.buyer_id)
    if buyer is not None:
        messages.append(
            NotificationMessage(
                recipient_user_id=buyer.id,
                recipient_email=buyer.email,
                message=(
                    f'Your session with _**{booking.seller_name}**_ on _{formatted_date}_ '
                    f'has been marked as **{status}**.'
                ),
                type='slot_completion',
                metadata=_booking_metadata(
                    booking,
                    formatted_date,
                    seller_name=booking.seller_name,
                    status=status,
                ),
            )
        )

    seller = db.get(Profile, booking.seller_id)
    if seller is not None:
        messages.append(
            NotificationMessage(
                recipient_user_id=seller.id,
                recipient_email=seller.email,
                message=(
                    f'Your session with _**{booking.buyer_name}**_ on _{formatted_date}_ '
                    f'has been marked as **{status}**.'
                ),
                type='slot_completion_host',
                metadata=_booking_metadata(
                    booking,
                    formatted_date,
                    buyer_name=booking.buyer_name,
                    status=status,
                ),
            )
        )

    return messages
