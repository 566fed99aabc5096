"""Reconciles Zoom webhook events with bookings, meeting tracks and escrow.

Zoom delivers events at least once and in no guaranteed order. A meeting
track row is created on the first event seen for a meeting, participants are
de-duplicated by Zoom user id, and the meeting-end settlement is claimed
exactly once through ``MeetingTrack.settled_at``.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.timeutils import minutes_between, utcnow
from backend.models.booking import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    BOOKING_DECLINED,
    BOOKING_NO_SHOW,
    MEETING_COMPLETED,
    MEETING_IN_PROGRESS,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    Booking,
)
from backend.models.meeting_track import MeetingTrack
from backend.models.pending_payment import PAYOUT_PENDING, PendingPayment
from backend.services import wallet
from backend.services.bookings import apply_booking_update

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = 'v0'

EVENT_MEETING_STARTED = 'meeting.started'
EVENT_MEETING_ENDED = 'meeting.ended'
EVENT_PARTICIPANT_JOINED = 'meeting.participant_joined'
EVENT_PARTICIPANT_LEFT = 'meeting.participant_left'

OUTCOME_PROCESSED = 'processed'
OUTCOME_IGNORED = 'ignored'
OUTCOME_UNKNOWN_MEETING = 'unknown_meeting'
OUTCOME_ALREADY_SETTLED = 'already_settled'


def compute_signature(secret: str, timestamp: str, raw_body: bytes | str) -> str:
    if isinstance(raw_body, bytes):
        raw_body = raw_body.decode('utf-8')
    message = f'{SIGNATURE_VERSION}:{timestamp}:{raw_body}'
    digest = hmac.new(secret.encode('utf-8'), message.encode('utf-8'), hashlib.sha256).hexdigest()
    return f'{SIGNATURE_VERSION}={digest}'


def verify_signature(secret: str, timestamp: str | None, raw_body: bytes | str, signature: str | None) -> bool:
    if not secret or not timestamp or not signature:
        return False
    try:
        expected = compute_signature(secret, timestamp, raw_body)
    except UnicodeDecodeError:
        return False
    return hmac.compare_digest(expected, signature)


def is_timestamp_fresh(timestamp: str | None, now: float, max_age_seconds: int) -> bool:
    """Whether an epoch-seconds request timestamp is within ``max_age_seconds`` of ``now``."""
    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        return False
    return abs(now - sent_at) <= max_age_seconds


@dataclass(frozen=True)
class WebhookEvent:
    event: str
    meeting_id: str
    participant: dict[str, Any] | None = None


def parse_event(body: Any) -> WebhookEvent | None:
    """Extract the fields we act on, or ``None`` when the payload is malformed."""
    if not isinstance(body, dict):
        return None
    event = body.get('event')
    payload = body.get('payload')
    if not isinstance(event, str) or not isinstance(payload, dict):
        return None
    meeting = payload.get('object')
    if not isinstance(meeting, dict) or meeting.get('id') in (None, ''):
        return None

    participant = meeting.get('participant')
    return WebhookEvent(
        event=event,
        meeting_id=str(meeting['id']),
        participant=participant if isinstance(participant, dict) else None,
    )


def _lock_track(db: Session, meeting_id: str) -> MeetingTrack | None:
    return db.query(MeetingTrack).filter(
        MeetingTrack.zoom_meeting_id == meeting_id,
    ).with_for_update().populate_existing().first()


def get_or_create_track(db: Session, meeting_id: str, booking: Booking, now: datetime) -> MeetingTrack:
    track = _lock_track(db, meeting_id)
    if track is not None:
        return track

    track = MeetingTrack(
        zoom_meeting_id=meeting_id,
        booking_id=booking.id,
        event_type='meeting_created',
        event_time=now,
        participant_count=0,
        participant_details=[],
    )
    db.add(track)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent delivery for the same meeting created it first.
        db.rollback()
        track = _lock_track(db, meeting_id)
        if track is None:
            raise
        return track

    logger.info('Created meeting track for Zoom meeting %s', meeting_id)
    # Re-read under lock so concurrent deliveries serialize on the new row.
    return _lock_track(db, meeting_id)


def handle_event(db: Session, event: WebhookEvent, now: datetime | None = None) -> str:
    now = now or utcnow()
    booking = db.query(Booking).filter(Booking.zoom_meeting_id == event.meeting_id).first()
    if booking is None:
        logger.warning('No booking found for Zoom meeting %s', event.meeting_id)
        return OUTCOME_UNKNOWN_MEETING

    handlers = {
        EVENT_MEETING_STARTED: handle_meeting_started,
        EVENT_MEETING_ENDED: handle_meeting_ended,
        EVENT_PARTICIPANT_JOINED: handle_participant_joined,
        EVENT_PARTICIPANT_LEFT: handle_participant_left,
    }
    track = get_or_create_track(db, event.meeting_id, booking, now)

    handler = handlers.get(event.event)
    if handler is None:
        logger.info('Unhandled Zoom event type %s for meeting %s', event.event, event.meeting_id)
        return OUTCOME_IGNORED

    try:
        outcome = handler(db, track, booking, event, now)
    except Exception:
        db.rollback()
        logger.exception('Failed to process %s for Zoom meeting %s', event.event, event.meeting_id)
        raise

    db.commit()
    return outcome


def handle_meeting_started(
    db: Session,
    track: MeetingTrack,
    booking: Booking,
    event: WebhookEvent,
    now: datetime,
) -> str:
    if track.settled_at is not None:
        logger.info('Ignoring start of already settled Zoom meeting %s', event.meeting_id)
        return OUTCOME_ALREADY_SETTLED

    track.event_type = 'meeting_started'
    track.meeting_start_time = now
    track.event_time = now

    apply_booking_update(db, booking, booking.booking_status, meeting_status=MEETING_IN_PROGRESS)
    return OUTCOME_PROCESSED


def handle_meeting_ended(
    db: Session,
    track: MeetingTrack,
    booking: Booking,
    event: WebhookEvent,
    now: datetime,
) -> str:
    claimed = db.execute(
        update(MeetingTrack)
        .where(MeetingTrack.id == track.id, MeetingTrack.settled_at.is_(None))
        .values(settled_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        logger.info('Zoom meeting %s already settled; ignoring duplicate end event', event.meeting_id)
        return OUTCOME_ALREADY_SETTLED

    duration = minutes_between(track.meeting_start_time, now) if track.meeting_start_time else 0
    track.settled_at = now
    track.event_type = 'meeting_ended'
    track.meeting_end_time = now
    track.event_time = now
    track.duration = duration

    if booking.booking_status in (BOOKING_CANCELLED, BOOKING_DECLINED):
        logger.warning(
            'Zoom meeting %s ended for %s booking %s; not settling',
            event.meeting_id,
            booking.booking_status,
            booking.id,
        )
        return OUTCOME_PROCESSED

    if booking.booking_status in (BOOKING_COMPLETED, BOOKING_NO_SHOW):
        apply_booking_update(db, booking, booking.booking_status, meeting_status=MEETING_COMPLETED)
    else:
        apply_booking_update(
            db,
            booking,
            booking.booking_status,
            meeting_status=MEETING_COMPLETED,
            booking_status=BOOKING_COMPLETED,
            is_historical=True,
        )

    settle_booking(db, booking, duration, now)
    return OUTCOME_PROCESSED


def settle_booking(db: Session, booking: Booking, duration: int, ended_at: datetime) -> None:
    """Hold the seller's earnings for payout, or refund the buyer for a short meeting."""
    required = booking.duration_minutes * config.SETTLEMENT_MIN_ATTENDANCE_RATIO
    if duration >= required:
        db.add(
            PendingPayment(
                booking_id=booking.id,
                seller_id=booking.seller_id,
                amount=booking.price,
                meeting_end_time=ended_at,
                payout_date=ended_at + timedelta(days=config.PAYOUT_DELAY_DAYS),
                status=PAYOUT_PENDING,
            )
        )
        logger.info(
            'Booking %s lasted %s of %s minutes; payout of %s scheduled for seller %s',
            booking.id,
            duration,
            booking.duration_minutes,
            booking.price,
            booking.seller_id,
        )
        return

    if booking.payment_status != PAYMENT_PAID:
        logger.warning('Booking %s is %s; skipping refund', booking.id, booking.payment_status)
        return

    wallet.refund(db, booking.buyer_id, booking.price)
    apply_booking_update(db, booking, booking.booking_status, payment_status=PAYMENT_REFUNDED)
    logger.info(
        'Booking %s lasted %s of %s minutes; refunded buyer %s',
        booking.id,
        duration,
        booking.duration_minutes,
        booking.buyer_id,
    )


def handle_participant_joined(
    db: Session,
    track: MeetingTrack,
    booking: Booking,
    event: WebhookEvent,
    now: datetime,
) -> str:
    participant = event.participant or {}
    user_id = participant.get('user_id')
    if not user_id:
        logger.warning('participant_joined for Zoom meeting %s has no user_id', event.meeting_id)
        return OUTCOME_IGNORED

    details = [dict(entry) for entry in track.participant_details or []]
    if not any(entry.get('user_id') == user_id for entry in details):
        details.append({
            'user_id': user_id,
            'user_name': participant.get('user_name'),
            'email': participant.get('email'),
            'join_time': participant.get('join_time') or now.isoformat(),
            'left_time': None,
        })
        track.participant_count = (track.participant_count or 0) + 1

    track.participant_details = details
    track.event_type = 'participant_joined'
    track.event_time = now
    return OUTCOME_PROCESSED


def handle_participant_left(
    db: Session,
    track: MeetingTrack,
    booking: Booking,
    event: WebhookEvent,
    now: datetime,
) -> str:
    participant = event.participant or {}
    user_id = participant.get('user_id')
    left_time = participant.get('leave_time') or now.isoformat()

    details = []
    for entry in track.participant_details or []:
        entry = dict(entry)
        if user_id and entry.get('user_id') == user_id:
            entry['left_time'] = left_time
        details.append(entry)

    track.participant_details = details
    track.event_type = 'participant_left'
    track.event_time = now
    return OUTCOME_PROCESSED
