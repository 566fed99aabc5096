from datetime import date, datetime, time

import pytest
from fastapi import BackgroundTasks
from pydantic import ValidationError as RequestValidationError

from backend.auth.dependencies import CurrentUser
from backend.core.exceptions import ConflictError, ForbiddenError, InsufficientFundsError, NotFoundError
from backend.models.booking import BOOKING_CANCELLED, BOOKING_CONFIRMED, Booking
from backend.models.wallet import Wallet
from backend.routes import booking_routes
from backend.routes.booking_routes import CreateBookingRequest, UpdateBookingStatusRequest
from backend.services.bookings import intervals_overlap, list_upcoming_bookings
from backend.services.notifications import deliver_notifications

SELLER_ID = 'seller-1'
BUYER_ID = 'buyer-1'


def _request(**overrides) -> CreateBookingRequest:
    values = {
        'service_id': 'service-1',
        'seller_id': SELLER_ID,
        'buyer_id': BUYER_ID,
        'meeting_date': '2026-01-05',
        'meeting_start_time': '09:00',
        'meeting_end_time': '10:00',
        'duration_minutes': 60,
        'price': 100,
        'service_title': 'Portfolio Review',
        'seller_name': 'Sam Seller',
        'buyer_name': 'Bea Buyer',
    }
    values.update(overrides)
    return CreateBookingRequest(**values)


def _create(db, data: CreateBookingRequest, caller: str = BUYER_ID):
    background_tasks = BackgroundTasks()
    response = booking_routes.create_booking(
        data=data,
        background_tasks=background_tasks,
        current_user=CurrentUser(id=caller),
        db=db,
    )
    return response, background_tasks


def _balances(db, user_id: str) -> tuple[int, int]:
    db.expire_all()
    wallet = db.get(Wallet, user_id)
    return wallet.available_coins, wallet.spent_coins


def _minutes(hours: int, minutes: int = 0) -> int:
    return hours * 60 + minutes


@pytest.mark.parametrize(
    ('first', 'second', 'expected'),
    [
        ((_minutes(9), _minutes(9, 30)), (_minutes(9, 30), _minutes(10)), False),
        ((_minutes(9), _minutes(10)), (_minutes(9, 15), _minutes(9, 45)), True),
        ((_minutes(9), _minutes(10)), (_minutes(9, 30), _minutes(10, 30)), True),
        ((_minutes(9), _minutes(10)), (_minutes(9), _minutes(10)), True),
        ((_minutes(9), _minutes(10)), (_minutes(11), _minutes(12)), False),
    ],
)
def test_intervals_overlap_is_symmetric(first, second, expected: bool) -> None:
    assert intervals_overlap(*first, *second) is expected
    assert intervals_overlap(*second, *first) is expected


def test_create_booking_request_parses_times_and_strips_text() -> None:
    request = _request(service_title='  Portfolio Review  ')

    assert request.meeting_date == date(2026, 1, 5)
    assert request.meeting_start_time == time(9, 0)
    assert request.service_title == 'Portfolio Review'


@pytest.mark.parametrize(
    'overrides',
    [
        {'meeting_start_time': '25:00'},
        {'meeting_end_time': '9am'},
        {'meeting_end_time': '09:00'},
        {'price': 0},
        {'duration_minutes': -30},
        {'seller_name': '   '},
    ],
)
def test_create_booking_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(RequestValidationError):
        _request(**overrides)


def test_update_booking_status_request_normalizes_status() -> None:
    assert UpdateBookingStatusRequest(id=1, status=' Confirmed ').status == 'confirmed'


def test_create_booking_debits_buyer_and_stores_pending_booking(db, parties) -> None:
    response, background_tasks = _create(db, _request())

    assert response.success is True
    assert response.message == 'Meeting request sent to seller successfully.'
    assert response.booking.booking_status == 'pending'
    assert response.booking.meeting_status == 'not_scheduled'
    assert response.booking.payment_status == 'paid'
    assert response.booking.zoom_meeting_created is False
    assert _balances(db, BUYER_ID) == (400, 100)

    assert len(background_tasks.tasks) == 1
    task = background_tasks.tasks[0]
    assert task.func is deliver_notifications
    messages = task.args[0]
    assert [(m.type, m.recipient_user_id) for m in messages] == [
        ('slot_booking', SELLER_ID),
        ('slot_booking_confirmation', BUYER_ID),
    ]
    assert 'Monday, January 5, 2026' in messages[0].message
    assert '9:00 AM' in messages[0].message


def test_create_booking_rejects_other_buyer(db, parties) -> None:
    with pytest.raises(ForbiddenError) as exception_info:
        _create(db, _request(), caller='someone-else')

    assert exception_info.value.status_code == 403
    assert _balances(db, BUYER_ID) == (500, 0)


def test_create_booking_rejects_overlap_without_debit(db, parties, make_booking) -> None:
    make_booking(meeting_start_time=time(9, 0), meeting_end_time=time(10, 0))

    with pytest.raises(ConflictError) as exception_info:
        _create(db, _request(meeting_start_time='09:30', meeting_end_time='10:30'))

    assert exception_info.value.status_code == 409
    assert exception_info.value.details == 'Please choose a different time slot'
    assert _balances(db, BUYER_ID) == (500, 0)
    assert db.query(Booking).count() == 1


def test_create_booking_allows_abutting_slot(db, parties, make_booking) -> None:
    make_booking(meeting_start_time=time(9, 0), meeting_end_time=time(10, 0))

    response, _ = _create(db, _request(meeting_start_time='10:00', meeting_end_time='11:00'))

    assert response.booking.meeting_start_time == time(10, 0)
    assert db.query(Booking).count() == 2


def test_create_booking_ignores_cancelled_bookings(db, parties, make_booking) -> None:
    make_booking(booking_status=BOOKING_CANCELLED)

    response, _ = _create(db, _request())

    assert response.booking.booking_status == 'pending'


def test_create_booking_rejects_insufficient_funds(db, parties) -> None:
    with pytest.raises(InsufficientFundsError) as exception_info:
        _create(db, _request(price=501))

    assert exception_info.value.status_code == 400
    assert exception_info.value.message == 'Insufficient coins'
    assert _balances(db, BUYER_ID) == (500, 0)
    assert db.query(Booking).count() == 0


def test_create_booking_requires_buyer_wallet(db, make_profile) -> None:
    make_profile(SELLER_ID)
    make_profile(BUYER_ID)

    with pytest.raises(NotFoundError) as exception_info:
        _create(db, _request())

    assert exception_info.value.message == 'Buyer wallet not found'


def test_create_booking_requires_seller(db, make_profile, make_wallet) -> None:
    make_profile(BUYER_ID)
    make_wallet(BUYER_ID, 500)

    with pytest.raises(NotFoundError) as exception_info:
        _create(db, _request())

    assert exception_info.value.message == 'Seller not found'
    assert _balances(db, BUYER_ID) == (500, 0)


def test_list_user_bookings_reports_role_and_upcoming(db, make_booking) -> None:
    make_booking(meeting_date=date(2026, 3, 2), meeting_start_time=time(13, 0), meeting_end_time=time(14, 0))
    make_booking(meeting_date=date(2026, 3, 1))
    make_booking(meeting_date=date(2026, 2, 1))
    make_booking(seller_id='other-seller', buyer_id=SELLER_ID, meeting_date=date(2026, 3, 2))

    rows = list_upcoming_bookings(db, SELLER_ID, now=datetime(2026, 3, 1, 9, 30))

    assert [(row['booking'].meeting_date, row['user_role'], row['is_upcoming']) for row in rows] == [
        (date(2026, 3, 1), 'seller', True),
        (date(2026, 3, 2), 'buyer', True),
        (date(2026, 3, 2), 'seller', True),
    ]


def test_list_user_bookings_marks_finished_meetings(db, make_booking) -> None:
    make_booking(meeting_date=date(2026, 3, 1), meeting_start_time=time(8, 0), meeting_end_time=time(9, 0))

    rows = list_upcoming_bookings(db, BUYER_ID, now=datetime(2026, 3, 1, 9, 30))

    assert rows[0]['user_role'] == 'buyer'
    assert rows[0]['is_upcoming'] is False


def test_list_user_bookings_route_wraps_rows(db, make_booking) -> None:
    booking = make_booking(meeting_date=date(2099, 1, 5))

    response = booking_routes.list_user_bookings(user_id=BUYER_ID, current_user=CurrentUser(id=SELLER_ID), db=db)

    assert response.success is True
    assert response.count == 1
    assert response.data[0].id == booking.id
    assert response.data[0].user_role == 'buyer'


def test_change_booking_status_schedules_notifications(db, parties, make_booking, zoom) -> None:
    booking = make_booking()
    background_tasks = BackgroundTasks()

    response = booking_routes.change_booking_status(
        data=UpdateBookingStatusRequest(id=booking.id, status='confirmed'),
        background_tasks=background_tasks,
        current_user=CurrentUser(id=SELLER_ID),
        db=db,
        zoom=zoom,
    )

    assert response.success is True
    assert response.data.booking_status == BOOKING_CONFIRMED
    assert response.data.zoom_join_url == 'https://zoom.us/j/88001'
    messages = background_tasks.tasks[0].args[0]
    assert [m.type for m in messages] == ['slot_confirmation', 'slot_confirmation_host']
