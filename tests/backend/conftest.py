import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.integrations.zoom_client import ZoomError, ZoomMeeting  # noqa: E402
from backend.models import availability, meeting_track, notification, pending_payment  # noqa: E402,F401
from backend.models.booking import BOOKING_PENDING, MEETING_NOT_SCHEDULED, PAYMENT_PAID, Booking  # noqa: E402
from backend.models.profile import Profile  # noqa: E402
from backend.models.wallet import Wallet  # noqa: E402

SELLER_ID = 'seller-1'
BUYER_ID = 'buyer-1'


class FakeZoomClient:
    """Records gateway calls instead of talking to Zoom."""

    def __init__(self, fail_create: bool = False, fail_delete: bool = False) -> None:
        self.fail_create = fail_create
        self.fail_delete = fail_delete
        self.created: list[dict] = []
        self.deleted: list[str] = []

    def create_meeting(self, **kwargs) -> ZoomMeeting:
        if self.fail_create:
            raise ZoomError('Zoom API error: Internal error', status_code=500)
        self.created.append(kwargs)
        meeting_id = f'8800{len(self.created)}'
        return ZoomMeeting(
            id=meeting_id,
            join_url=f'https://zoom.us/j/{meeting_id}',
            host_url=f'https://zoom.us/s/{meeting_id}',
            password='ABC123',
        )

    def delete_meeting(self, meeting_id: str) -> bool:
        self.deleted.append(meeting_id)
        return not self.fail_delete


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def zoom() -> FakeZoomClient:
    return FakeZoomClient()


@pytest.fixture
def make_profile(db):
    def _make_profile(user_id: str, email: str | None = None, full_name: str | None = None) -> Profile:
        profile = Profile(id=user_id, email=email or f'{user_id}@example.com', full_name=full_name)
        db.add(profile)
        db.commit()
        return profile

    return _make_profile


@pytest.fixture
def make_wallet(db):
    def _make_wallet(user_id: str, available_coins: int = 0, spent_coins: int = 0) -> Wallet:
        wallet = Wallet(user_id=user_id, available_coins=available_coins, spent_coins=spent_coins, earned_coins=0)
        db.add(wallet)
        db.commit()
        return wallet

    return _make_wallet


@pytest.fixture
def make_booking(db):
    def _make_booking(**overrides) -> Booking:
        values = {
            'service_id': 'service-1',
            'seller_id': SELLER_ID,
            'buyer_id': BUYER_ID,
            'meeting_date': date(2026, 1, 5),
            'meeting_start_time': time(9, 0),
            'meeting_end_time': time(10, 0),
            'duration_minutes': 60,
            'price': 100,
            'service_title': 'Portfolio Review',
            'seller_name': 'Sam Seller',
            'buyer_name': 'Bea Buyer',
            'booking_status': BOOKING_PENDING,
            'meeting_status': MEETING_NOT_SCHEDULED,
            'payment_status': PAYMENT_PAID,
            'zoom_meeting_created': False,
        }
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make_booking


@pytest.fixture
def parties(make_profile, make_wallet):
    """A seller and a buyer holding 500 coins."""
    seller = make_profile(SELLER_ID, full_name='Sam Seller')
    buyer = make_profile(BUYER_ID, full_name='Bea Buyer')
    make_wallet(SELLER_ID, 0)
    make_wallet(BUYER_ID, 500)
    return seller, buyer


@pytest.fixture
def failing_zoom() -> FakeZoomClient:
    return FakeZoomClient(fail_create=True)


@pytest.fixture
def unreliable_zoom() -> FakeZoomClient:
    return FakeZoomClient(fail_delete=True)
