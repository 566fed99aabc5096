import pytest
from fastapi.testclient import TestClient

from backend.auth.jwt_handler import create_access_token
from backend.database import get_db
from backend.integrations.zoom_client import get_zoom_client
from backend.main import app
from backend.models.notification import Notification
from backend.services import notifications

BOOKING_BODY = {
    'service_id': 'service-1',
    'seller_id': 'seller-1',
    'buyer_id': 'buyer-1',
    'meeting_date': '2026-01-05',
    'meeting_start_time': '09:00',
    'meeting_end_time': '10:00',
    'duration_minutes': 60,
    'price': 100,
    'service_title': 'Portfolio Review',
    'seller_name': 'Sam Seller',
    'buyer_name': 'Bea Buyer',
}


@pytest.fixture
def client(db, session_factory, zoom, monkeypatch: pytest.MonkeyPatch):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_zoom_client] = lambda: zoom
    monkeypatch.setattr(notifications, 'SessionLocal', session_factory)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(user_id: str) -> dict[str, str]:
    return {'Authorization': f'Bearer {create_access_token(user_id, email=f"{user_id}@example.com")}'}


def test_root_reports_running(client: TestClient) -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'Bookings API Running'}


def test_requests_without_token_are_unauthorized(client: TestClient) -> None:
    response = client.get('/availability')

    assert response.status_code == 401
    assert response.json() == {'success': False, 'message': 'Unauthorized: No token provided'}


def test_requests_with_invalid_token_are_unauthorized(client: TestClient) -> None:
    response = client.get('/availability', headers={'Authorization': 'Bearer not-a-jwt'})

    assert response.status_code == 401
    assert response.json()['message'] == 'Unauthorized: Invalid token'


def test_request_validation_errors_use_error_envelope(client: TestClient) -> None:
    body = {**BOOKING_BODY, 'meeting_start_time': '25:00', 'price': 0}

    response = client.post('/bookings', json=body, headers=_auth('buyer-1'))

    assert response.status_code == 400
    payload = response.json()
    assert payload['success'] is False
    assert payload['message'] == 'Invalid request'
    assert {detail['field'] for detail in payload['details']} == {'meeting_start_time', 'price'}


def test_unknown_route_uses_error_envelope(client: TestClient) -> None:
    response = client.get('/does-not-exist')

    assert response.status_code == 404
    assert response.json() == {'success': False, 'message': 'Not Found'}


def test_booking_flow_over_http(client: TestClient, db, parties) -> None:
    created = client.post('/bookings', json=BOOKING_BODY, headers=_auth('buyer-1'))

    assert created.status_code == 201
    booking = created.json()['booking']
    assert booking['booking_status'] == 'pending'
    assert booking['meeting_start_time'] == '09:00:00'

    conflict = client.post('/bookings', json=BOOKING_BODY, headers=_auth('buyer-1'))
    assert conflict.status_code == 409
    assert conflict.json() == {
        'success': False,
        'message': 'Time slot overlaps with an existing booking',
        'details': 'Please choose a different time slot',
    }

    confirmed = client.put(
        '/bookings/status',
        json={'id': booking['id'], 'status': 'confirmed'},
        headers=_auth('seller-1'),
    )
    assert confirmed.status_code == 200
    assert confirmed.json()['data']['zoom_meeting_created'] is True

    cancelled_twice = client.put(
        '/bookings/status',
        json={'id': booking['id'], 'status': 'cancelled'},
        headers=_auth('buyer-1'),
    )
    assert cancelled_twice.status_code == 200
    reconfirmed = client.put(
        '/bookings/status',
        json={'id': booking['id'], 'status': 'confirmed'},
        headers=_auth('seller-1'),
    )
    assert reconfirmed.status_code == 409

    db.expire_all()
    types = [row.type for row in db.query(Notification).order_by(Notification.id)]
    assert types == [
        'slot_booking',
        'slot_booking_confirmation',
        'slot_confirmation',
        'slot_confirmation_host',
        'slot_cancellation',
        'slot_cancellation_host',
    ]


def test_booking_for_another_buyer_is_forbidden(client: TestClient, parties) -> None:
    response = client.post('/bookings', json=BOOKING_BODY, headers=_auth('seller-1'))

    assert response.status_code == 403
    assert response.json()['success'] is False


def test_availability_round_trip_over_http(client: TestClient) -> None:
    initial = client.get('/availability', headers=_auth('user-1'))
    assert initial.status_code == 200

    availability = initial.json()
    availability['Friday'] = {'enabled': True, 'slots': [{'id': 'fri-1', 'start': '13:00', 'end': '15:00'}]}
    updated = client.post('/availability', json={'availability': availability}, headers=_auth('user-1'))
    assert updated.status_code == 200
    assert updated.json()['message'] == 'Availability updated'

    other = client.get('/availability/user-1', headers=_auth('user-2'))
    assert other.json()['Friday']['slots'][0]['id'] == 'fri-1'


def test_invalid_availability_lists_problems(client: TestClient) -> None:
    response = client.post(
        '/availability',
        json={'availability': {'Monday': {'enabled': 'true', 'slots': []}}},
        headers=_auth('user-1'),
    )

    assert response.status_code == 400
    payload = response.json()
    assert payload['message'] == 'Invalid availability structure'
    assert 'Monday.enabled must be a boolean' in payload['details']
