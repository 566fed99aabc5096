"""Zoom REST API client.

Exchanges Server-to-Server OAuth credentials for short-lived bearer tokens and
creates/deletes the scheduled meetings that back confirmed bookings.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any

import httpx

from backend.core import config

logger = logging.getLogger(__name__)

SCHEDULED_MEETING_TYPE = 2
PASSWORD_ALPHABET = string.ascii_uppercase + string.digits
PASSWORD_LENGTH = 6
TOKEN_REFRESH_MARGIN_SECONDS = 60

MEETING_SETTINGS: dict[str, Any] = {
    'host_video': True,
    'participant_video': True,
    'join_before_host': True,
    'mute_upon_entry': True,
    'waiting_room': True,
    'auto_recording': 'none',
    'meeting_authentication': True,
    'enforce_login': False,
    'alternative_hosts': '',
    'participant_can_start_meeting': False,
    'waiting_room_settings': {
        'participants_to_place_in_waiting_room': 3,
    },
}


class ZoomError(RuntimeError):
    """Raised when the Zoom API is unreachable or responds with an error."""

    def __init__(self, message: str, status_code: int | None = None, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


@dataclass(frozen=True)
class ZoomMeeting:
    id: str
    join_url: str
    host_url: str
    password: str


def generate_meeting_password() -> str:
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(PASSWORD_LENGTH))


def _error_body(response: httpx.Response) -> dict[str, Any]:
    try:
        parsed = response.json()
    except ValueError:
        return {'raw': response.text[:500]}
    return parsed if isinstance(parsed, dict) else {'raw': response.text[:500]}


class ZoomClient:
    """HTTP client for the Zoom meetings API."""

    def __init__(
        self,
        *,
        account_id: str,
        client_id: str,
        client_secret: str,
        oauth_url: str = 'https://zoom.us/oauth/token',
        api_base_url: str = 'https://api.zoom.us/v2',
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._account_id = account_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._oauth_url = oauth_url
        self._api_base_url = api_base_url.rstrip('/')
        self._timeout = timeout
        self._transport = transport
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    def _http(self) -> httpx.Client:
        return httpx.Client(timeout=self._timeout, transport=self._transport)

    def get_access_token(self) -> str:
        """Return a bearer token, reusing the previous one until shortly before it expires."""
        now = time.monotonic()
        if self._access_token is not None and now < self._token_expires_at:
            return self._access_token

        try:
            with self._http() as client:
                response = client.post(
                    self._oauth_url,
                    auth=(self._client_id, self._client_secret),
                    data={
                        'grant_type': 'account_credentials',
                        'account_id': self._account_id,
                    },
                )
        except httpx.TransportError as exc:
            logger.error('Zoom OAuth endpoint unreachable: %s', exc)
            raise ZoomError(f'Failed to get Zoom access token: {exc}') from exc

        if response.status_code >= 400:
            body = _error_body(response)
            description = body.get('error_description') or body.get('error') or response.text
            logger.error('Zoom OAuth error %s: %s', response.status_code, description)
            raise ZoomError(
                f'Failed to get Zoom access token: {description}',
                status_code=response.status_code,
                details=body,
            )

        payload = response.json()
        token = payload.get('access_token')
        if not token:
            raise ZoomError('Failed to get Zoom access token: response had no access_token')

        expires_in = int(payload.get('expires_in') or 0)
        self._access_token = token
        self._token_expires_at = now + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0)
        return token

    def _request(self, method: str, path: str, *, json_body: dict[str, Any] | None = None) -> httpx.Response:
        url = f"{self._api_base_url}/{path.lstrip('/')}"
        headers = {'Authorization': f'Bearer {self.get_access_token()}'}

        try:
            with self._http() as client:
                response = client.request(method, url, headers=headers, json=json_body)
        except httpx.TransportError as exc:
            logger.error('Zoom API unreachable for %s %s: %s', method, path, exc)
            raise ZoomError(f'Zoom API unreachable: {exc}') from exc

        if response.status_code >= 400:
            body = _error_body(response)
            logger.error(
                'Zoom API error %s for %s %s: %s',
                response.status_code,
                method,
                path,
                response.text[:500],
            )
            raise ZoomError(
                f"Zoom API error: {body.get('message') or 'Unknown error'}",
                status_code=response.status_code,
                details=body,
            )

        return response

    def create_meeting(
        self,
        *,
        topic: str,
        start_time: datetime,
        duration_minutes: int,
        host_email: str,
        attendee_email: str,
        timezone: str = 'UTC',
    ) -> ZoomMeeting:
        body = {
            'topic': topic,
            'type': SCHEDULED_MEETING_TYPE,
            'start_time': start_time.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'duration': duration_minutes,
            'timezone': timezone,
            'password': generate_meeting_password(),
            'settings': MEETING_SETTINGS,
            'host_email': host_email,
            'attendees': [{'email': attendee_email}],
        }
        data = self._request('POST', 'users/me/meetings', json_body=body).json()

        meeting = ZoomMeeting(
            id=str(data['id']),
            join_url=data.get('join_url', ''),
            host_url=data.get('host_url') or data.get('start_url', ''),
            password=data.get('password') or body['password'],
        )
        logger.info('Created Zoom meeting %s (%s)', meeting.id, topic)
        return meeting

    def delete_meeting(self, meeting_id: str) -> bool:
        """Delete a meeting. Failures are logged and reported as ``False``, never raised."""
        try:
            self._request('DELETE', f'meetings/{meeting_id}')
        except ZoomError as exc:
            logger.error('Failed to delete Zoom meeting %s: %s', meeting_id, exc.message)
            return False

        logger.info('Deleted Zoom meeting %s', meeting_id)
        return True


@lru_cache
def get_zoom_client() -> ZoomClient:
    return ZoomClient(
        account_id=config.ZOOM_ACCOUNT_ID,
        client_id=config.ZOOM_CLIENT_ID,
        client_secret=config.ZOOM_CLIENT_SECRET,
        oauth_url=config.ZOOM_OAUTH_URL,
        api_base_url=config.ZOOM_API_BASE_URL,
        timeout=config.ZOOM_HTTP_TIMEOUT_SECONDS,
    )
