import json
import logging
import time

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from backend.core import config
from backend.core.exceptions import InternalError, UnauthorizedError
from backend.database import SessionLocal
from backend.services import meeting_webhooks

logger = logging.getLogger(__name__)

router = APIRouter(tags=['webhooks'])


def process_event(event: meeting_webhooks.WebhookEvent) -> str:
    db = SessionLocal()
    try:
        return meeting_webhooks.handle_event(db, event)
    finally:
        db.close()


@router.post('/zoom')
async def zoom_webhook(request: Request):
    raw_body = await request.body()
    timestamp = request.headers.get('x-zm-request-timestamp')
    signature = request.headers.get('x-zm-signature')

    if not meeting_webhooks.verify_signature(config.ZOOM_WEBHOOK_SECRET, timestamp, raw_body, signature):
        logger.warning('Rejected Zoom webhook with invalid signature')
        raise UnauthorizedError('Unauthorized')

    if not meeting_webhooks.is_timestamp_fresh(timestamp, time.time(), config.ZOOM_WEBHOOK_MAX_AGE_SECONDS):
        logger.warning('Rejected Zoom webhook with stale timestamp %s', timestamp)
        raise UnauthorizedError('Unauthorized')

    try:
        body = json.loads(raw_body)
    except ValueError:
        logger.warning('Ignoring Zoom webhook with a body that is not JSON')
        return {'success': True, 'result': meeting_webhooks.OUTCOME_IGNORED}

    event = meeting_webhooks.parse_event(body)
    if event is None:
        logger.warning('Ignoring malformed Zoom webhook payload: %s', str(body)[:200])
        return {'success': True, 'result': meeting_webhooks.OUTCOME_IGNORED}

    logger.info('Received Zoom webhook event %s for meeting %s', event.event, event.meeting_id)
    try:
        outcome = await run_in_threadpool(process_event, event)
    except Exception as exc:
        logger.exception('Error handling Zoom webhook %s for meeting %s', event.event, event.meeting_id)
        raise InternalError('Internal server error') from exc

    return {'success': True, 'result': outcome}
