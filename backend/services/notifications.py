"""In-app notifications for booking events.

Services build :class:`NotificationMessage` objects and hand them back to the
route, which schedules :func:`deliver_notifications` as a background task.
Delivery is best effort: a failure is logged and never reaches the request
that triggered it.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from backend.database import SessionLocal
from backend.models.notification import Notification

logger = logging.getLogger(__name__)


class NotificationMessage(BaseModel):
    recipient_user_id: str
    recipient_email: str | None = None
    actor_user_id: str | None = None
    thread_id: str | None = None
    message: str
    type: str
    metadata: dict[str, Any] = Field(default_factory=dict)


def deliver_notifications(messages: list[NotificationMessage], session_factory=None) -> int:
    """Persist each message, returning how many were stored."""
    delivered = 0
    for message in messages:
        if deliver_notification(message, session_factory=session_factory):
            delivered += 1
    return delivered


def deliver_notification(message: NotificationMessage, session_factory=None) -> bool:
    db = (session_factory or SessionLocal)()
    try:
        db.add(
            Notification(
                user_id=message.recipient_user_id,
                action_performed_by=message.actor_user_id,
                thread_id=message.thread_id,
                message=message.message,
                type=message.type,
                metadata_=message.metadata,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            'Failed to store %s notification for user %s',
            message.type,
            message.recipient_user_id,
        )
        return False
    finally:
        db.close()

    logger.info('Stored %s notification for user %s', message.type, message.recipient_user_id)
    return True
