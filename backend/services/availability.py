"""Weekly availability: one declarative schedule per user and calendar week."""

import logging
import re
from datetime import date
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.core.exceptions import ValidationError
from backend.core.timeutils import current_week_start, utcnow
from backend.models.availability import UserAvailability
from backend.models.profile import Profile

logger = logging.getLogger(__name__)

WEEKDAYS = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')
TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):[0-5][0-9]$')


def default_availability() -> dict[str, dict[str, Any]]:
    return {day: {'enabled': False, 'slots': []} for day in WEEKDAYS}


def is_valid_time(value: Any) -> bool:
    return isinstance(value, str) and TIME_PATTERN.match(value) is not None


def validate_availability(availability: Any) -> list[str]:
    """Return a list of problems with ``availability``; empty when it is well formed."""
    if not isinstance(availability, dict):
        return ['availability must be an object keyed by weekday']

    problems: list[str] = []
    missing = [day for day in WEEKDAYS if day not in availability]
    unexpected = sorted(str(key) for key in availability if key not in WEEKDAYS)
    if missing:
        problems.append(f'missing days: {", ".join(missing)}')
    if unexpected:
        problems.append(f'unexpected days: {", ".join(unexpected)}')

    for day in WEEKDAYS:
        day_availability = availability.get(day)
        if day_availability is None:
            continue
        if not isinstance(day_availability, dict):
            problems.append(f'{day} must be an object')
            continue
        if not isinstance(day_availability.get('enabled'), bool):
            problems.append(f'{day}.enabled must be a boolean')

        slots = day_availability.get('slots')
        if not isinstance(slots, list):
            problems.append(f'{day}.slots must be a list')
            continue

        for index, slot in enumerate(slots):
            prefix = f'{day}.slots[{index}]'
            if not isinstance(slot, dict):
                problems.append(f'{prefix} must be an object')
                continue
            if not isinstance(slot.get('id'), str) or not slot['id']:
                problems.append(f'{prefix}.id must be a non-empty string')
            for field in ('start', 'end'):
                if not is_valid_time(slot.get(field)):
                    problems.append(f'{prefix}.{field} must be HH:MM')

    return problems


def _find_week(db: Session, user_id: str, week_start: date) -> UserAvailability | None:
    return db.query(UserAvailability).filter(
        UserAvailability.user_id == user_id,
        UserAvailability.week_start_date == week_start,
    ).first()


def _upsert_week(
    db: Session,
    user_id: str,
    week_start: date,
    availability: dict[str, Any],
    overwrite: bool = True,
) -> UserAvailability:
    row = _find_week(db, user_id, week_start)
    if row is None:
        row = UserAvailability(user_id=user_id, week_start_date=week_start, availability=availability)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            # Another request created the week first.
            db.rollback()
            row = _find_week(db, user_id, week_start)
            if row is None:
                raise
            if overwrite:
                row.availability = availability
                row.updated_at = utcnow()
                db.commit()
    else:
        row.availability = availability
        row.updated_at = utcnow()
        db.commit()

    db.refresh(row)
    return row


def get_or_create_week(db: Session, user_id: str, today: date | None = None) -> dict[str, Any]:
    """Return the user's availability for the current week, creating the default row if absent."""
    week_start = current_week_start(today)
    existing = _find_week(db, user_id, week_start)
    if existing is not None:
        return existing.availability

    logger.info('Initializing default availability for user %s, week of %s', user_id, week_start)
    return _upsert_week(db, user_id, week_start, default_availability(), overwrite=False).availability


def ensure_profile(db: Session, user_id: str, email: str | None = None) -> Profile:
    profile = db.get(Profile, user_id)
    if profile is None:
        profile = Profile(id=user_id, email=email)
        db.add(profile)
        db.commit()
    return profile


def update_week(
    db: Session,
    user_id: str,
    availability: Any,
    email: str | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    problems = validate_availability(availability)
    if problems:
        raise ValidationError('Invalid availability structure', details=problems)

    ensure_profile(db, user_id, email=email)
    week_start = current_week_start(today)
    return _upsert_week(db, user_id, week_start, availability).availability
