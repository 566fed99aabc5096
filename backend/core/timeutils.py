from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def current_week_start(today: date | None = None) -> date:
    today = today or utcnow().date()
    return today - timedelta(days=today.weekday())


def parse_hhmm(value: str) -> time:
    hours, minutes = value.split(':')[:2]
    return time(int(hours), int(minutes))


def minutes_since_midnight(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes elapsed from ``start`` to ``end``, truncated toward zero."""
    return int((end - start).total_seconds() / 60)


def format_time_ampm(value: time | str) -> str:
    if isinstance(value, str):
        value = parse_hhmm(value)
    period = 'PM' if value.hour >= 12 else 'AM'
    display_hour = value.hour % 12 or 12
    return f'{display_hour}:{value.minute:02d} {period}'


def format_date_readable(value: date) -> str:
    return f'{value:%A}, {value:%B} {value.day}, {value.year}'
