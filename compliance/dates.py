"""Calendar date helpers.

Every date crossing the store boundary is a ``YYYY-MM-DD`` string; times of
day and timezones never take part in compliance decisions.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union

from dateutil.parser import isoparse

DATE_FORMAT = "%Y-%m-%d"

DateLike = Union[str, date, None]


def parse_iso_date(value: DateLike) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` value. Returns None for blank or invalid input."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        return None


def format_iso_date(value: Optional[date]) -> Optional[str]:
    return value.strftime(DATE_FORMAT) if value is not None else None


def resolve_today(today: Optional[date] = None) -> date:
    """Today's date unless an explicit one is given."""
    return today if today is not None else date.today()


def is_before_today(value: date, today: Optional[date] = None) -> bool:
    """True if the whole of ``value`` lies before the start of today."""
    return value < resolve_today(today)


def days_until(value: date, today: Optional[date] = None) -> int:
    """Whole days from today to ``value`` (negative once it has passed)."""
    return (value - resolve_today(today)).days


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 timestamp for created/uploaded/audit fields."""
    return (now or utc_now()).isoformat()


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_timestamp(value: Optional[str]) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Naive timestamps are taken as UTC. Missing or malformed values sort
    before every real timestamp.
    """
    if not value:
        return _EPOCH
    try:
        parsed = isoparse(value)
    except (ValueError, OverflowError):
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
