"""
Date and time helpers.

All timestamps are stored as naive UTC datetimes. Event dates coming from
the two providers arrive in different shapes (ISO strings with or without a
time component, ``date`` objects), so matching compares calendar dates only.
"""
from datetime import date, datetime, timezone
from typing import Optional, Union

DateLike = Union[str, date, datetime, None]


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (database convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_calendar_date(value: DateLike) -> Optional[str]:
    """
    Reduce a date-like value to its ``YYYY-MM-DD`` calendar date.

    Time and offset information is dropped without conversion: a provider
    timestamp of ``2026-02-14T08:00:00-06:00`` is the 14th regardless of
    where the server runs.

    Examples:
        >>> to_calendar_date("2026-02-14T08:00:00")
        '2026-02-14'
        >>> to_calendar_date(date(2026, 2, 14))
        '2026-02-14'
        >>> to_calendar_date("") is None
        True
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    value = str(value).strip()
    if len(value) < 10:
        return None
    return value[:10]

