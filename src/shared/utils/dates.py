"""UTC date helpers shared by the stock services.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)`` columns,
so every comparison goes through ``as_utc``.
"""

from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open UTC range ``[day 00:00, next day 00:00)``."""
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def utc_date(value: datetime) -> date:
    return as_utc(value).date()


def date_range(start: date, end: date) -> list[date]:
    """Inclusive list of days from ``start`` to ``end`` in ascending order."""
    days: list[date] = []
    current = start
    while current <= end:
        days.append(current)
        current += timedelta(days=1)
    return days
