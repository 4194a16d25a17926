import logging
from datetime import date, datetime
from typing import Any

import pytz

logger = logging.getLogger(__name__)


def to_utc_datetime(dt: datetime) -> datetime:
    """Naive datetimes are taken as UTC, aware ones are converted to UTC."""
    if dt.tzinfo is None:
        return pytz.utc.localize(dt)
    return dt.astimezone(pytz.utc)


def from_sql(value: str) -> datetime:
    """Parse a sql timestamp (`2024-01-31 10:20:30[.ffffff][+00:00]`) or an iso string."""
    return to_utc_datetime(datetime.fromisoformat(value.strip()))


def from_date(value: date) -> datetime:
    if isinstance(value, datetime):
        return to_utc_datetime(value)
    return pytz.utc.localize(datetime(value.year, value.month, value.day))


def normalize_timestamp(value: Any) -> Any:
    """
    Converts a timestamp read from the database into a UTC aware datetime.

    Falsy values and shapes other than `str`, `date` and `datetime` are
    returned unchanged, as are strings that do not parse as a timestamp.
    """
    if not value:
        return value
    if isinstance(value, str):
        try:
            return from_sql(value)
        except ValueError:
            logger.warning("Cannot parse timestamp %r, leaving it untouched", value)
            return value
    if isinstance(value, date):
        return from_date(value)
    return value


def now_utc() -> datetime:
    return datetime.now(pytz.utc)
