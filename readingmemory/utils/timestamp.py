"""Convert Firestore document data into JSON-safe values.

Firestore hands timestamps back as ``DatetimeWithNanoseconds`` (a ``datetime``
subclass). Older documents written by the mobile client may also carry raw
Unix seconds under date-like keys. Everything is rendered as an ISO-8601 UTC
string with millisecond precision, e.g. ``2024-01-01T00:00:00.000Z``.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

# Upper bound for numbers treated as Unix seconds (roughly year 2033).
MAX_EPOCH_SECONDS = 2_000_000_000


def to_iso_string(value) -> str:
    """Render a ``datetime``/``date`` as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.combine(value, time.min)

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f'{dt.microsecond // 1000:03d}Z'


def utc_now_iso() -> str:
    return to_iso_string(datetime.now(timezone.utc))


def _is_timestamp(value) -> bool:
    # datetime is a subclass of date, so this covers both
    return isinstance(value, date)


def _looks_like_epoch(key: str, value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    name = key.lower()
    if 'date' not in name and 'at' not in name:
        return False
    return 0 < value < MAX_EPOCH_SECONDS


def normalize_timestamps(data: Any) -> Any:
    """Return a copy of ``data`` with every timestamp turned into a string.

    Lists and dicts are walked recursively; the input is never mutated.
    Numbers under keys containing "date" or "at" are read as Unix seconds.
    """
    if data is None:
        return None

    if isinstance(data, (list, tuple)):
        return [normalize_timestamps(item) for item in data]

    if _is_timestamp(data):
        return to_iso_string(data)

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if _is_timestamp(value):
                result[key] = to_iso_string(value)
            elif _looks_like_epoch(str(key), value):
                result[key] = to_iso_string(datetime.fromtimestamp(value, tz=timezone.utc))
            elif isinstance(value, (dict, list, tuple)):
                result[key] = normalize_timestamps(value)
            else:
                result[key] = value
        return result

    return data


def start_of_day(value: datetime) -> datetime:
    """Midnight UTC of the day ``value`` falls on."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def day_key(value: datetime) -> str:
    """``YYYY-MM-DD`` of ``value`` in UTC."""
    return start_of_day(value).strftime('%Y-%m-%d')


def period_start(period: str, now: datetime) -> datetime:
    """Start of the trailing ``week``, ``month`` or ``year`` ending at ``now``."""
    if period == 'week':
        return now - timedelta(days=7)
    if period == 'month':
        year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
        return now.replace(year=year, month=month, day=min(now.day, calendar.monthrange(year, month)[1]))
    if period == 'year':
        # Feb 29 falls back to Feb 28
        day = min(now.day, calendar.monthrange(now.year - 1, now.month)[1])
        return now.replace(year=now.year - 1, day=day)
    raise ValueError(f'Unknown period: {period}')
