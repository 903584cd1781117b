from __future__ import annotations

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

TIME_FORMATS = ("%H:%M", "%H:%M:%S")


def today_in(timezone: ZoneInfo) -> date:
    return datetime.now(timezone).date()


def parse_date_value(value: date | str) -> date:
    """Accept a date or an ISO `YYYY-MM-DD` string (a trailing time part is ignored)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Unsupported date value: {value!r}")


def parse_time_value(value: time | str) -> time:
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if isinstance(value, str):
        text = value.strip()
        for fmt in TIME_FORMATS:
            try:
                return datetime.strptime(text, fmt).time()
            except ValueError:
                continue
    raise ValueError(f"Unsupported time value: {value!r}")


def format_time(value: time) -> str:
    return value.strftime("%H:%M")
