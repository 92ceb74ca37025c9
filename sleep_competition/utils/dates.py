"""Calendar-day helpers. Competitions compare days only, never times."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo


def parse_day(value: str | date | None) -> date | None:
    """Parses ``YYYY-MM-DD`` or an ISO-8601 timestamp into a calendar day.

    Aware timestamps are converted to UTC before the time is stripped.
    Returns None for anything unparseable.
    """
    if isinstance(value, datetime):
        return _strip_time(value)
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return _strip_time(datetime.fromisoformat(text))
    except ValueError:
        return None


def format_day(day: date) -> str:
    return day.isoformat()


def today_clock(tz_name: str = "UTC") -> Callable[[], date]:
    tz = ZoneInfo(tz_name)
    return lambda: datetime.now(tz).date()


def _strip_time(moment: datetime) -> date:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.date()
