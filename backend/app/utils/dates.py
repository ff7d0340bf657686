"""Date and timezone-offset helpers for local-day windows."""

import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MIN_TZ_OFFSET = -720
MAX_TZ_OFFSET = 840


def parse_date_param(value: Optional[str]) -> Optional[date]:
    """
    Parse a YYYY-MM-DD query value. Missing means today (UTC).
    Returns None if the value is malformed or not a real calendar date.
    """
    if value is None or value == "":
        return utcnow().date()
    if not DATE_RE.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_tz_offset(value) -> int:
    """
    Parse a browser-style timezone offset in minutes (UTC - local, so UTC+2 is -120).
    Non-numeric input falls back to 0; the result is clamped to [-720, 840].
    """
    if value is None:
        return 0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(parsed):
        return 0
    return max(MIN_TZ_OFFSET, min(MAX_TZ_OFFSET, int(parsed)))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (with 'Z' or offset) into an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).isoformat().replace("+00:00", "Z")


def utc_range_for_local_days(start_day: date, end_day: date, tz_offset_minutes: int) -> Tuple[datetime, datetime]:
    """UTC window covering local start_day 00:00:00 through end_day 23:59:59.999."""
    shift = timedelta(minutes=tz_offset_minutes)
    start = datetime.combine(start_day, time.min, tzinfo=timezone.utc) + shift
    end = datetime.combine(end_day, time(23, 59, 59, 999000), tzinfo=timezone.utc) + shift
    return start, end


def utc_day_range(day: date, tz_offset_minutes: int) -> Tuple[datetime, datetime]:
    return utc_range_for_local_days(day, day, tz_offset_minutes)


def local_date_key(moment: datetime, tz_offset_minutes: int) -> date:
    """Calendar date of a UTC moment as seen at the given offset."""
    return (as_utc(moment) - timedelta(minutes=tz_offset_minutes)).date()


def last_seven_dates(end_day: date) -> List[date]:
    return [end_day - timedelta(days=i) for i in range(6, -1, -1)]
