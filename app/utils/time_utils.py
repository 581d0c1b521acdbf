# app/utils/time_utils.py
"""
Clock and timezone helpers.

All scheduling arithmetic happens on naive datetimes expressed in the
practitioner's local wall-clock. Instants coming from storage or external
calendars are normalised to UTC first and then converted with to_local().
"""
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config.settings import get_settings
from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

Interval = Tuple[datetime, datetime]

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


class SystemClock:
    """Wall clock, always timezone-aware UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FrozenClock:
    """Clock pinned to a fixed instant; tests move it explicitly"""

    def __init__(self, now: datetime):
        self._now = ensure_utc(now)

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = ensure_utc(now)

    def advance(self, **kwargs) -> None:
        self._now = self._now + timedelta(**kwargs)


_default_clock = SystemClock()


def get_clock():
    """Clock dependency for FastAPI and tasks"""
    return _default_clock


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values (SQLite drops tzinfo) and convert aware ones"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_zone(name: Optional[str]) -> ZoneInfo:
    """Resolve an IANA zone name, falling back to DEFAULT_TIMEZONE"""
    fallback = get_settings().DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name or fallback)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, using {fallback}")
        return ZoneInfo(fallback)


def is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def to_local(instant: datetime, zone: ZoneInfo) -> datetime:
    """Convert an instant to naive local wall-clock time in `zone`"""
    return ensure_utc(instant).astimezone(zone).replace(tzinfo=None)


def local_to_utc(day: date, at: time, zone: ZoneInfo) -> datetime:
    """Interpret a local wall-clock (date, time) in `zone` as a UTC instant"""
    return datetime.combine(day, at, tzinfo=zone).astimezone(timezone.utc)


def local_today(now: datetime, zone: ZoneInfo) -> date:
    return to_local(now, zone).date()


def parse_time(value) -> time:
    """Parse HH:MM or HH:MM:SS into a time"""
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time value: {value!r}")
    match = _TIME_RE.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid time format: {value!r} (expected HH:MM)")
    hours, minutes, seconds = match.groups()
    return time(int(hours), int(minutes), int(seconds or 0))


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def validate_time_range(start: time, end: time) -> None:
    if start >= end:
        raise ValidationError(
            f"Start time {format_time(start)} must be before end time {format_time(end)}"
        )


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open [start, end) overlap test"""
    return a_start < b_end and b_start < a_end


def merge_intervals(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort and merge overlapping or touching intervals"""
    merged: List[Interval] = []
    for start, end in sorted(i for i in intervals if i[0] < i[1]):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def subtract_intervals(windows: Iterable[Interval], occupied: Iterable[Interval]) -> List[Interval]:
    """Remove every occupied interval from the windows; returns free pieces in order"""
    blocked = merge_intervals(occupied)
    free: List[Interval] = []
    for window_start, window_end in sorted(windows):
        cursor = window_start
        for busy_start, busy_end in blocked:
            if busy_end <= cursor:
                continue
            if busy_start >= window_end:
                break
            if busy_start > cursor:
                free.append((cursor, busy_start))
            cursor = max(cursor, busy_end)
            if cursor >= window_end:
                break
        if cursor < window_end:
            free.append((cursor, window_end))
    return free


def iter_dates(start: date, end: date):
    """Inclusive date range"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
