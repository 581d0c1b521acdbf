# app/services/availability/slot_generator.py
"""
Slot generation.

Turns the layered availability sources of one practitioner (weekly rules,
date overrides, external busy intervals and blocking appointments) into an
ordered list of free slots. Everything here is a pure function of its
arguments: callers load the rows, pass in "now", and get the same answer for
the same inputs.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from app.utils.time_utils import (
    Interval,
    ensure_utc,
    get_zone,
    iter_dates,
    local_today,
    subtract_intervals,
    to_local,
)

END_OF_DAY = time(23, 59, 59)


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime  # local wall-clock
    end: datetime

    @property
    def date(self) -> date:
        return self.start.date()

    def to_dict(self) -> Dict[str, str]:
        return {
            "date": self.start.date().isoformat(),
            "start_time": self.start.strftime("%H:%M"),
            "end_time": self.end.strftime("%H:%M"),
        }


@dataclass(frozen=True)
class BookingWindow:
    """Bookable range for one practitioner at one instant, in local time"""
    today: date
    last_day: date
    earliest_start: datetime
    latest_end: datetime

    def contains(self, start: datetime, end: datetime) -> bool:
        return start >= self.earliest_start and end <= self.latest_end


def booking_window(settings, now: datetime) -> BookingWindow:
    zone = get_zone(settings.timezone)
    today = local_today(now, zone)
    last_day = today + timedelta(days=settings.max_booking_days_ahead)
    earliest = to_local(ensure_utc(now) + timedelta(hours=settings.min_booking_notice_hours), zone)
    return BookingWindow(
        today=today,
        last_day=last_day,
        earliest_start=earliest,
        latest_end=datetime.combine(last_day, END_OF_DAY),
    )


def index_overrides(overrides: Iterable) -> Dict[date, object]:
    return {override.date: override for override in overrides}


def day_windows(day: date, rules: Sequence, overrides_by_date: Dict[date, object]) -> List[Interval]:
    """Raw availability for one local date. An override replaces the weekly rules outright."""
    override = overrides_by_date.get(day)
    if override is not None:
        if not override.is_available or override.start_time is None or override.end_time is None:
            return []
        return [(datetime.combine(day, override.start_time), datetime.combine(day, override.end_time))]

    weekday = day.weekday()
    return [
        (datetime.combine(day, rule.start_time), datetime.combine(day, rule.end_time))
        for rule in rules
        if rule.is_active and rule.day_of_week == weekday
    ]


def _expand_and_clip(start: datetime, end: datetime, buffer: timedelta, day: date) -> Optional[Interval]:
    day_start = datetime.combine(day, time.min)
    day_end = day_start + timedelta(days=1)
    start, end = max(start - buffer, day_start), min(end + buffer, day_end)
    if start >= end:
        return None
    return start, end


def busy_occupied(day: date, busy_intervals: Iterable[Interval], buffer_minutes: int, zone) -> List[Interval]:
    """External busy intervals (UTC instants) touching `day`, buffered and clipped to it"""
    buffer = timedelta(minutes=buffer_minutes)
    occupied = []
    for starts_at, ends_at in busy_intervals:
        piece = _expand_and_clip(to_local(starts_at, zone), to_local(ends_at, zone), buffer, day)
        if piece:
            occupied.append(piece)
    return occupied


def appointment_occupied(day: date, appointments: Iterable, buffer_minutes: int) -> List[Interval]:
    """Blocking appointments on `day`, buffered and clipped to it"""
    buffer = timedelta(minutes=buffer_minutes)
    occupied = []
    for appointment in appointments:
        if appointment.session_date != day:
            continue
        piece = _expand_and_clip(
            datetime.combine(day, appointment.start_time),
            datetime.combine(day, appointment.end_time),
            buffer,
            day,
        )
        if piece:
            occupied.append(piece)
    return occupied


def generate_slots(
    rules: Sequence,
    overrides: Iterable,
    busy_intervals: Sequence[Interval],
    blocking_appointments: Sequence,
    settings,
    date_from: date,
    date_to: date,
    now: datetime,
) -> List[Slot]:
    """
    Free slots between date_from and date_to (inclusive, local dates).

    The range is clamped to the practitioner's booking window. A slot is
    emitted only when it fits inside a free sub-interval, starts no earlier
    than now + min_booking_notice_hours and ends no later than the last
    bookable day at 23:59:59.
    """
    zone = get_zone(settings.timezone)
    window = booking_window(settings, now)
    duration = timedelta(minutes=settings.slot_duration_minutes)
    overrides_by_date = index_overrides(overrides)

    first_day = max(date_from, window.today)
    last_day = min(date_to, window.last_day)

    slots: List[Slot] = []
    for day in iter_dates(first_day, last_day):
        windows = day_windows(day, rules, overrides_by_date)
        if not windows:
            continue

        occupied = busy_occupied(day, busy_intervals, settings.buffer_minutes, zone)
        occupied += appointment_occupied(day, blocking_appointments, settings.buffer_minutes)

        for free_start, free_end in subtract_intervals(windows, occupied):
            cursor = free_start
            while cursor + duration <= free_end:
                slot_end = cursor + duration
                if window.contains(cursor, slot_end):
                    slots.append(Slot(cursor, slot_end))
                cursor = slot_end

    slots.sort()
    return slots
