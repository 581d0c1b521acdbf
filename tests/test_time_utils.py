"""Unit tests for clock, timezone and interval helpers."""
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from app.core.exceptions import ValidationError
from app.utils.time_utils import (
    FrozenClock,
    ensure_utc,
    get_zone,
    is_valid_timezone,
    iter_dates,
    local_to_utc,
    merge_intervals,
    overlaps,
    parse_time,
    subtract_intervals,
    to_local,
    validate_time_range,
)

LONDON = ZoneInfo("Europe/London")


def at(hour, minute=0):
    return datetime(2026, 3, 9, hour, minute)


class TestParseTime:

    def test_hours_and_minutes(self):
        assert parse_time("09:30") == time(9, 30)

    def test_with_seconds(self):
        assert parse_time("23:59:59") == time(23, 59, 59)

    def test_time_object_passes_through(self):
        assert parse_time(time(8, 15, 0, 500)) == time(8, 15)

    @pytest.mark.parametrize("value", ["9:30", "24:00", "12:60", "noon", "", None, 930])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValidationError):
            parse_time(value)

    def test_range_must_be_increasing(self):
        validate_time_range(time(9), time(10))
        with pytest.raises(ValidationError):
            validate_time_range(time(10), time(10))


class TestTimezones:

    def test_naive_values_are_taken_as_utc(self):
        assert ensure_utc(datetime(2026, 3, 2, 8)) == datetime(2026, 3, 2, 8, tzinfo=timezone.utc)

    def test_aware_values_are_converted(self):
        value = datetime(2026, 7, 1, 10, tzinfo=LONDON)
        assert ensure_utc(value) == datetime(2026, 7, 1, 9, tzinfo=timezone.utc)

    def test_local_to_utc_in_summer_time(self):
        assert local_to_utc(date(2026, 7, 1), time(9), LONDON) == datetime(2026, 7, 1, 8, tzinfo=timezone.utc)

    def test_to_local_across_spring_forward(self):
        before = datetime(2026, 3, 29, 0, 30, tzinfo=timezone.utc)
        after = datetime(2026, 3, 29, 1, 30, tzinfo=timezone.utc)
        assert to_local(before, LONDON) == datetime(2026, 3, 29, 0, 30)
        assert to_local(after, LONDON) == datetime(2026, 3, 29, 2, 30)

    def test_unknown_zone_falls_back_to_default(self):
        assert get_zone("Mars/Olympus_Mons") == ZoneInfo("Europe/London")
        assert get_zone(None) == ZoneInfo("Europe/London")

    def test_is_valid_timezone(self):
        assert is_valid_timezone("Asia/Tokyo")
        assert not is_valid_timezone("Nowhere/Special")


class TestFrozenClock:

    def test_advance_and_set(self):
        clock = FrozenClock(datetime(2026, 3, 2, 8))
        assert clock.now() == datetime(2026, 3, 2, 8, tzinfo=timezone.utc)

        clock.advance(hours=2, minutes=30)
        assert clock.now() == datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc)

        clock.set(datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert clock.now().year == 2026 and clock.now().month == 1


class TestIntervals:

    def test_overlap_is_half_open(self):
        assert overlaps(at(9), at(10), at(9, 30), at(11))
        assert not overlaps(at(9), at(10), at(10), at(11))

    def test_merge_joins_touching_and_overlapping(self):
        merged = merge_intervals([(at(13), at(14)), (at(9), at(10)), (at(10), at(11)), (at(10, 30), at(12))])
        assert merged == [(at(9), at(12)), (at(13), at(14))]

    def test_merge_drops_empty_intervals(self):
        assert merge_intervals([(at(10), at(10)), (at(11), at(10))]) == []

    def test_subtract_splits_windows(self):
        free = subtract_intervals([(at(9), at(17))], [(at(9, 45), at(11, 15)), (at(12), at(13))])
        assert free == [(at(9), at(9, 45)), (at(11, 15), at(12)), (at(13), at(17))]

    def test_subtract_fully_covered_window(self):
        assert subtract_intervals([(at(9), at(10))], [(at(8), at(11))]) == []

    def test_subtract_with_nothing_occupied(self):
        assert subtract_intervals([(at(9), at(12)), (at(14), at(16))], []) == [
            (at(9), at(12)), (at(14), at(16)),
        ]

    def test_iter_dates_is_inclusive(self):
        assert list(iter_dates(date(2026, 2, 27), date(2026, 3, 2))) == [
            date(2026, 2, 27), date(2026, 2, 28), date(2026, 3, 1), date(2026, 3, 2),
        ]
