from datetime import datetime, timedelta, timezone

import pytest

from opendental_adapter.exceptions import InvalidDuration
from opendental_adapter.intervals import day_bounds, end_hour, expand, overlaps, to_interval
from opendental_adapter.models import TimeInterval

from conftest import at

START = at(9)


@pytest.mark.parametrize("minutes", [1, 5, 30, 240, 24 * 60])
def test_to_interval_end_after_start(minutes):
    interval = to_interval(START, minutes)
    assert interval.end > interval.start
    assert interval.end - interval.start == timedelta(minutes=minutes)


@pytest.mark.parametrize("minutes", [0, -15])
def test_to_interval_rejects_non_positive_duration(minutes):
    with pytest.raises(InvalidDuration) as excinfo:
        to_interval(START, minutes)
    assert excinfo.value.duration_minutes == minutes


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((at(9), 30), (at(9, 15), 30), True),
        ((at(9), 120), (at(9, 30), 15), True),
        ((at(9), 30), (at(9), 30), True),
        ((at(9), 30), (at(10), 30), False),
        ((at(9), 30), (at(9, 30), 30), False),
    ],
)
def test_overlaps_is_symmetric(a, b, expected):
    first, second = to_interval(*a), to_interval(*b)
    assert overlaps(first, second) is expected
    assert overlaps(second, first) is expected


def test_back_to_back_intervals_do_not_overlap():
    first = to_interval(at(9), 30)
    second = TimeInterval(start=first.end, end=first.end + timedelta(minutes=30))
    assert not overlaps(first, second)


def test_expand_pads_both_sides():
    padded = expand(to_interval(at(9), 30), 10)
    assert padded.start == at(8, 50)
    assert padded.end == at(9, 40)


def test_day_bounds_keeps_timezone():
    tz = timezone(timedelta(hours=-5))
    start, end = day_bounds(datetime(2025, 8, 18, 14, 45, tzinfo=tz))
    assert start == datetime(2025, 8, 18, tzinfo=tz)
    assert end == datetime(2025, 8, 19, tzinfo=tz)


def test_end_hour_past_midnight_counts_from_start_date():
    assert end_hour(to_interval(at(23, 30), 60)) == 24
    assert end_hour(to_interval(at(16, 30), 30)) == 17
