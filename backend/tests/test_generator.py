from datetime import date, timedelta
from unittest.mock import MagicMock

import pytest

from venue_slots.services.slots.config import time_str_to_minutes
from venue_slots.services.slots.directory import CourtInfo, get_day_intervals
from venue_slots.services.slots.errors import CourtNotFound
from venue_slots.services.slots.generator import generate_slots, generation_dates, tile_window
from venue_slots.services.slots.types import AVAILABLE, MAINTENANCE, RecurringPattern

MONDAY = date(2030, 1, 7)


def _directory(**court_kwargs):
    values = dict(
        id=1, venue_id=7, owner_id=100, price_per_hour=100.0,
        availability={"monday": {"is_open": True, "hours": [{"start": "09:00", "end": "17:00"}]}},
    )
    values.update(court_kwargs)
    directory = MagicMock()
    directory.get_court.return_value = CourtInfo(**values)
    return directory


def _times(slots):
    return [(s.start_time, s.end_time) for s in slots]


def test_hourly_slots_for_open_day():
    slots = generate_slots(_directory(), 1, MONDAY, MONDAY, 60)

    assert len(slots) == 8
    assert slots[0].start_time == "09:00"
    assert slots[-1].end_time == "17:00"
    assert all(s.status == AVAILABLE and s.price == 100.0 for s in slots)
    assert all(s.court_id == 1 and s.venue_id == 7 and s.date == "2030-01-07" for s in slots)


def test_slots_are_consecutive():
    slots = generate_slots(_directory(), 1, MONDAY, MONDAY, 30)

    assert len(slots) == 16
    for prev, cur in zip(slots, slots[1:]):
        assert cur.start_time == prev.end_time


def test_trailing_remainder_dropped():
    directory = _directory(availability={"monday": {"is_open": True, "hours": [{"start": "09:00", "end": "10:30"}]}})

    slots = generate_slots(directory, 1, MONDAY, MONDAY, 60)

    assert _times(slots) == [("09:00", "10:00")]


def test_window_shorter_than_slot_yields_nothing():
    assert tile_window("09:00", "09:45", 60) == []


def test_multiple_windows_per_day():
    directory = _directory(availability={
        "monday": {"is_open": True, "hours": [
            {"start": "18:00", "end": "22:00"},
            {"start": "06:00", "end": "09:00"},
        ]},
    })

    slots = generate_slots(directory, 1, MONDAY, MONDAY, 60)

    assert len(slots) == 7
    assert _times(slots)[:3] == [("06:00", "07:00"), ("07:00", "08:00"), ("08:00", "09:00")]
    assert ("12:00", "13:00") not in _times(slots)


@pytest.mark.parametrize("duration", [15, 30, 45, 60, 90, 120])
def test_no_overlapping_slots_with_overlapping_windows(duration):
    directory = _directory(availability={
        "monday": {"is_open": True, "hours": [
            {"start": "08:00", "end": "12:00"},
            {"start": "10:00", "end": "14:00"},
            {"start": "08:00", "end": "12:00"},
        ]},
    })

    slots = generate_slots(directory, 1, MONDAY, MONDAY, duration)
    spans = [(time_str_to_minutes(s.start_time), time_str_to_minutes(s.end_time)) for s in slots]

    for i, (s1, e1) in enumerate(spans):
        assert e1 - s1 == duration
        for s2, e2 in spans[i + 1:]:
            assert not (s1 < e2 and s2 < e1)


def test_closed_and_missing_days_yield_nothing():
    directory = _directory(availability={
        "monday": {"is_open": False, "hours": [{"start": "09:00", "end": "17:00"}]},
    })

    assert generate_slots(directory, 1, MONDAY, MONDAY + timedelta(days=1), 60) == []


def test_date_range_covers_each_day():
    directory = _directory(availability={
        day: {"is_open": True, "hours": [{"start": "10:00", "end": "12:00"}]}
        for day in ("monday", "tuesday", "wednesday")
    })

    slots = generate_slots(directory, 1, MONDAY, MONDAY + timedelta(days=6), 60)

    assert sorted({s.date for s in slots}) == ["2030-01-07", "2030-01-08", "2030-01-09"]
    assert len(slots) == 6


def test_unknown_court():
    directory = MagicMock()
    directory.get_court.return_value = None

    with pytest.raises(CourtNotFound):
        generate_slots(directory, 99, MONDAY, MONDAY, 60)


@pytest.mark.parametrize("duration,start,end", [
    (0, MONDAY, MONDAY),
    (-30, MONDAY, MONDAY),
    (60, MONDAY + timedelta(days=1), MONDAY),
])
def test_invalid_arguments(duration, start, end):
    with pytest.raises(ValueError):
        generate_slots(_directory(), 1, start, end, duration)


def test_custom_price_function():
    price_fn = MagicMock(side_effect=lambda day, start, end, duration: (42.0, start >= "12:00"))

    slots = generate_slots(_directory(), 1, MONDAY, MONDAY, 60, price_fn=price_fn)

    assert price_fn.call_count == 8
    assert all(s.price == 42.0 for s in slots)
    assert [s.is_peak_hour for s in slots] == [False, False, False, True, True, True, True, True]


def test_slots_in_maintenance_window():
    directory = _directory(maintenance={
        "is_under_maintenance": True,
        "start": "2030-01-07T12:00:00",
        "end": "2030-01-07T14:00:00",
        "reason": "Resurfacing",
    })

    slots = generate_slots(directory, 1, MONDAY, MONDAY, 60)
    in_maintenance = [s for s in slots if s.status == MAINTENANCE]

    assert _times(in_maintenance) == [("12:00", "13:00"), ("13:00", "14:00")]
    assert all(s.block_type == "maintenance" and s.block_reason == "Resurfacing" for s in in_maintenance)


def test_weekly_recurrence_with_exception():
    pattern = RecurringPattern(frequency="weekly", exceptions=(MONDAY + timedelta(weeks=1),))

    slots = generate_slots(_directory(), 1, MONDAY, MONDAY + timedelta(weeks=4), 60, recurrence=pattern)

    assert sorted({s.date for s in slots}) == ["2030-01-07", "2030-01-21", "2030-01-28", "2030-02-04"]
    assert all(s.is_recurring for s in slots)


def test_recurrence_end_date_caps_range():
    pattern = RecurringPattern(frequency="daily", end_date=date(2030, 1, 3))

    assert list(generation_dates(date(2030, 1, 1), date(2030, 1, 31), pattern)) == [
        date(2030, 1, 1), date(2030, 1, 2), date(2030, 1, 3),
    ]


def test_monthly_recurrence_skips_short_months():
    pattern = RecurringPattern(frequency="monthly")

    assert list(generation_dates(date(2030, 1, 31), date(2030, 5, 31), pattern)) == [
        date(2030, 1, 31), date(2030, 3, 31), date(2030, 5, 31),
    ]


def test_unknown_frequency():
    with pytest.raises(ValueError):
        RecurringPattern(frequency="hourly")


@pytest.mark.parametrize("schedule", [
    {"0": [["09:00", "11:00"]]},
    {"mon": {"start": "09:00", "end": "11:00"}},
    {"mon": [["09:00", "11:00"]]},
])
def test_schedule_formats(schedule):
    assert get_day_intervals(schedule, MONDAY) == [["09:00", "11:00"]]
