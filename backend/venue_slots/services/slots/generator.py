# backend/venue_slots/services/slots/generator.py
"""
Slot generation from a court's weekly schedule.

For each date and each open window of that weekday the window is tiled
into consecutive slots of slot_duration_minutes. A remainder shorter
than one slot is dropped, never turned into a short slot.

Contains:
✓ weekly open-hour windows (several per day allowed)
✓ base price via price function (peak hours)
✓ court maintenance period (slots created as "maintenance")
✓ recurring patterns (daily / weekly / monthly, exception dates)

Does NOT contain:
✗ Persistence (Availability Store, insert_many)
✗ Bookings or final prices (Pricing Resolver)
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Iterator

from .config import BookingConfig, get_booking_config, time_str_to_minutes, minutes_to_time_str
from .directory import CourtDirectory, CourtInfo
from .errors import CourtNotFound
from .pricing import PriceFn, court_price_fn
from .types import AVAILABLE, MAINTENANCE, RecurringPattern, SlotDraft


def generate_slots(
    directory: CourtDirectory,
    court_id: int,
    date_start: date,
    date_end: date,
    slot_duration_minutes: int,
    price_fn: PriceFn | None = None,
    recurrence: RecurringPattern | None = None,
    config: BookingConfig | None = None,
) -> list[SlotDraft]:
    """
    Generate slots for a court over a date range.

    Raises:
        CourtNotFound: court is unknown to the directory.
        ValueError: invalid duration or date range.
    """
    if slot_duration_minutes <= 0:
        raise ValueError(f"slot_duration_minutes must be positive, got {slot_duration_minutes}")
    if date_start > date_end:
        raise ValueError(f"date_start {date_start} is after date_end {date_end}")

    court = directory.get_court(court_id)
    if court is None:
        raise CourtNotFound(court_id)

    config = config or get_booking_config()
    price_fn = price_fn or court_price_fn(court)

    slots: list[SlotDraft] = []
    for day in generation_dates(date_start, date_end, recurrence):
        slots.extend(
            _day_slots(court, day, slot_duration_minutes, price_fn, config, recurrence is not None)
        )
    return slots


def generation_dates(
    date_start: date,
    date_end: date,
    recurrence: RecurringPattern | None = None,
) -> Iterator[date]:
    """
    Dates to generate for.

    Without a pattern every date in [date_start, date_end]. With a pattern
    the dates step daily / weekly / monthly from date_start up to the
    earlier of date_end and the pattern end date, skipping exceptions.
    """
    if recurrence is None:
        current = date_start
        while current <= date_end:
            yield current
            current += timedelta(days=1)
        return

    last = min(date_end, recurrence.end_date) if recurrence.end_date else date_end
    skip = set(recurrence.exceptions)

    step = 0
    while True:
        current = _nth_occurrence(date_start, recurrence.frequency, step)
        step += 1
        if current is None:
            # Day-of-month missing in this month (e.g. the 31st)
            continue
        if current > last:
            return
        if current not in skip:
            yield current


def tile_window(start: str, end: str, slot_duration_minutes: int) -> list[tuple[str, str]]:
    """Split one open window into consecutive (start, end) pairs."""
    t = time_str_to_minutes(start)
    end_min = time_str_to_minutes(end)

    pairs = []
    while t + slot_duration_minutes <= end_min:
        pairs.append((minutes_to_time_str(t), minutes_to_time_str(t + slot_duration_minutes)))
        t += slot_duration_minutes
    return pairs


# ── Helpers ──────────────────────────────────────────────────────────────


def _day_slots(
    court: CourtInfo,
    day: date,
    duration: int,
    price_fn: PriceFn,
    config: BookingConfig,
    is_recurring: bool,
) -> list[SlotDraft]:
    maintenance = court.maintenance_window()
    reason = (court.maintenance or {}).get("reason")
    day_str = day.isoformat()

    # Overlapping windows in the schedule would yield overlapping slots
    seen: set[tuple[str, str]] = set()
    occupied: list[tuple[int, int]] = []

    slots = []
    for interval in sorted(court.day_intervals(day)):
        for start, end in tile_window(interval[0], interval[1], duration):
            start_min, end_min = time_str_to_minutes(start), time_str_to_minutes(end)
            if (start, end) in seen or any(s < end_min and start_min < e for s, e in occupied):
                continue
            seen.add((start, end))
            occupied.append((start_min, end_min))

            price, is_peak = price_fn(day, start, end, duration)
            status = AVAILABLE
            if maintenance and _overlaps(maintenance, day, start_min, end_min):
                status = MAINTENANCE

            slots.append(SlotDraft(
                court_id=court.id,
                venue_id=court.venue_id,
                date=day_str,
                start_time=start,
                end_time=end,
                duration=duration,
                price=price,
                is_peak_hour=is_peak,
                status=status,
                block_type="maintenance" if status == MAINTENANCE else None,
                block_reason=reason if status == MAINTENANCE else None,
                is_recurring=is_recurring,
                min_advance_hours=config.default_min_advance_hours,
                max_advance_hours=config.default_max_advance_hours,
            ))
    return slots


def _overlaps(window: tuple[datetime, datetime], day: date, start_min: int, end_min: int) -> bool:
    midnight = datetime.combine(day, datetime.min.time())
    slot_start = midnight + timedelta(minutes=start_min)
    slot_end = midnight + timedelta(minutes=end_min)
    return window[0] < slot_end and slot_start < window[1]


def _nth_occurrence(start: date, frequency: str, n: int) -> date | None:
    if frequency == "daily":
        return start + timedelta(days=n)
    if frequency == "weekly":
        return start + timedelta(weeks=n)

    # monthly: same day-of-month, None when the month is too short
    month_index = start.month - 1 + n
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    if start.day > calendar.monthrange(year, month)[1]:
        return None
    return date(year, month, start.day)
