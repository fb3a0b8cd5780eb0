# backend/venue_slots/services/slots/invalidator.py
"""
Cache invalidation for court day listings.

Triggers:
✓ Slots reserved / released / confirmed
✓ Slot blocked / unblocked / repriced
✓ Slots generated or regenerated for a date range
"""

from datetime import date, timedelta
from redis import Redis

from .redis_store import SlotsRedisStore
from .types import Slot


def invalidate_court_cache(
    redis: Redis | None,
    court_id: int,
    dates: list[date | str] | None = None,
) -> int:
    """
    Invalidate cached listings for a court.

    Args:
        redis: Redis client (None = caching disabled)
        court_id: Court ID
        dates: Specific dates, or None for every cached date

    Returns:
        Number of deleted cache keys
    """
    if redis is None:
        return 0
    store = SlotsRedisStore(redis)
    return store.delete_day_slots(court_id, dates)


def invalidate_for_slots(redis: Redis | None, slots: list[Slot]) -> int:
    """Invalidate every (court, date) touched by the given slots."""
    if redis is None or not slots:
        return 0

    by_court: dict[int, set[str]] = {}
    for slot in slots:
        by_court.setdefault(slot.court_id, set()).add(slot.date)

    return sum(
        invalidate_court_cache(redis, court_id, sorted(dates))
        for court_id, dates in by_court.items()
    )


def get_affected_dates(date_start: date, date_end: date) -> list[date]:
    """
    Get list of dates in range [date_start, date_end].
    """
    if date_start > date_end:
        date_start, date_end = date_end, date_start

    dates = []
    current = date_start
    while current <= date_end:
        dates.append(current)
        current += timedelta(days=1)

    return dates
