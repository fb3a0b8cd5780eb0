# backend/venue_slots/services/slots/directory.py
"""
Court directory lookup.

The engine does not own courts. Components receive a directory object
and call get_court(); an unknown court comes back as None.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models.generated import Courts

logger = logging.getLogger(__name__)

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
SHORT_DAY_NAMES = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


@dataclass(frozen=True)
class CourtInfo:
    id: int
    venue_id: int
    owner_id: int
    price_per_hour: float
    availability: dict = field(default_factory=dict)
    peak_hour_pricing: dict = field(default_factory=dict)
    maintenance: dict = field(default_factory=dict)
    is_active: bool = True

    def day_intervals(self, target_date: date) -> list[list[str]]:
        """Open-hour windows of the court on target_date: [["09:00", "12:00"], ...]."""
        return get_day_intervals(self.availability, target_date)

    def maintenance_window(self) -> tuple[datetime, datetime] | None:
        """Active maintenance period, if the court is under maintenance."""
        mnt = self.maintenance or {}
        if not mnt.get("is_under_maintenance"):
            return None
        try:
            start = datetime.fromisoformat(mnt["start"]) if mnt.get("start") else datetime.min
            end = datetime.fromisoformat(mnt["end"]) if mnt.get("end") else datetime.max
        except ValueError:
            logger.warning(f"Court {self.id} has unparsable maintenance window: {mnt}")
            return None
        return start, end


class CourtDirectory:
    """Read-only court lookup backed by the courts table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get_court(self, court_id: int) -> Optional[CourtInfo]:
        db = self.session_factory()
        try:
            court = db.get(Courts, court_id)
            if court is None or not court.is_active:
                return None
            return court_info_from_row(court)
        finally:
            db.close()


def court_info_from_row(court: Courts) -> CourtInfo:
    return CourtInfo(
        id=court.id,
        venue_id=court.venue_id,
        owner_id=court.owner_id,
        price_per_hour=court.price_per_hour,
        availability=_load_json(court.availability),
        peak_hour_pricing=_load_json(court.peak_hour_pricing),
        maintenance=_load_json(court.maintenance),
        is_active=bool(court.is_active),
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _load_json(raw: str | None) -> dict:
    try:
        value = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        value = {}
    return value if isinstance(value, dict) else {}


def get_day_intervals(schedule: dict, target_date: date) -> list[list[str]]:
    """
    Extract working intervals for target_date from a weekly schedule.

    Supported formats:
      - {"monday": {"is_open": true, "hours": [{"start": "09:00", "end": "17:00"}]}}
      - {"mon": {"start": "09:00", "end": "17:00"}} or {"mon": [["09:00", "17:00"]]}
      - {"0": [["09:00", "17:00"]]}  (0 = Monday)

    Returns list of intervals: [["09:00", "17:00"], ...]
    """
    weekday = target_date.weekday()  # 0 = Monday, 6 = Sunday

    weekday_str = str(weekday)
    if weekday_str in schedule:
        intervals = schedule[weekday_str]
        return _normalize_intervals(intervals) if isinstance(intervals, list) else []

    for key in (DAY_NAMES[weekday], SHORT_DAY_NAMES[weekday]):
        if key not in schedule:
            continue
        day_data = schedule[key]

        if day_data is None:
            return []

        if isinstance(day_data, dict):
            if "hours" in day_data or "is_open" in day_data:
                if not day_data.get("is_open", True):
                    return []
                return _normalize_intervals(day_data.get("hours") or [])
            start = day_data.get("start")
            end = day_data.get("end")
            if start and end:
                return [[start, end]]
            return []

        if isinstance(day_data, list):
            return _normalize_intervals(day_data)

    return []


def _normalize_intervals(intervals: list) -> list[list[str]]:
    result = []
    for interval in intervals:
        if isinstance(interval, dict):
            start, end = interval.get("start"), interval.get("end")
            if start and end:
                result.append([start, end])
        elif isinstance(interval, (list, tuple)) and len(interval) == 2:
            result.append([interval[0], interval[1]])
    return result
