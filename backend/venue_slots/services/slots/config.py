# backend/venue_slots/services/slots/config.py
"""
Booking configuration for the slot engine.
"""

from dataclasses import dataclass
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for slot generation and reservation.

    Attributes:
        default_slot_minutes: Slot length used for lazy generation
        horizon_days: How many days ahead availability may be queried
        reserve_retries: Automatic re-attempts after a store conflict
        hold_ttl_minutes: How long an unpaid reservation keeps its slots
        cache_ttl_seconds: Redis TTL for cached day listings
        default_min_advance_hours: Restriction applied to generated slots
        default_max_advance_hours: Restriction applied to generated slots
    """
    default_slot_minutes: int = 60
    horizon_days: int = 60
    reserve_retries: int = 1
    hold_ttl_minutes: int = 15
    cache_ttl_seconds: int = 3600
    default_min_advance_hours: float = 0
    default_max_advance_hours: float = 720  # 30 days

    def __post_init__(self):
        """Validate configuration."""
        if self.default_slot_minutes <= 0:
            raise ValueError(f"default_slot_minutes must be positive, got {self.default_slot_minutes}")
        if self.reserve_retries < 0:
            raise ValueError(f"reserve_retries must be >= 0, got {self.reserve_retries}")


@lru_cache
def get_booking_config() -> BookingConfig:
    """Get booking configuration (singleton)."""
    return BookingConfig(hold_ttl_minutes=settings.hold_ttl_minutes)


# ── Time helpers ─────────────────────────────────────────────────────────


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hour, minute = value.strip().split(":")
    return int(hour) * 60 + int(minute)


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
