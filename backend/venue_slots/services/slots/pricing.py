# backend/venue_slots/services/slots/pricing.py
"""
Final slot price resolution.

    final = base
    final *= (1 - discount_percentage / 100)   if discounted
    final *= surge_multiplier                  if surge active
    final = round(final, 2)                    half-up

Discount is applied before surge. The order is fixed so that
prices are reproducible across services.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional

from .config import time_str_to_minutes
from .errors import InvalidPricingParameter

CENT = Decimal("0.01")

# (date, start "HH:MM", end "HH:MM", duration_minutes) -> (base_price, is_peak_hour)
PriceFn = Callable[[date, str, str, int], tuple[float, bool]]


@dataclass(frozen=True)
class PricingFlags:
    is_discounted: bool = False
    discount_percentage: Optional[float] = None
    discount_reason: Optional[str] = None
    surge_active: bool = False
    surge_multiplier: float = 1.0
    surge_reason: Optional[str] = None

    def __post_init__(self):
        if self.discount_percentage is not None and not 0 <= self.discount_percentage <= 100:
            raise InvalidPricingParameter(
                f"discount_percentage must be within [0, 100], got {self.discount_percentage}"
            )
        if self.surge_multiplier is None or self.surge_multiplier < 1:
            raise InvalidPricingParameter(
                f"surge_multiplier must be >= 1, got {self.surge_multiplier}"
            )

    @classmethod
    def from_slot(cls, slot) -> "PricingFlags":
        """Build flags from anything exposing the slot pricing attributes."""
        return cls(
            is_discounted=bool(slot.is_discounted),
            discount_percentage=slot.discount_percentage,
            discount_reason=slot.discount_reason,
            surge_active=bool(slot.surge_active),
            surge_multiplier=slot.surge_multiplier if slot.surge_multiplier is not None else 1.0,
            surge_reason=slot.surge_reason,
        )


def resolve_price(base_price: float | Decimal, flags: PricingFlags) -> Decimal:
    """Compose base price, discount and surge into the final price."""
    if base_price < 0:
        raise InvalidPricingParameter(f"base price must be >= 0, got {base_price}")

    price = Decimal(str(base_price))

    if flags.is_discounted and flags.discount_percentage:
        price = price * (1 - Decimal(str(flags.discount_percentage)) / 100)

    if flags.surge_active:
        price = price * Decimal(str(flags.surge_multiplier))

    return price.quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_slot_price(slot) -> Decimal:
    """Final price of a stored slot."""
    return resolve_price(slot.price, PricingFlags.from_slot(slot))


def resolve_total(slots: Iterable) -> Decimal:
    """Sum of final prices for a window of slots."""
    total = sum((resolve_slot_price(s) for s in slots), Decimal("0"))
    return total.quantize(CENT, rounding=ROUND_HALF_UP)


# ── Base price functions ─────────────────────────────────────────────────


def court_price_fn(court) -> PriceFn:
    """
    Base price function for a court.

    Rate is price_per_hour, or the peak rate when peak pricing is
    enabled and the slot lies entirely inside one of the peak windows.
    Price scales linearly with slot duration.
    """
    peak = court.peak_hour_pricing or {}
    peak_windows = [
        (time_str_to_minutes(w["start"]), time_str_to_minutes(w["end"]))
        for w in peak.get("hours", [])
        if w.get("start") and w.get("end")
    ]
    peak_rate = peak.get("price_per_hour")
    peak_enabled = bool(peak.get("enabled")) and peak_rate is not None

    def price_for(_day: date, start: str, end: str, duration: int) -> tuple[float, bool]:
        rate = court.price_per_hour
        is_peak = False
        if peak_enabled:
            start_min = time_str_to_minutes(start)
            end_min = time_str_to_minutes(end)
            if any(p_start <= start_min and end_min <= p_end for p_start, p_end in peak_windows):
                rate = peak_rate
                is_peak = True
        base = Decimal(str(rate)) * duration / 60
        return float(base.quantize(CENT, rounding=ROUND_HALF_UP)), is_peak

    return price_for
