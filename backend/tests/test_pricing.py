from datetime import date
from decimal import Decimal

import pytest

from venue_slots.services.slots.directory import CourtInfo
from venue_slots.services.slots.errors import InvalidPricingParameter
from venue_slots.services.slots.pricing import (
    PricingFlags,
    court_price_fn,
    resolve_price,
    resolve_total,
)
from venue_slots.services.slots.types import Slot


def _slot(slot_id, price, **kwargs):
    return Slot(
        id=slot_id, court_id=1, venue_id=1, date="2030-01-07",
        start_time="10:00", end_time="11:00", duration=60, price=price, **kwargs,
    )


def test_discount_applied_before_surge():
    flags = PricingFlags(is_discounted=True, discount_percentage=20, surge_active=True, surge_multiplier=1.5)
    assert resolve_price(100, flags) == Decimal("120.00")


def test_no_flags_returns_base_price():
    assert resolve_price(80, PricingFlags()) == Decimal("80.00")


def test_rounds_half_up():
    assert resolve_price(10.005, PricingFlags()) == Decimal("10.01")
    assert resolve_price(10.004, PricingFlags()) == Decimal("10.00")


def test_discount_ignored_when_not_flagged():
    flags = PricingFlags(is_discounted=False, discount_percentage=50)
    assert resolve_price(100, flags) == Decimal("100.00")


def test_surge_ignored_when_inactive():
    flags = PricingFlags(surge_active=False, surge_multiplier=3)
    assert resolve_price(100, flags) == Decimal("100.00")


def test_full_discount_gives_zero():
    flags = PricingFlags(is_discounted=True, discount_percentage=100, surge_active=True, surge_multiplier=2)
    assert resolve_price(55.5, flags) == Decimal("0.00")


@pytest.mark.parametrize("kwargs", [
    {"discount_percentage": 101},
    {"discount_percentage": -0.5},
    {"surge_multiplier": 0.99},
])
def test_out_of_range_parameters_rejected(kwargs):
    with pytest.raises(InvalidPricingParameter):
        PricingFlags(**kwargs)


def test_negative_base_price_rejected():
    with pytest.raises(InvalidPricingParameter):
        resolve_price(-1, PricingFlags())


def test_total_of_window():
    slots = [
        _slot(1, 100.0),
        _slot(2, 100.0, is_discounted=True, discount_percentage=10),
    ]
    assert resolve_total(slots) == Decimal("190.00")


def test_court_price_scales_with_duration():
    court = CourtInfo(id=1, venue_id=1, owner_id=1, price_per_hour=100.0)
    price_fn = court_price_fn(court)

    assert price_fn(date(2030, 1, 7), "09:00", "10:30", 90) == (150.0, False)


def test_peak_rate_only_inside_peak_window():
    court = CourtInfo(
        id=1, venue_id=1, owner_id=1, price_per_hour=100.0,
        peak_hour_pricing={
            "enabled": True,
            "price_per_hour": 150.0,
            "hours": [{"start": "18:00", "end": "21:00"}],
        },
    )
    price_fn = court_price_fn(court)
    day = date(2030, 1, 7)

    assert price_fn(day, "18:00", "19:00", 60) == (150.0, True)
    # Straddles the peak start
    assert price_fn(day, "17:30", "18:30", 60) == (100.0, False)


def test_peak_pricing_disabled():
    court = CourtInfo(
        id=1, venue_id=1, owner_id=1, price_per_hour=100.0,
        peak_hour_pricing={"enabled": False, "price_per_hour": 150.0, "hours": [{"start": "00:00", "end": "23:59"}]},
    )
    assert court_price_fn(court)(date(2030, 1, 7), "10:00", "11:00", 60) == (100.0, False)
