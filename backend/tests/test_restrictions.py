from datetime import datetime, timedelta

import pytest

from venue_slots.services.slots.errors import RejectionReason
from venue_slots.services.slots.restrictions import can_book, check_restrictions, hours_until_start
from venue_slots.services.slots.types import BLOCKED, BOOKED, CallerContext, Slot, SlotRestrictions

START = datetime(2030, 1, 7, 10, 0)
GUEST = CallerContext(user_id=42, user_type="guest")


def _slot(**kwargs):
    values = dict(
        id=1, court_id=1, venue_id=1, date="2030-01-07",
        start_time="10:00", end_time="11:00", duration=60, price=100.0,
    )
    values.update(kwargs)
    return Slot(**values)


def test_hours_until_start():
    assert hours_until_start(_slot(), START - timedelta(hours=3)) == 3
    assert hours_until_start(_slot(), START + timedelta(minutes=30)) == -0.5


def test_min_advance_boundary_is_inclusive():
    slot = _slot(min_advance_hours=2)

    assert check_restrictions(slot, GUEST, START - timedelta(hours=2)) is None
    assert check_restrictions(slot, GUEST, START - timedelta(hours=1, minutes=59)) == RejectionReason.TOO_SOON


def test_started_slot_is_too_soon():
    assert check_restrictions(_slot(), GUEST, START + timedelta(minutes=1)) == RejectionReason.TOO_SOON


def test_too_far_ahead():
    slot = _slot(max_advance_hours=720)

    assert check_restrictions(slot, GUEST, START - timedelta(hours=720)) is None
    assert check_restrictions(slot, GUEST, START - timedelta(hours=721)) == RejectionReason.TOO_FAR_AHEAD


def test_user_type_allow_list():
    slot = _slot(allowed_user_types=("member", "premium"))
    now = START - timedelta(days=1)

    assert check_restrictions(slot, GUEST, now) == RejectionReason.USER_TYPE_NOT_ALLOWED
    assert check_restrictions(slot, CallerContext(user_id=1, user_type="premium"), now) is None


def test_empty_allow_list_admits_everyone():
    now = START - timedelta(days=1)
    for user_type in ("member", "guest", "premium"):
        assert can_book(_slot(), CallerContext(user_type=user_type), now)


@pytest.mark.parametrize("status", [BOOKED, BLOCKED, "maintenance"])
def test_non_available_status_rejected(status):
    slot = _slot(status=status)
    assert check_restrictions(slot, GUEST, START - timedelta(days=1)) == RejectionReason.SLOT_NOT_AVAILABLE


def test_status_checked_before_user_type_and_time():
    slot = _slot(status=BLOCKED, allowed_user_types=("member",), min_advance_hours=48)
    assert check_restrictions(slot, GUEST, START) == RejectionReason.SLOT_NOT_AVAILABLE


def test_user_type_checked_before_advance_window():
    slot = _slot(allowed_user_types=("member",), min_advance_hours=48)
    assert check_restrictions(slot, GUEST, START) == RejectionReason.USER_TYPE_NOT_ALLOWED


def test_minimum_age():
    slot = _slot(minimum_age=18, min_advance_hours=48)

    assert check_restrictions(slot, GUEST, START) == RejectionReason.AGE_RESTRICTED
    assert check_restrictions(slot, CallerContext(age=17), START) == RejectionReason.AGE_RESTRICTED
    assert check_restrictions(slot, CallerContext(age=18), START) == RejectionReason.TOO_SOON
    assert can_book(slot, CallerContext(age=18), START - timedelta(days=3))


def test_capacity_is_not_a_booking_check():
    assert can_book(_slot(maximum_capacity=1), GUEST, START - timedelta(days=1))


@pytest.mark.parametrize("kwargs", [
    {"min_advance_hours": -1},
    {"min_advance_hours": 10, "max_advance_hours": 5},
    {"allowed_user_types": ("member", "vip")},
    {"minimum_age": -3},
    {"maximum_capacity": 0},
])
def test_inconsistent_restrictions_rejected(kwargs):
    with pytest.raises(ValueError):
        SlotRestrictions(**kwargs)


def test_rejection_categories():
    assert RejectionReason.TOO_SOON.category == "eligibility"
    assert RejectionReason.USER_TYPE_NOT_ALLOWED.category == "eligibility"
    assert RejectionReason.AGE_RESTRICTED.category == "eligibility"
    assert RejectionReason.HOLD_EXPIRED.category == "conflict"
    assert RejectionReason.ALREADY_TAKEN.category == "conflict"
    assert RejectionReason.NOT_OWNER.category == "ownership"
    assert RejectionReason.COURT_NOT_FOUND.category == "error"
