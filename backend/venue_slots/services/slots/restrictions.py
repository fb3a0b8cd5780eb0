# backend/venue_slots/services/slots/restrictions.py
"""
Restriction evaluation: may this caller book this slot right now?

Checks run in order and stop at the first failure:
  1. status is available
  2. caller user type is allowed (empty list = everyone)
  3. caller meets minimum_age (an unknown age does not)
  4. start is at least min_advance_hours away
  5. start is at most max_advance_hours away

maximum_capacity is shown to the caller but not checked here; the
booking carries no party size.

"now" is always passed in; nothing here reads the wall clock.
"""

from datetime import datetime

from .errors import RejectionReason
from .types import AVAILABLE, CallerContext, Slot


def hours_until_start(slot: Slot, now: datetime) -> float:
    """Hours between now and the slot start (negative once started)."""
    return (slot.starts_at - now).total_seconds() / 3600


def check_restrictions(
    slot: Slot,
    caller: CallerContext,
    now: datetime,
) -> RejectionReason | None:
    """
    Evaluate booking restrictions for a slot.

    Returns:
        None when the caller may book, otherwise the first failing reason.
    """
    if slot.status != AVAILABLE:
        return RejectionReason.SLOT_NOT_AVAILABLE

    if slot.allowed_user_types and caller.user_type not in slot.allowed_user_types:
        return RejectionReason.USER_TYPE_NOT_ALLOWED

    if slot.minimum_age is not None and (caller.age is None or caller.age < slot.minimum_age):
        return RejectionReason.AGE_RESTRICTED

    hours = hours_until_start(slot, now)

    if hours < slot.min_advance_hours:
        return RejectionReason.TOO_SOON
    if hours > slot.max_advance_hours:
        return RejectionReason.TOO_FAR_AHEAD

    return None


def can_book(slot: Slot, caller: CallerContext, now: datetime) -> bool:
    return check_restrictions(slot, caller, now) is None
