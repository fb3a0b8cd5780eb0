# backend/venue_slots/services/slots/__init__.py
"""
Court slot engine.

Generator → Availability Store ← Booking Orchestrator
                                  (Pricing Resolver, Restriction Evaluator)
"""

from .config import BookingConfig, get_booking_config
from .directory import CourtDirectory, CourtInfo
from .errors import CourtNotFound, InvalidPricingParameter, NotCourtOwner, RejectionReason, SlotsError
from .generator import generate_slots
from .pricing import PricingFlags, resolve_price
from .restrictions import can_book, check_restrictions
from .store import AvailabilityStore
from .redis_store import SlotsRedisStore
from .invalidator import invalidate_court_cache
from .orchestrator import BookingOrchestrator
from .types import CallerContext, PaymentOutcome, RecurringPattern, Slot, SlotRestrictions

__all__ = [
    "BookingConfig",
    "get_booking_config",
    "CourtDirectory",
    "CourtInfo",
    "CourtNotFound",
    "InvalidPricingParameter",
    "NotCourtOwner",
    "RejectionReason",
    "SlotsError",
    "generate_slots",
    "PricingFlags",
    "resolve_price",
    "can_book",
    "check_restrictions",
    "AvailabilityStore",
    "SlotsRedisStore",
    "invalidate_court_cache",
    "BookingOrchestrator",
    "CallerContext",
    "PaymentOutcome",
    "RecurringPattern",
    "Slot",
    "SlotRestrictions",
]
