# backend/venue_slots/services/slots/errors.py
"""
Rejection codes and exceptions of the slot engine.

Rejections (eligibility, conflicts) are expected outcomes and travel as
values. Exceptions are reserved for configuration problems (an unknown
court, an out-of-range pricing parameter) and for court-wide management
calls made by someone who does not manage the court.
"""

from enum import Enum


class RejectionReason(str, Enum):
    COURT_NOT_FOUND = "COURT_NOT_FOUND"
    INVALID_PRICING_PARAMETER = "INVALID_PRICING_PARAMETER"
    SLOT_NOT_FOUND = "SLOT_NOT_FOUND"
    SLOT_NOT_AVAILABLE = "SLOT_NOT_AVAILABLE"
    USER_TYPE_NOT_ALLOWED = "USER_TYPE_NOT_ALLOWED"
    TOO_SOON = "TOO_SOON"
    TOO_FAR_AHEAD = "TOO_FAR_AHEAD"
    ALREADY_TAKEN = "ALREADY_TAKEN"
    NOT_OWNER = "NOT_OWNER"
    PARTIAL_WINDOW_UNAVAILABLE = "PARTIAL_WINDOW_UNAVAILABLE"
    CANNOT_BLOCK_BOOKED_SLOT = "CANNOT_BLOCK_BOOKED_SLOT"
    HOLD_EXPIRED = "HOLD_EXPIRED"
    AGE_RESTRICTED = "AGE_RESTRICTED"

    @property
    def category(self) -> str:
        """
        Coarse class of the rejection for the calling UI.

        - eligibility: caller may not book this slot (show a message)
        - conflict: slot is taken or unusable (offer alternatives)
        - ownership: caller does not own the reservation/court
        - error: configuration or lookup problem (generic error)
        """
        return _CATEGORIES[self]


_CATEGORIES = {
    RejectionReason.COURT_NOT_FOUND: "error",
    RejectionReason.INVALID_PRICING_PARAMETER: "error",
    RejectionReason.SLOT_NOT_FOUND: "error",
    RejectionReason.SLOT_NOT_AVAILABLE: "conflict",
    RejectionReason.USER_TYPE_NOT_ALLOWED: "eligibility",
    RejectionReason.TOO_SOON: "eligibility",
    RejectionReason.TOO_FAR_AHEAD: "eligibility",
    RejectionReason.ALREADY_TAKEN: "conflict",
    RejectionReason.NOT_OWNER: "ownership",
    RejectionReason.PARTIAL_WINDOW_UNAVAILABLE: "conflict",
    RejectionReason.CANNOT_BLOCK_BOOKED_SLOT: "conflict",
    RejectionReason.HOLD_EXPIRED: "conflict",
    RejectionReason.AGE_RESTRICTED: "eligibility",
}


class SlotsError(Exception):
    """Base class for slot engine faults."""
    reason: RejectionReason


class CourtNotFound(SlotsError):
    reason = RejectionReason.COURT_NOT_FOUND

    def __init__(self, court_id: int):
        super().__init__(f"Court {court_id} not found")
        self.court_id = court_id


class InvalidPricingParameter(SlotsError):
    reason = RejectionReason.INVALID_PRICING_PARAMETER


class NotCourtOwner(SlotsError):
    reason = RejectionReason.NOT_OWNER

    def __init__(self, court_id: int, user_id: int | None):
        super().__init__(f"User {user_id} does not manage court {court_id}")
        self.court_id = court_id
        self.user_id = user_id
