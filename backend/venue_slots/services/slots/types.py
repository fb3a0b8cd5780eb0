# backend/venue_slots/services/slots/types.py
"""
Value types passed between the slot engine components.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from .errors import RejectionReason

AVAILABLE = "available"
BOOKED = "booked"
BLOCKED = "blocked"
MAINTENANCE = "maintenance"

SLOT_STATUSES = (AVAILABLE, BOOKED, BLOCKED, MAINTENANCE)
BLOCK_TYPES = ("owner", "maintenance", "event", "admin")
USER_TYPES = ("member", "guest", "premium")


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller as supplied by the identity service."""
    user_id: Optional[int] = None
    role: str = "user"
    user_type: str = "guest"
    age: Optional[int] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class Slot:
    """Read-only snapshot of a time_slots row."""
    id: int
    court_id: int
    venue_id: int
    date: str
    start_time: str
    end_time: str
    duration: int
    price: float
    status: str = AVAILABLE
    original_price: Optional[float] = None
    booking_ref: Optional[str] = None
    hold_expires_at: Optional[str] = None
    is_recurring: bool = False
    is_peak_hour: bool = False
    is_discounted: bool = False
    discount_percentage: Optional[float] = None
    discount_reason: Optional[str] = None
    surge_active: bool = False
    surge_multiplier: float = 1.0
    surge_reason: Optional[str] = None
    block_reason: Optional[str] = None
    block_type: Optional[str] = None
    last_modified_by: Optional[int] = None
    min_advance_hours: float = 0
    max_advance_hours: float = 720
    allowed_user_types: tuple[str, ...] = ()
    minimum_age: Optional[int] = None
    maximum_capacity: Optional[int] = None

    @classmethod
    def from_row(cls, row) -> "Slot":
        try:
            allowed = tuple(json.loads(row.allowed_user_types or "[]"))
        except json.JSONDecodeError:
            allowed = ()
        return cls(
            id=row.id,
            court_id=row.court_id,
            venue_id=row.venue_id,
            date=row.date,
            start_time=row.start_time,
            end_time=row.end_time,
            duration=row.duration,
            price=row.price,
            status=row.status,
            original_price=row.original_price,
            booking_ref=row.booking_ref,
            hold_expires_at=row.hold_expires_at,
            is_recurring=bool(row.is_recurring),
            is_peak_hour=bool(row.is_peak_hour),
            is_discounted=bool(row.is_discounted),
            discount_percentage=row.discount_percentage,
            discount_reason=row.discount_reason,
            surge_active=bool(row.surge_active),
            surge_multiplier=row.surge_multiplier if row.surge_multiplier is not None else 1.0,
            surge_reason=row.surge_reason,
            block_reason=row.block_reason,
            block_type=row.block_type,
            last_modified_by=row.last_modified_by,
            min_advance_hours=row.min_advance_hours,
            max_advance_hours=row.max_advance_hours,
            allowed_user_types=allowed,
            minimum_age=row.minimum_age,
            maximum_capacity=row.maximum_capacity,
        )

    @property
    def starts_at(self) -> datetime:
        """Slot date and start time combined into one instant."""
        day = date.fromisoformat(self.date)
        hour, minute = self.start_time.split(":")
        return datetime.combine(day, datetime.min.time()) + timedelta(hours=int(hour), minutes=int(minute))


@dataclass(frozen=True)
class SlotDraft:
    """A generated slot that has not been persisted yet."""
    court_id: int
    venue_id: int
    date: str
    start_time: str
    end_time: str
    duration: int
    price: float
    is_peak_hour: bool = False
    status: str = AVAILABLE
    block_type: Optional[str] = None
    block_reason: Optional[str] = None
    is_recurring: bool = False
    min_advance_hours: float = 0
    max_advance_hours: float = 720
    allowed_user_types: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[int, str, str, str]:
        return (self.court_id, self.date, self.start_time, self.end_time)


@dataclass(frozen=True)
class SlotRestrictions:
    """Who may book a slot and how far ahead. Set by the court owner."""
    min_advance_hours: float = 0
    max_advance_hours: float = 720
    allowed_user_types: tuple[str, ...] = ()
    minimum_age: Optional[int] = None
    maximum_capacity: Optional[int] = None

    def __post_init__(self):
        if self.min_advance_hours < 0:
            raise ValueError(f"min_advance_hours must be >= 0, got {self.min_advance_hours}")
        if self.max_advance_hours < self.min_advance_hours:
            raise ValueError("max_advance_hours must not be below min_advance_hours")
        unknown = [t for t in self.allowed_user_types if t not in USER_TYPES]
        if unknown:
            raise ValueError(f"Unknown user types: {unknown}")
        if self.minimum_age is not None and self.minimum_age < 0:
            raise ValueError(f"minimum_age must be >= 0, got {self.minimum_age}")
        if self.maximum_capacity is not None and self.maximum_capacity <= 0:
            raise ValueError(f"maximum_capacity must be positive, got {self.maximum_capacity}")


@dataclass(frozen=True)
class RecurringPattern:
    frequency: str  # daily / weekly / monthly
    end_date: Optional[date] = None
    exceptions: tuple[date, ...] = ()

    def __post_init__(self):
        if self.frequency not in ("daily", "weekly", "monthly"):
            raise ValueError(f"frequency must be daily, weekly or monthly, got {self.frequency!r}")


@dataclass(frozen=True)
class StoreResult:
    ok: bool
    reason: Optional[RejectionReason] = None
    slot_ids: tuple[int, ...] = ()

    @classmethod
    def success(cls, slot_ids=()) -> "StoreResult":
        return cls(ok=True, slot_ids=tuple(slot_ids))

    @classmethod
    def conflict(cls, reason: RejectionReason, slot_ids=()) -> "StoreResult":
        return cls(ok=False, reason=reason, slot_ids=tuple(slot_ids))


@dataclass(frozen=True)
class BookableWindow:
    """A run of consecutive available slots covering the requested duration."""
    date: str
    start_time: str
    end_time: str
    price: Decimal
    slot_ids: tuple[int, ...]


@dataclass(frozen=True)
class ReservationOutcome:
    status: str  # reserved / rejected / released / confirmed
    reason: Optional[RejectionReason] = None
    slot_ids: tuple[int, ...] = ()
    booking_ref: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    @property
    def category(self) -> Optional[str]:
        return self.reason.category if self.reason else None


@dataclass(frozen=True)
class GenerationResult:
    created: int
    skipped: int
    purged: int = 0
    dates: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PaymentOutcome:
    """Result reported by the payment processor."""
    success: bool
    transaction_id: Optional[str] = None
