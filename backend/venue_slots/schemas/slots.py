"""
Pydantic schemas for slots API.
"""

from datetime import date
from typing import Optional
from pydantic import BaseModel, Field, field_validator


def _check_time(v: str) -> str:
    parts = v.split(":")
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        raise ValueError("Time must be in HH:MM format")
    if int(parts[0]) > 23 or int(parts[1]) > 59:
        raise ValueError("Time must be in HH:MM format")
    return v


class SlotWindow(BaseModel):
    """A bookable run of consecutive slots."""
    start_time: str
    end_time: str
    price: float
    slot_ids: list[int]

    model_config = {"from_attributes": True}


class AvailableSlotsResponse(BaseModel):
    court_id: int
    date: date
    duration_minutes: int
    windows: list[SlotWindow]


class SlotRead(BaseModel):
    id: int
    court_id: int
    venue_id: int
    date: date
    start_time: str
    end_time: str
    duration: int
    status: str
    price: float
    final_price: float
    booking_ref: Optional[str] = None
    hold_expires_at: Optional[str] = None
    block_reason: Optional[str] = None
    block_type: Optional[str] = None
    is_peak_hour: bool = False
    is_discounted: bool = False
    discount_percentage: Optional[float] = None
    surge_active: bool = False
    surge_multiplier: float = 1.0
    min_advance_hours: float
    max_advance_hours: float
    allowed_user_types: list[str] = []
    minimum_age: Optional[int] = None
    maximum_capacity: Optional[int] = None

    model_config = {"from_attributes": True}


class ReserveRequest(BaseModel):
    court_id: int
    date: date
    start_time: str = Field(description="Time in HH:MM format")
    duration_minutes: int = Field(gt=0)
    booking_ref: str = Field(min_length=1)

    @field_validator("start_time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return _check_time(v)


class ReleaseRequest(BaseModel):
    booking_ref: str = Field(min_length=1)
    slot_ids: Optional[list[int]] = None


class PaymentRequest(BaseModel):
    booking_ref: str = Field(min_length=1)
    slot_ids: list[int]
    success: bool
    transaction_id: Optional[str] = None


class OutcomeResponse(BaseModel):
    """Result of a reserve / release / payment / block action."""
    status: str
    reason: Optional[str] = None
    category: Optional[str] = Field(
        None, description="eligibility / conflict / ownership / error"
    )
    slot_ids: list[int] = []
    booking_ref: Optional[str] = None


class RecurrenceIn(BaseModel):
    frequency: str = Field(pattern="^(daily|weekly|monthly)$")
    end_date: Optional[date] = None
    exceptions: list[date] = []


class GenerateRequest(BaseModel):
    court_id: int
    date_start: date
    date_end: date
    slot_duration_minutes: int = Field(60, gt=0)
    recurrence: Optional[RecurrenceIn] = None
    replace: bool = False


class GenerateResponse(BaseModel):
    court_id: int
    created: int
    skipped: int
    purged: int = 0


class BlockRequest(BaseModel):
    reason: Optional[str] = None
    block_type: str = Field("owner", pattern="^(owner|maintenance|event|admin)$")


class PricingUpdate(BaseModel):
    # Range checks happen in PricingFlags so that the API reports INVALID_PRICING_PARAMETER
    is_discounted: bool = False
    discount_percentage: Optional[float] = None
    discount_reason: Optional[str] = None
    surge_active: bool = False
    surge_multiplier: float = 1.0
    surge_reason: Optional[str] = None


class RestrictionsUpdate(BaseModel):
    # Consistency checks live in SlotRestrictions
    min_advance_hours: float = 0
    max_advance_hours: float = 720
    allowed_user_types: list[str] = []
    minimum_age: Optional[int] = None
    maximum_capacity: Optional[int] = None
