"""
Pydantic schemas for the court directory.
"""

from typing import Optional
from pydantic import BaseModel, Field


class TimeWindow(BaseModel):
    start: str
    end: str


class DaySchedule(BaseModel):
    is_open: bool = True
    hours: list[TimeWindow] = []


class PeakHourPricing(BaseModel):
    enabled: bool = False
    price_per_hour: Optional[float] = Field(None, ge=0)
    hours: list[TimeWindow] = []


class Maintenance(BaseModel):
    is_under_maintenance: bool = False
    start: Optional[str] = None  # ISO datetime
    end: Optional[str] = None
    reason: Optional[str] = None


class CourtCreate(BaseModel):
    venue_id: int
    owner_id: int
    name: str
    sport: str
    price_per_hour: float = Field(ge=0)
    peak_hour_pricing: PeakHourPricing = PeakHourPricing()
    # keys: monday .. sunday
    availability: dict[str, DaySchedule] = {}
    maintenance: Maintenance = Maintenance()


class CourtRead(BaseModel):
    id: int
    venue_id: int
    owner_id: int
    name: str
    sport: str
    price_per_hour: float
    peak_hour_pricing: PeakHourPricing
    availability: dict[str, DaySchedule]
    maintenance: Maintenance
    is_active: bool
