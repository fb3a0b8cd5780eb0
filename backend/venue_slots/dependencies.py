# backend/venue_slots/dependencies.py
"""
FastAPI dependencies shared by routers.

The caller identity is resolved upstream (gateway / identity service)
and forwarded as headers; this service trusts them as opaque input.
"""

from typing import Optional

from fastapi import Header, HTTPException

from .config import settings
from .database import SessionLocal
from .redis_client import redis_client
from .services.slots import AvailabilityStore, BookingOrchestrator, CallerContext, CourtDirectory, get_booking_config
from .services.slots.types import USER_TYPES


def get_orchestrator() -> BookingOrchestrator:
    return BookingOrchestrator(
        store=AvailabilityStore(SessionLocal),
        directory=CourtDirectory(SessionLocal),
        config=get_booking_config(),
        redis=redis_client if settings.cache_enabled else None,
    )


def get_caller(
    x_user_id: Optional[int] = Header(None),
    x_user_role: str = Header("user"),
    x_user_type: str = Header("guest"),
    x_user_age: Optional[int] = Header(None),
) -> CallerContext:
    if x_user_type not in USER_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown user type: {x_user_type}")
    return CallerContext(user_id=x_user_id, role=x_user_role, user_type=x_user_type, age=x_user_age)
