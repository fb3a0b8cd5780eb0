# backend/venue_slots/routers/slots.py
"""
Slots API endpoints.

GET  /slots/available   - Bookable windows for a court, date and duration
POST /slots/reserve     - Reserve a window under a booking reference
POST /slots/release     - Release the slots of a booking
POST /slots/payment     - Record payment outcome (confirm or release)
POST /slots/generate    - Generate slots for a date range (court owner/admin, idempotent)
GET  /slots/day         - All slots of a day (court owner/admin view)
POST /slots/{id}/block, /slots/{id}/unblock
PUT  /slots/{id}/pricing, /slots/{id}/restrictions
"""

import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_caller, get_orchestrator
from ..schemas.slots import (
    AvailableSlotsResponse,
    BlockRequest,
    GenerateRequest,
    GenerateResponse,
    OutcomeResponse,
    PaymentRequest,
    PricingUpdate,
    ReleaseRequest,
    ReserveRequest,
    RestrictionsUpdate,
    SlotRead,
    SlotWindow,
)
from ..services.slots import (
    BookingOrchestrator,
    CallerContext,
    CourtNotFound,
    InvalidPricingParameter,
    NotCourtOwner,
    PaymentOutcome,
    PricingFlags,
    RecurringPattern,
    SlotRestrictions,
)
from ..services.slots.pricing import resolve_slot_price
from ..services.slots.types import ReservationOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["slots"])


def _outcome(outcome: ReservationOutcome) -> OutcomeResponse:
    return OutcomeResponse(
        status=outcome.status,
        reason=outcome.reason.value if outcome.reason else None,
        category=outcome.category,
        slot_ids=list(outcome.slot_ids),
        booking_ref=outcome.booking_ref,
    )


def _court_not_found(e: CourtNotFound) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail={"reason": e.reason.value, "category": "error", "message": str(e)},
    )


def _not_court_owner(e: NotCourtOwner) -> HTTPException:
    return HTTPException(
        status_code=403,
        detail={"reason": e.reason.value, "category": e.reason.category, "message": str(e)},
    )


def _require_manager(caller: CallerContext) -> None:
    if caller.role not in ("admin", "owner"):
        raise HTTPException(status_code=403, detail="Owner or admin role required")


@router.get("/available", response_model=AvailableSlotsResponse)
def get_available_slots(
    court_id: int,
    target_date: date = Query(..., alias="date"),
    duration_minutes: int = Query(60, gt=0),
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Bookable windows of duration_minutes for the caller."""
    today = date.today()
    max_date = today + timedelta(days=orchestrator.config.horizon_days)

    if target_date < today:
        raise HTTPException(status_code=400, detail="Date cannot be in the past")

    if target_date > max_date:
        raise HTTPException(
            status_code=400,
            detail=f"Date cannot be more than {orchestrator.config.horizon_days} days ahead",
        )

    try:
        windows = orchestrator.get_available_slots(
            court_id, target_date, duration_minutes, caller, datetime.now()
        )
    except CourtNotFound as e:
        raise _court_not_found(e)

    return AvailableSlotsResponse(
        court_id=court_id,
        date=target_date,
        duration_minutes=duration_minutes,
        windows=[
            SlotWindow(
                start_time=w.start_time,
                end_time=w.end_time,
                price=float(w.price),
                slot_ids=list(w.slot_ids),
            )
            for w in windows
        ],
    )


@router.post("/reserve", response_model=OutcomeResponse)
def reserve_slots(
    data: ReserveRequest,
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Reserve the window starting at start_time. Rejections come back with a reason code."""
    try:
        outcome = orchestrator.reserve_window(
            court_id=data.court_id,
            day=data.date,
            start_time=data.start_time,
            duration_minutes=data.duration_minutes,
            booking_ref=data.booking_ref,
            caller=caller,
            now=datetime.now(),
        )
    except CourtNotFound as e:
        raise _court_not_found(e)
    return _outcome(outcome)


@router.post("/release", response_model=OutcomeResponse)
def release_slots(
    data: ReleaseRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    outcome = orchestrator.cancel_booking(data.booking_ref, data.slot_ids)
    return _outcome(outcome)


@router.post("/payment", response_model=OutcomeResponse)
def record_payment(
    data: PaymentRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Payment processor callback relay: confirm on success, release on failure."""
    outcome = orchestrator.record_payment(
        data.booking_ref,
        data.slot_ids,
        PaymentOutcome(success=data.success, transaction_id=data.transaction_id),
        now=datetime.now(),
    )
    return _outcome(outcome)


@router.post("/generate", response_model=GenerateResponse)
def generate_slots(
    data: GenerateRequest,
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Generate slots for a court and date range (court owner or admin, idempotent)."""
    _require_manager(caller)

    recurrence = None
    if data.recurrence is not None:
        recurrence = RecurringPattern(
            frequency=data.recurrence.frequency,
            end_date=data.recurrence.end_date,
            exceptions=tuple(data.recurrence.exceptions),
        )

    try:
        result = orchestrator.generate(
            court_id=data.court_id,
            date_start=data.date_start,
            date_end=data.date_end,
            slot_duration_minutes=data.slot_duration_minutes,
            recurrence=recurrence,
            replace=data.replace,
            caller=caller,
        )
    except CourtNotFound as e:
        raise _court_not_found(e)
    except NotCourtOwner as e:
        raise _not_court_owner(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return GenerateResponse(
        court_id=data.court_id,
        created=result.created,
        skipped=result.skipped,
        purged=result.purged,
    )


@router.get("/day", response_model=list[SlotRead])
def get_day_slots(
    court_id: int,
    target_date: date = Query(..., alias="date"),
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """All slots of a court on a date with their status (court owner/admin view)."""
    _require_manager(caller)
    try:
        slots = orchestrator.court_day_view(court_id, target_date, caller)
    except CourtNotFound as e:
        raise _court_not_found(e)
    except NotCourtOwner as e:
        raise _not_court_owner(e)

    return [
        SlotRead(
            id=s.id,
            court_id=s.court_id,
            venue_id=s.venue_id,
            date=s.date,
            start_time=s.start_time,
            end_time=s.end_time,
            duration=s.duration,
            status=s.status,
            price=s.price,
            final_price=float(resolve_slot_price(s)),
            booking_ref=s.booking_ref,
            hold_expires_at=s.hold_expires_at,
            block_reason=s.block_reason,
            block_type=s.block_type,
            is_peak_hour=s.is_peak_hour,
            is_discounted=s.is_discounted,
            discount_percentage=s.discount_percentage,
            surge_active=s.surge_active,
            surge_multiplier=s.surge_multiplier,
            min_advance_hours=s.min_advance_hours,
            max_advance_hours=s.max_advance_hours,
            allowed_user_types=list(s.allowed_user_types),
            minimum_age=s.minimum_age,
            maximum_capacity=s.maximum_capacity,
        )
        for s in slots
    ]


@router.post("/{slot_id}/block", response_model=OutcomeResponse)
def block_slot(
    slot_id: int,
    data: BlockRequest,
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    try:
        outcome = orchestrator.block_slot(slot_id, data.reason, data.block_type, caller)
    except CourtNotFound as e:
        raise _court_not_found(e)
    return _outcome(outcome)


@router.post("/{slot_id}/unblock", response_model=OutcomeResponse)
def unblock_slot(
    slot_id: int,
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    try:
        outcome = orchestrator.unblock_slot(slot_id, caller)
    except CourtNotFound as e:
        raise _court_not_found(e)
    return _outcome(outcome)


@router.put("/{slot_id}/pricing", response_model=OutcomeResponse)
def set_slot_pricing(
    slot_id: int,
    data: PricingUpdate,
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    try:
        flags = PricingFlags(**data.model_dump())
        outcome = orchestrator.set_slot_pricing(slot_id, flags, caller)
    except InvalidPricingParameter as e:
        raise HTTPException(
            status_code=400,
            detail={"reason": e.reason.value, "category": "error", "message": str(e)},
        )
    except CourtNotFound as e:
        raise _court_not_found(e)
    return _outcome(outcome)


@router.put("/{slot_id}/restrictions", response_model=OutcomeResponse)
def set_slot_restrictions(
    slot_id: int,
    data: RestrictionsUpdate,
    caller: CallerContext = Depends(get_caller),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Who may book the slot: user types, advance window, minimum age, capacity."""
    try:
        restrictions = SlotRestrictions(
            min_advance_hours=data.min_advance_hours,
            max_advance_hours=data.max_advance_hours,
            allowed_user_types=tuple(data.allowed_user_types),
            minimum_age=data.minimum_age,
            maximum_capacity=data.maximum_capacity,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        outcome = orchestrator.set_slot_restrictions(slot_id, restrictions, caller)
    except CourtNotFound as e:
        raise _court_not_found(e)
    return _outcome(outcome)
