# backend/venue_slots/services/slots/orchestrator.py
"""
Booking orchestration on top of the Availability Store.

Booking attempt lifecycle:

    Requested → SlotsValidated → SlotsReserved → (PaymentPending →) Confirmed
    Requested → Rejected
    SlotsReserved → Released   (cancellation, payment failure, hold expiry)

All writes to time_slots go through this class into the store.
Restriction and conflict outcomes are returned as ReservationOutcome
values; only configuration problems (unknown court, bad pricing
parameter) and court-wide calls by a non-manager (NotCourtOwner) raise.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Optional

from redis import Redis

from ..events import emit_event
from .config import BookingConfig, get_booking_config
from .directory import CourtDirectory
from .errors import CourtNotFound, NotCourtOwner, RejectionReason
from .generator import generate_slots
from .invalidator import get_affected_dates, invalidate_court_cache, invalidate_for_slots
from .pricing import PricingFlags, resolve_total
from .redis_store import SlotsRedisStore
from .restrictions import check_restrictions
from .store import AvailabilityStore
from .types import (
    AVAILABLE,
    BOOKED,
    BookableWindow,
    CallerContext,
    GenerationResult,
    PaymentOutcome,
    RecurringPattern,
    ReservationOutcome,
    Slot,
    SlotRestrictions,
)

logger = logging.getLogger(__name__)

Notifier = Callable[[str, dict], None]
RefundHook = Callable[[str, list[int]], None]


class BookingOrchestrator:
    """Coordinates generator, pricing, restrictions and store."""

    def __init__(
        self,
        store: AvailabilityStore,
        directory: CourtDirectory,
        config: BookingConfig | None = None,
        redis: Redis | None = None,
        notify: Notifier | None = None,
    ):
        self.store = store
        self.directory = directory
        self.config = config or get_booking_config()
        self.redis = redis
        self.cache = SlotsRedisStore(redis, self.config) if redis is not None else None
        self.notify = notify or emit_event

    # ── Availability ─────────────────────────────────────────────────────

    def get_available_slots(
        self,
        court_id: int,
        day: date,
        duration_minutes: int,
        caller: CallerContext,
        now: datetime,
    ) -> list[BookableWindow]:
        """
        Bookable windows of duration_minutes on a court and date.

        A start slot is offered only if the consecutive run of slots
        covering duration_minutes is fully available to the caller.

        Raises:
            CourtNotFound: the day has no slots and the court is unknown.
        """
        if duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")

        slots = self.day_slots(court_id, day)
        return find_windows(slots, duration_minutes, caller, now)

    def day_slots(self, court_id: int, day: date) -> list[Slot]:
        """
        All slots of a court on a date, generating them on first use.

        The cache version is read before the database so that a listing
        invalidated in between is never written back.
        """
        version = None
        if self.cache is not None:
            cached = self.cache.get_day_slots(court_id, day)
            if cached is not None:
                return cached
            version = self.cache.get_version(court_id, day)

        slots = self.store.list_day(court_id, day)
        if not slots:
            drafts = generate_slots(
                self.directory, court_id, day, day,
                self.config.default_slot_minutes, config=self.config,
            )
            if drafts:
                created, skipped = self.store.insert_many(drafts)
                logger.info(
                    f"Lazily generated slots for court {court_id} on {day}: created={created} skipped={skipped}"
                )
                slots = self.store.list_day(court_id, day)

        if self.cache is not None and slots:
            self.cache.store_day_slots(court_id, day, slots, version)
        return slots

    def court_day_view(self, court_id: int, day: date, caller: CallerContext) -> list[Slot]:
        """Full day listing for the court owner or an admin."""
        self._require_court_manager(court_id, caller)
        return self.day_slots(court_id, day)

    # ── Reservation ──────────────────────────────────────────────────────

    def reserve_for_booking(
        self,
        slot_ids: Iterable[int],
        booking_ref: str,
        caller: CallerContext,
        now: datetime,
    ) -> ReservationOutcome:
        """
        Reserve slot_ids atomically under booking_ref.

        A store conflict is retried reserve_retries times (re-fetch,
        re-validate, re-attempt); after that ALREADY_TAKEN is returned.
        """
        ids = list(dict.fromkeys(int(i) for i in slot_ids))
        if not ids:
            return self._rejected(RejectionReason.SLOT_NOT_FOUND, ids, booking_ref)

        hold_until = None
        if self.config.hold_ttl_minutes > 0:
            hold_until = now + timedelta(minutes=self.config.hold_ttl_minutes)

        for attempt in range(1 + self.config.reserve_retries):
            slots = self.store.get_many(ids)
            reason = self._validate(ids, slots, caller, now)
            if reason is not None:
                return self._rejected(reason, ids, booking_ref)

            result = self.store.reserve(ids, booking_ref, hold_until=hold_until)
            if result.ok:
                invalidate_for_slots(self.redis, slots)
                self._emit("slots_reserved", booking_ref, slots, caller=caller)
                return ReservationOutcome(status="reserved", slot_ids=tuple(ids), booking_ref=booking_ref)

            logger.info(f"Reserve attempt {attempt + 1} for {booking_ref} lost a race on {ids}")

        return self._rejected(RejectionReason.ALREADY_TAKEN, ids, booking_ref)

    def reserve_window(
        self,
        court_id: int,
        day: date,
        start_time: str,
        duration_minutes: int,
        booking_ref: str,
        caller: CallerContext,
        now: datetime,
    ) -> ReservationOutcome:
        """Reserve the consecutive slots starting at start_time covering duration_minutes."""
        if duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")

        slots = self.day_slots(court_id, day)
        if not any(s.start_time == start_time for s in slots):
            return self._rejected(RejectionReason.SLOT_NOT_FOUND, [], booking_ref)

        run = consecutive_run(slots, start_time, duration_minutes)
        if run is None:
            return self._rejected(RejectionReason.PARTIAL_WINDOW_UNAVAILABLE, [], booking_ref)

        return self.reserve_for_booking([s.id for s in run], booking_ref, caller, now)

    def cancel_booking(
        self,
        booking_ref: str,
        slot_ids: Iterable[int] | None = None,
        refund: RefundHook | None = None,
    ) -> ReservationOutcome:
        """
        Release the slots of a booking.

        Slots are released before the refund hook runs; a failing refund
        is logged and does not undo the release.
        """
        if slot_ids is None:
            ids = [s.id for s in self.store.find_by_booking_ref(booking_ref)]
        else:
            ids = list(dict.fromkeys(int(i) for i in slot_ids))

        if not ids:
            return self._rejected(RejectionReason.NOT_OWNER, ids, booking_ref)

        result = self.store.release(ids, booking_ref)
        if not result.ok:
            return self._rejected(result.reason, ids, booking_ref)

        self._after_release(booking_ref, ids)

        if refund is not None:
            try:
                refund(booking_ref, ids)
            except Exception:
                logger.exception(f"Refund for {booking_ref} failed after slots were released")

        return ReservationOutcome(status="released", slot_ids=tuple(ids), booking_ref=booking_ref)

    def record_payment(
        self,
        booking_ref: str,
        slot_ids: Iterable[int],
        outcome: PaymentOutcome,
        now: datetime | None = None,
    ) -> ReservationOutcome:
        """
        Apply the payment processor result: confirm on success, release on failure.

        A success that arrives after the hold ran out is rejected with
        HOLD_EXPIRED and the slots are released; the caller refunds.
        """
        ids = list(dict.fromkeys(int(i) for i in slot_ids))
        now = now or datetime.now()

        if not outcome.success:
            logger.info(f"Payment failed for {booking_ref}, releasing slots {ids}")
            return self.cancel_booking(booking_ref, ids)

        result = self.store.confirm(ids, booking_ref, now=now)
        if not result.ok:
            if result.reason == RejectionReason.HOLD_EXPIRED:
                logger.warning(f"Payment {outcome.transaction_id} for {booking_ref} arrived after its hold expired")
                if self.store.release_expired(ids, booking_ref, now).ok:
                    self._after_release(booking_ref, ids, reason="hold_expired")
            return self._rejected(result.reason, ids, booking_ref)

        slots = self.store.get_many(ids)
        invalidate_for_slots(self.redis, slots)
        self._emit("booking_confirmed", booking_ref, slots, transaction_id=outcome.transaction_id)
        return ReservationOutcome(status="confirmed", slot_ids=tuple(ids), booking_ref=booking_ref)

    def release_expired_holds(self, now: datetime) -> int:
        """Release every reservation whose unpaid hold expired. Returns count of bookings released."""
        released = 0
        for booking_ref, ids in self.store.expired_holds(now).items():
            result = self.store.release_expired(ids, booking_ref, now)
            if not result.ok:
                # Paid or cancelled since the read
                logger.info(f"Expired hold {booking_ref} no longer releasable: {result.reason.value}")
                continue
            self._after_release(booking_ref, ids, reason="hold_expired")
            released += 1
        return released

    # ── Provisioning ─────────────────────────────────────────────────────

    def generate(
        self,
        court_id: int,
        date_start: date,
        date_end: date,
        slot_duration_minutes: int,
        recurrence: RecurringPattern | None = None,
        replace: bool = False,
        today: date | None = None,
        caller: CallerContext | None = None,
    ) -> GenerationResult:
        """
        Generate and persist slots for a date range. Safe to repeat.

        With replace=True the future, non-booked slots of the range are
        deleted first so that a changed schedule takes effect.

        Raises:
            NotCourtOwner: caller is neither an admin nor the court owner.
        """
        if caller is not None:
            self._require_court_manager(court_id, caller)

        drafts = generate_slots(
            self.directory, court_id, date_start, date_end,
            slot_duration_minutes, recurrence=recurrence, config=self.config,
        )

        purged = 0
        if replace:
            purged = self.store.purge_unbooked(court_id, date_start, date_end, today or date.today())

        created, skipped = self.store.insert_many(drafts)
        invalidate_court_cache(self.redis, court_id, get_affected_dates(date_start, date_end))

        dates = tuple(sorted({d.date for d in drafts}))
        logger.info(
            f"Generated slots for court {court_id} {date_start}..{date_end}: "
            f"created={created} skipped={skipped} purged={purged}"
        )
        return GenerationResult(created=created, skipped=skipped, purged=purged, dates=dates)

    # ── Owner / admin actions ────────────────────────────────────────────

    def block_slot(
        self,
        slot_id: int,
        reason: str | None,
        block_type: str,
        caller: CallerContext,
    ) -> ReservationOutcome:
        slot, rejection = self._managed_slot(slot_id, caller)
        if rejection is not None:
            return rejection

        result = self.store.block(slot_id, reason, block_type, caller.user_id)
        if not result.ok:
            return self._rejected(result.reason, [slot_id])

        invalidate_for_slots(self.redis, [slot])
        self._emit("slot_blocked", None, [slot], reason=reason, block_type=block_type)
        return ReservationOutcome(status="blocked", slot_ids=(slot_id,))

    def unblock_slot(self, slot_id: int, caller: CallerContext) -> ReservationOutcome:
        slot, rejection = self._managed_slot(slot_id, caller)
        if rejection is not None:
            return rejection

        result = self.store.unblock(slot_id, caller.user_id)
        if not result.ok:
            return self._rejected(result.reason, [slot_id])

        invalidate_for_slots(self.redis, [slot])
        self._emit("slot_unblocked", None, [slot])
        return ReservationOutcome(status="available", slot_ids=(slot_id,))

    def set_slot_pricing(
        self,
        slot_id: int,
        flags: PricingFlags,
        caller: CallerContext,
    ) -> ReservationOutcome:
        slot, rejection = self._managed_slot(slot_id, caller)
        if rejection is not None:
            return rejection

        result = self.store.set_pricing(slot_id, flags)
        if not result.ok:
            return self._rejected(result.reason, [slot_id])

        invalidate_for_slots(self.redis, [slot])
        return ReservationOutcome(status="repriced", slot_ids=(slot_id,))

    def set_slot_restrictions(
        self,
        slot_id: int,
        restrictions: SlotRestrictions,
        caller: CallerContext,
    ) -> ReservationOutcome:
        slot, rejection = self._managed_slot(slot_id, caller)
        if rejection is not None:
            return rejection

        result = self.store.set_restrictions(slot_id, restrictions)
        if not result.ok:
            return self._rejected(result.reason, [slot_id])

        invalidate_for_slots(self.redis, [slot])
        logger.info(f"Restrictions of slot {slot_id} updated by user {caller.user_id}")
        return ReservationOutcome(status="restricted", slot_ids=(slot_id,))

    # ── Helpers ──────────────────────────────────────────────────────────

    def _validate(
        self,
        ids: list[int],
        slots: list[Slot],
        caller: CallerContext,
        now: datetime,
    ) -> Optional[RejectionReason]:
        if len(slots) != len(ids):
            return RejectionReason.SLOT_NOT_FOUND

        if not is_contiguous(slots):
            return RejectionReason.PARTIAL_WINDOW_UNAVAILABLE

        # slots come ordered by start; only the first slot decides "taken"
        for position, slot in enumerate(slots):
            if position > 0 and slot.status != AVAILABLE:
                return RejectionReason.PARTIAL_WINDOW_UNAVAILABLE
            if slot.status == BOOKED:
                return RejectionReason.ALREADY_TAKEN
            reason = check_restrictions(slot, caller, now)
            if reason is not None:
                return reason
        return None

    def _managed_slot(
        self,
        slot_id: int,
        caller: CallerContext,
    ) -> tuple[Optional[Slot], Optional[ReservationOutcome]]:
        slots = self.store.get_many([slot_id])
        if not slots:
            return None, self._rejected(RejectionReason.SLOT_NOT_FOUND, [slot_id])
        slot = slots[0]
        if not self._manages_court(slot.court_id, caller):
            return slot, self._rejected(RejectionReason.NOT_OWNER, [slot_id])
        return slot, None

    def _manages_court(self, court_id: int, caller: CallerContext) -> bool:
        if caller.is_admin:
            return True
        court = self.directory.get_court(court_id)
        if court is None:
            raise CourtNotFound(court_id)
        return caller.user_id is not None and court.owner_id == caller.user_id

    def _require_court_manager(self, court_id: int, caller: CallerContext) -> None:
        if not self._manages_court(court_id, caller):
            logger.warning(f"User {caller.user_id} tried to manage court {court_id}")
            raise NotCourtOwner(court_id, caller.user_id)

    def _after_release(self, booking_ref: str, ids: list[int], **extra) -> None:
        slots = self.store.get_many(ids)
        invalidate_for_slots(self.redis, slots)
        self._emit("slots_released", booking_ref, slots, **extra)

    def _rejected(
        self,
        reason: RejectionReason,
        ids: list[int],
        booking_ref: str | None = None,
    ) -> ReservationOutcome:
        logger.info(f"Rejected {booking_ref or 'slot action'} on {ids}: {reason.value}")
        return ReservationOutcome(status="rejected", reason=reason, slot_ids=tuple(ids), booking_ref=booking_ref)

    def _emit(self, event_type: str, booking_ref: str | None, slots: list[Slot], **extra) -> None:
        if not slots:
            return
        caller = extra.pop("caller", None)
        payload = {
            "booking_ref": booking_ref,
            "court_id": slots[0].court_id,
            "venue_id": slots[0].venue_id,
            "date": slots[0].date,
            "start_time": slots[0].start_time,
            "end_time": slots[-1].end_time,
            "slot_ids": [s.id for s in slots],
            **extra,
        }
        if caller is not None:
            payload["user_id"] = caller.user_id
        try:
            self.notify(event_type, payload)
        except Exception:
            logger.exception(f"Notification {event_type} failed")


# ── Window search ────────────────────────────────────────────────────────


def consecutive_run(
    slots: list[Slot],
    start_time: str,
    duration_minutes: int,
) -> list[Slot] | None:
    """
    Chain slots end-to-start from start_time until duration_minutes is covered.

    Returns None when the chain breaks (gap, closing time) before that.
    A duration that is not a multiple of the slot length is rounded up
    to whole slots.
    """
    by_start: dict[str, Slot] = {}
    for slot in sorted(slots, key=lambda s: (s.start_time, s.end_time)):
        by_start.setdefault(slot.start_time, slot)

    run: list[Slot] = []
    covered = 0
    cursor = start_time
    while covered < duration_minutes:
        slot = by_start.get(cursor)
        if slot is None:
            return None
        run.append(slot)
        covered += slot.duration
        cursor = slot.end_time
    return run


def find_windows(
    slots: list[Slot],
    duration_minutes: int,
    caller: CallerContext,
    now: datetime,
) -> list[BookableWindow]:
    """Every start slot whose consecutive run is bookable by caller, by start time."""
    windows = []
    for first in sorted(slots, key=lambda s: (s.start_time, s.end_time)):
        run = consecutive_run(slots, first.start_time, duration_minutes)
        if run is None or run[0].id != first.id:
            continue
        if any(check_restrictions(s, caller, now) is not None for s in run):
            continue
        windows.append(BookableWindow(
            date=first.date,
            start_time=first.start_time,
            end_time=run[-1].end_time,
            price=resolve_total(run),
            slot_ids=tuple(s.id for s in run),
        ))
    return windows


def is_contiguous(slots: list[Slot]) -> bool:
    """Same court, same date, each slot starting where the previous one ends."""
    ordered = sorted(slots, key=lambda s: (s.date, s.start_time))
    for prev, cur in zip(ordered, ordered[1:]):
        if (cur.court_id, cur.date) != (prev.court_id, prev.date) or cur.start_time != prev.end_time:
            return False
    return True
