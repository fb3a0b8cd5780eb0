# backend/venue_slots/services/slots/store.py
"""
Availability Store: the only code that writes time_slots rows.

Every transition is one conditional UPDATE guarded by a row count:

    UPDATE time_slots SET status = 'booked', booking_ref = :ref
     WHERE id IN (:ids) AND status = 'available'

If fewer rows match than ids were requested the transaction is rolled
back and nothing changes. Two concurrent reserves of the same slot can
therefore never both succeed, and a multi-slot reserve is all-or-nothing.
On backends with row locks the ids are first locked in ascending order
so that overlapping multi-slot reserves cannot deadlock.
"""

import json
import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, Iterator

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.generated import TimeSlots
from .errors import RejectionReason
from .pricing import PricingFlags
from .restrictions import check_restrictions
from .types import (
    AVAILABLE,
    BLOCK_TYPES,
    BLOCKED,
    BOOKED,
    MAINTENANCE,
    CallerContext,
    Slot,
    SlotDraft,
    SlotRestrictions,
    StoreResult,
)

logger = logging.getLogger(__name__)


def _timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now()).isoformat(sep=" ", timespec="seconds")


def _hold_stamp(moment: datetime) -> str:
    # hold_expires_at is compared as text, so both sides share this format
    return moment.isoformat(timespec="seconds")


def _unique_ids(slot_ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(int(i) for i in slot_ids))


class AvailabilityStore:
    """Slot state persistence with atomic transitions."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    # ── Bulk insert ──────────────────────────────────────────────────────

    def insert_many(self, drafts: list[SlotDraft]) -> tuple[int, int]:
        """
        Insert generated slots, skipping those that already exist.

        Returns:
            (created, skipped)
        """
        if not drafts:
            return 0, 0

        unique: dict[tuple, SlotDraft] = {}
        for draft in drafts:
            unique.setdefault(draft.key, draft)
        skipped = len(drafts) - len(unique)

        with self._session() as db:
            existing = self._existing_keys(db, list(unique.values()))
            # Same window already stored, or an overlapping window of another length
            fresh = [
                d for key, d in unique.items()
                if key not in existing and not _overlaps_any(d, existing)
            ]
            skipped += len(unique) - len(fresh)

            try:
                db.add_all([_row_from_draft(d) for d in fresh])
                db.commit()
                return len(fresh), skipped
            except IntegrityError:
                db.rollback()
                logger.info(
                    f"Bulk slot insert hit a concurrent duplicate, retrying {len(fresh)} rows one by one"
                )

            created = 0
            for draft in fresh:
                db.add(_row_from_draft(draft))
                try:
                    db.commit()
                    created += 1
                except IntegrityError:
                    db.rollback()
                    skipped += 1

        return created, skipped

    def purge_unbooked(
        self,
        court_id: int,
        date_start: date,
        date_end: date,
        today: date,
    ) -> int:
        """
        Delete non-booked slots of a future date range before regeneration.

        Dates up to and including today are never touched.
        """
        first = max(date_start, today + timedelta(days=1))
        if first > date_end:
            return 0

        with self._session() as db:
            result = db.execute(
                delete(TimeSlots)
                .where(
                    TimeSlots.court_id == court_id,
                    TimeSlots.date >= first.isoformat(),
                    TimeSlots.date <= date_end.isoformat(),
                    TimeSlots.status != BOOKED,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount

    # ── Transitions ──────────────────────────────────────────────────────

    def reserve(
        self,
        slot_ids: Iterable[int],
        booking_ref: str,
        expected_status: str = AVAILABLE,
        hold_until: datetime | None = None,
    ) -> StoreResult:
        """
        Book every slot in slot_ids under booking_ref, or none of them.

        Returns:
            success, or conflict(ALREADY_TAKEN) when any slot was not in
            expected_status at the moment of the update.
        """
        ids = _unique_ids(slot_ids)
        if not ids:
            return StoreResult.conflict(RejectionReason.SLOT_NOT_FOUND)

        with self._session() as db:
            self._lock_rows(db, ids)
            result = db.execute(
                update(TimeSlots)
                .where(TimeSlots.id.in_(ids), TimeSlots.status == expected_status)
                .values(
                    status=BOOKED,
                    booking_ref=booking_ref,
                    hold_expires_at=_hold_stamp(hold_until) if hold_until else None,
                    updated_at=_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(ids):
                db.rollback()
                logger.info(
                    f"Reserve conflict for {booking_ref}: {result.rowcount}/{len(ids)} slots were {expected_status}"
                )
                return StoreResult.conflict(RejectionReason.ALREADY_TAKEN, ids)
            db.commit()

        logger.info(f"Reserved slots {ids} for {booking_ref}")
        return StoreResult.success(ids)

    def release(self, slot_ids: Iterable[int], expected_booking_ref: str) -> StoreResult:
        """
        Return booked slots to available, only if they belong to expected_booking_ref.
        """
        return self._release(slot_ids, expected_booking_ref)

    def release_expired(self, slot_ids: Iterable[int], booking_ref: str, now: datetime) -> StoreResult:
        """
        Release a reservation whose unpaid hold ran out by now.

        The hold is re-checked in the UPDATE itself: a payment confirmed
        after expired_holds() was read clears the hold and makes this
        refuse with NOT_OWNER instead of freeing paid slots.
        """
        return self._release(
            slot_ids,
            booking_ref,
            TimeSlots.hold_expires_at.is_not(None),
            TimeSlots.hold_expires_at <= _hold_stamp(now),
        )

    def confirm(
        self,
        slot_ids: Iterable[int],
        booking_ref: str,
        now: datetime | None = None,
    ) -> StoreResult:
        """
        Drop the hold expiry of a paid reservation.

        With now given, a hold that already ran out is not confirmed:
        the result is HOLD_EXPIRED and the slots stay up for release.
        """
        ids = _unique_ids(slot_ids)
        if not ids:
            return StoreResult.conflict(RejectionReason.NOT_OWNER)

        conditions = [
            TimeSlots.id.in_(ids),
            TimeSlots.status == BOOKED,
            TimeSlots.booking_ref == booking_ref,
        ]
        if now is not None:
            conditions.append(or_(
                TimeSlots.hold_expires_at.is_(None),
                TimeSlots.hold_expires_at > _hold_stamp(now),
            ))

        with self._session() as db:
            result = db.execute(
                update(TimeSlots)
                .where(*conditions)
                .values(hold_expires_at=None, updated_at=_timestamp())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(ids):
                db.rollback()
                owned = db.execute(
                    select(func.count())
                    .select_from(TimeSlots)
                    .where(*conditions[:3])
                ).scalar_one()
                reason = RejectionReason.HOLD_EXPIRED if owned == len(ids) else RejectionReason.NOT_OWNER
                logger.info(f"Confirm refused for {booking_ref}: {reason.value}")
                return StoreResult.conflict(reason, ids)
            db.commit()

        return StoreResult.success(ids)

    def block(
        self,
        slot_id: int,
        reason: str | None,
        block_type: str,
        actor_id: int | None,
    ) -> StoreResult:
        """
        available → blocked. A booked slot cannot be blocked.
        """
        if block_type not in BLOCK_TYPES:
            raise ValueError(f"block_type must be one of {BLOCK_TYPES}, got {block_type!r}")

        with self._session() as db:
            result = db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == slot_id, TimeSlots.status == AVAILABLE)
                .values(
                    status=BLOCKED,
                    block_reason=reason,
                    block_type=block_type,
                    last_modified_by=actor_id,
                    updated_at=_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                db.commit()
                logger.info(f"Slot {slot_id} blocked ({block_type}) by {actor_id}")
                return StoreResult.success([slot_id])
            db.rollback()

            row = db.get(TimeSlots, slot_id)
            if row is None:
                return StoreResult.conflict(RejectionReason.SLOT_NOT_FOUND, [slot_id])
            if row.status == BOOKED:
                return StoreResult.conflict(RejectionReason.CANNOT_BLOCK_BOOKED_SLOT, [slot_id])
            return StoreResult.conflict(RejectionReason.SLOT_NOT_AVAILABLE, [slot_id])

    def unblock(self, slot_id: int, actor_id: int | None = None) -> StoreResult:
        """blocked / maintenance → available. Unblocking an available slot is a no-op."""
        with self._session() as db:
            result = db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == slot_id, TimeSlots.status.in_([BLOCKED, MAINTENANCE]))
                .values(
                    status=AVAILABLE,
                    block_reason=None,
                    block_type=None,
                    last_modified_by=actor_id,
                    updated_at=_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                db.commit()
                logger.info(f"Slot {slot_id} unblocked by {actor_id}")
                return StoreResult.success([slot_id])
            db.rollback()

            row = db.get(TimeSlots, slot_id)
            if row is None:
                return StoreResult.conflict(RejectionReason.SLOT_NOT_FOUND, [slot_id])
            if row.status == AVAILABLE:
                return StoreResult.success([slot_id])
            return StoreResult.conflict(RejectionReason.SLOT_NOT_AVAILABLE, [slot_id])

    def set_pricing(self, slot_id: int, flags: PricingFlags) -> StoreResult:
        """Replace the dynamic pricing inputs of a slot."""
        with self._session() as db:
            result = db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == slot_id)
                .values(
                    is_discounted=int(flags.is_discounted),
                    discount_percentage=flags.discount_percentage,
                    discount_reason=flags.discount_reason,
                    surge_active=int(flags.surge_active),
                    surge_multiplier=flags.surge_multiplier,
                    surge_reason=flags.surge_reason,
                    updated_at=_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                return StoreResult.conflict(RejectionReason.SLOT_NOT_FOUND, [slot_id])
            db.commit()
        return StoreResult.success([slot_id])

    def set_restrictions(self, slot_id: int, restrictions: SlotRestrictions) -> StoreResult:
        with self._session() as db:
            result = db.execute(
                update(TimeSlots)
                .where(TimeSlots.id == slot_id)
                .values(
                    min_advance_hours=restrictions.min_advance_hours,
                    max_advance_hours=restrictions.max_advance_hours,
                    allowed_user_types=json.dumps(list(restrictions.allowed_user_types)),
                    minimum_age=restrictions.minimum_age,
                    maximum_capacity=restrictions.maximum_capacity,
                    updated_at=_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                return StoreResult.conflict(RejectionReason.SLOT_NOT_FOUND, [slot_id])
            db.commit()
        return StoreResult.success([slot_id])

    # ── Read ─────────────────────────────────────────────────────────────

    def get_many(self, slot_ids: Iterable[int]) -> list[Slot]:
        """Slots for the given ids ordered by date and start time. Unknown ids are left out."""
        ids = _unique_ids(slot_ids)
        if not ids:
            return []
        with self._session() as db:
            rows = db.execute(
                select(TimeSlots)
                .where(TimeSlots.id.in_(ids))
                .order_by(TimeSlots.date, TimeSlots.start_time)
            ).scalars().all()
            return [Slot.from_row(r) for r in rows]

    def list_day(self, court_id: int, day: date | str) -> list[Slot]:
        """All slots of a court on a date, ordered by start time."""
        day_str = day if isinstance(day, str) else day.isoformat()
        with self._session() as db:
            rows = db.execute(
                select(TimeSlots)
                .where(TimeSlots.court_id == court_id, TimeSlots.date == day_str)
                .order_by(TimeSlots.start_time, TimeSlots.end_time)
            ).scalars().all()
            return [Slot.from_row(r) for r in rows]

    def find_available(
        self,
        court_id: int,
        day: date | str,
        caller: CallerContext,
        now: datetime,
    ) -> list[Slot]:
        """Available slots that pass the restriction check for caller, by start time."""
        return [
            s for s in self.list_day(court_id, day)
            if s.status == AVAILABLE and check_restrictions(s, caller, now) is None
        ]

    def find_by_booking_ref(self, booking_ref: str) -> list[Slot]:
        with self._session() as db:
            rows = db.execute(
                select(TimeSlots)
                .where(TimeSlots.booking_ref == booking_ref)
                .order_by(TimeSlots.date, TimeSlots.start_time)
            ).scalars().all()
            return [Slot.from_row(r) for r in rows]

    def expired_holds(self, now: datetime) -> dict[str, list[int]]:
        """Booked slots whose unpaid hold has run out, grouped by booking ref."""
        cutoff = _hold_stamp(now)
        with self._session() as db:
            rows = db.execute(
                select(TimeSlots.id, TimeSlots.booking_ref)
                .where(
                    TimeSlots.status == BOOKED,
                    TimeSlots.hold_expires_at.is_not(None),
                    TimeSlots.hold_expires_at <= cutoff,
                )
                .order_by(TimeSlots.id)
            ).all()

        holds: dict[str, list[int]] = {}
        for slot_id, ref in rows:
            holds.setdefault(ref, []).append(slot_id)
        return holds

    # ── Helpers ──────────────────────────────────────────────────────────

    def _release(self, slot_ids: Iterable[int], booking_ref: str, *conditions) -> StoreResult:
        ids = _unique_ids(slot_ids)
        if not ids:
            return StoreResult.conflict(RejectionReason.NOT_OWNER)

        with self._session() as db:
            self._lock_rows(db, ids)
            result = db.execute(
                update(TimeSlots)
                .where(
                    TimeSlots.id.in_(ids),
                    TimeSlots.status == BOOKED,
                    TimeSlots.booking_ref == booking_ref,
                    *conditions,
                )
                .values(
                    status=AVAILABLE,
                    booking_ref=None,
                    hold_expires_at=None,
                    updated_at=_timestamp(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(ids):
                db.rollback()
                logger.info(
                    f"Release refused for {booking_ref}: {result.rowcount}/{len(ids)} slots matched"
                )
                return StoreResult.conflict(RejectionReason.NOT_OWNER, ids)
            db.commit()

        logger.info(f"Released slots {ids} of {booking_ref}")
        return StoreResult.success(ids)

    @staticmethod
    def _lock_rows(db: Session, ids: list[int]) -> None:
        # FOR UPDATE is not rendered on SQLite, where writers are serialized anyway
        db.execute(
            select(TimeSlots.id)
            .where(TimeSlots.id.in_(ids))
            .order_by(TimeSlots.id)
            .with_for_update()
        ).all()

    @staticmethod
    def _existing_keys(db: Session, drafts: list[SlotDraft]) -> set[tuple]:
        court_ids = {d.court_id for d in drafts}
        dates = {d.date for d in drafts}
        rows = db.execute(
            select(TimeSlots.court_id, TimeSlots.date, TimeSlots.start_time, TimeSlots.end_time)
            .where(TimeSlots.court_id.in_(court_ids), TimeSlots.date.in_(dates))
        ).all()
        return {tuple(r) for r in rows}


def _overlaps_any(draft: SlotDraft, existing: set[tuple]) -> bool:
    return any(
        court_id == draft.court_id
        and day == draft.date
        and start < draft.end_time
        and draft.start_time < end
        for court_id, day, start, end in existing
    )


def _row_from_draft(draft: SlotDraft) -> TimeSlots:
    return TimeSlots(
        court_id=draft.court_id,
        venue_id=draft.venue_id,
        date=draft.date,
        start_time=draft.start_time,
        end_time=draft.end_time,
        duration=draft.duration,
        price=draft.price,
        original_price=draft.price,
        status=draft.status,
        block_type=draft.block_type,
        block_reason=draft.block_reason,
        is_peak_hour=int(draft.is_peak_hour),
        is_recurring=int(draft.is_recurring),
        min_advance_hours=draft.min_advance_hours,
        max_advance_hours=draft.max_advance_hours,
        allowed_user_types=json.dumps(list(draft.allowed_user_types)),
        surge_multiplier=1.0,
    )
