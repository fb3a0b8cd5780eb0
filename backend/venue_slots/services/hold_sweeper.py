"""
Reservation hold sweeper.

Periodically releases reservations whose unpaid hold has expired
(hold_expires_at <= now), so that a client that walked away during
payment does not keep slots booked forever.

Runs as an asyncio task in backend lifespan.
Uses the synchronous orchestrator (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from .slots.orchestrator import BookingOrchestrator

logger = logging.getLogger(__name__)


async def hold_sweeper_loop(
    orchestrator_factory: Callable[[], BookingOrchestrator],
    interval_seconds: int,
) -> None:
    """
    Periodic loop releasing expired holds.

    A failed sweep is logged and retried on the next tick.
    """
    logger.info("hold_sweeper_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(sweep_expired_holds, orchestrator_factory())
            except asyncio.CancelledError:
                logger.info("hold_sweeper_loop cancelled")
                raise
            except Exception:
                logger.exception("hold_sweeper_loop error")

            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        pass


def sweep_expired_holds(orchestrator: BookingOrchestrator, now: datetime | None = None) -> int:
    """Release expired holds once (synchronous)."""
    released = orchestrator.release_expired_holds(now or datetime.now())
    if released:
        logger.info(f"Released {released} expired reservation hold(s)")
    return released
