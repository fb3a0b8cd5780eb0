"""
backend/venue_slots/services/events.py

Event emitter: pushes slot events to a Redis queue for the notification service.

Queue:
- events:p2p: instant delivery (booking notifications to specific users)

Delivery is fire-and-forget: a failed push is logged and never
propagates into the booking flow.
"""

import json
import time
import logging

from redis import Redis

from ..redis_client import redis_client

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def emit_event(event_type: str, payload: dict, redis: Redis | None = None) -> None:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    client = redis if redis is not None else redis_client
    try:
        client.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
