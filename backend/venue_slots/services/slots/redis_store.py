# backend/venue_slots/services/slots/redis_store.py
"""
Redis cache for per-court day listings.

Key format: slots:day:{court_id}:{date}
Value: JSON list of slot snapshots ordered by start_time.

Version keys: slots:ver:{court_id} and slots:ver:{court_id}:{date}
Every invalidation increments them. A reader takes the versions before
it queries the database and writes its listing back only if they are
unchanged (WATCH/MULTI), so a listing read before a write can never
land in the cache after that write invalidated the day.

The cache only serves availability queries. Reservations always go to
the database, so a stale listing can at worst offer a slot that then
comes back as ALREADY_TAKEN.
"""

import json
import logging
from dataclasses import asdict
from datetime import date

from redis import Redis
from redis.exceptions import RedisError, WatchError

from .config import BookingConfig, get_booking_config
from .types import Slot

logger = logging.getLogger(__name__)

CacheVersion = tuple[str | None, ...]


class SlotsRedisStore:
    """Redis storage wrapper for cached day listings."""

    KEY_PREFIX = "slots:day"
    VERSION_PREFIX = "slots:ver"
    VERSION_TTL_SECONDS = 7 * 24 * 3600

    def __init__(self, redis: Redis, config: BookingConfig | None = None):
        self.redis = redis
        self.config = config or get_booking_config()

    def _key(self, court_id: int, dt: date | str) -> str:
        return f"{self.KEY_PREFIX}:{court_id}:{_day(dt)}"

    def _version_keys(self, court_id: int, dt: date | str) -> list[str]:
        return [f"{self.VERSION_PREFIX}:{court_id}", f"{self.VERSION_PREFIX}:{court_id}:{_day(dt)}"]

    # ── Write ────────────────────────────────────────────────────────────

    def get_version(self, court_id: int, dt: date | str) -> CacheVersion | None:
        """
        Current invalidation version of a day.

        Returns:
            Opaque version to hand to store_day_slots, or None if Redis failed.
        """
        try:
            return tuple(self.redis.mget(self._version_keys(court_id, dt)))
        except RedisError as e:
            logger.warning(f"Slots cache version read failed for court {court_id} on {dt}: {e}")
            return None

    def store_day_slots(
        self,
        court_id: int,
        dt: date | str,
        slots: list[Slot],
        version: CacheVersion | None,
    ) -> bool:
        """
        Cache the full slot listing of a day.

        Written only if the day was not invalidated since version was
        read. Returns True when the listing was stored.
        """
        if version is None:
            return False

        keys = self._version_keys(court_id, dt)
        payload = json.dumps([asdict(s) for s in slots])
        try:
            with self.redis.pipeline() as pipe:
                pipe.watch(*keys)
                if tuple(pipe.mget(keys)) != tuple(version):
                    logger.debug(f"Slots of court {court_id} on {dt} changed while listing, not cached")
                    return False
                pipe.multi()
                pipe.setex(self._key(court_id, dt), self.config.cache_ttl_seconds, payload)
                pipe.execute()
            return True
        except WatchError:
            logger.debug(f"Slots of court {court_id} on {dt} invalidated during cache write")
            return False
        except RedisError as e:
            logger.warning(f"Failed to cache slots for court {court_id} on {dt}: {e}")
            return False

    # ── Read ─────────────────────────────────────────────────────────────

    def get_day_slots(self, court_id: int, dt: date | str) -> list[Slot] | None:
        """
        Get a cached day listing.

        Returns:
            List of slots, or None on cache miss (or Redis failure).
        """
        try:
            raw = self.redis.get(self._key(court_id, dt))
        except RedisError as e:
            logger.warning(f"Slots cache read failed for court {court_id} on {dt}: {e}")
            return None

        if raw is None:
            return None

        if isinstance(raw, bytes):
            raw = raw.decode()
        try:
            items = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return [
            Slot(**{**item, "allowed_user_types": tuple(item.get("allowed_user_types") or ())})
            for item in items
        ]

    # ── Delete ───────────────────────────────────────────────────────────

    def delete_day_slots(
        self,
        court_id: int,
        dates: list[date | str] | None = None,
    ) -> int:
        """
        Delete cached listings and bump their versions.

        Args:
            court_id: Court ID
            dates: Specific dates, or None to delete all for the court.

        Returns:
            Number of deleted keys.
        """
        try:
            if dates:
                keys = [self._key(court_id, dt) for dt in dates]
                versions = [self._version_keys(court_id, dt)[1] for dt in dates]
            else:
                keys = list(self.redis.scan_iter(match=f"{self.KEY_PREFIX}:{court_id}:*"))
                versions = [f"{self.VERSION_PREFIX}:{court_id}"]

            pipe = self.redis.pipeline()
            for version_key in versions:
                pipe.incr(version_key)
                pipe.expire(version_key, self.VERSION_TTL_SECONDS)
            if keys:
                pipe.delete(*keys)
            results = pipe.execute()
            return results[-1] if keys else 0
        except RedisError as e:
            logger.warning(f"Slots cache invalidation failed for court {court_id}: {e}")
            return 0


def _day(dt: date | str) -> str:
    return dt if isinstance(dt, str) else dt.isoformat()
