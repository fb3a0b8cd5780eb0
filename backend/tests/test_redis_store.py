import asyncio
import json
from datetime import date
from unittest.mock import MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from venue_slots.services.events import P2P_QUEUE, emit_event
from venue_slots.services.hold_sweeper import hold_sweeper_loop
from venue_slots.services.slots import BookingConfig, SlotsRedisStore, invalidate_court_cache
from venue_slots.services.slots.invalidator import get_affected_dates, invalidate_for_slots
from venue_slots.services.slots.types import Slot

MONDAY = date(2030, 1, 7)
DAY_KEY = "slots:day:3:2030-01-07"


def _slot(slot_id, court_id=3, day="2030-01-07"):
    return Slot(
        id=slot_id, court_id=court_id, venue_id=1, date=day,
        start_time="09:00", end_time="10:00", duration=60, price=100.0,
        allowed_user_types=("member",),
    )


def test_store_and_read_back(fake_redis):
    cache = SlotsRedisStore(fake_redis, BookingConfig(cache_ttl_seconds=120))

    version = cache.get_version(3, MONDAY)
    assert cache.store_day_slots(3, MONDAY, [_slot(1), _slot(2)], version) is True

    assert fake_redis.ttls[DAY_KEY] == 120
    slots = cache.get_day_slots(3, MONDAY)
    assert slots == [_slot(1), _slot(2)]
    assert slots[0].allowed_user_types == ("member",)


def test_cache_miss(fake_redis):
    assert SlotsRedisStore(fake_redis).get_day_slots(3, MONDAY) is None


def test_redis_failures_are_swallowed():
    redis = MagicMock()
    redis.get.side_effect = RedisConnectionError("down")
    redis.mget.side_effect = RedisConnectionError("down")
    redis.pipeline.side_effect = RedisConnectionError("down")
    redis.scan_iter.side_effect = RedisConnectionError("down")
    cache = SlotsRedisStore(redis)

    assert cache.get_day_slots(3, MONDAY) is None
    assert cache.get_version(3, MONDAY) is None
    assert cache.store_day_slots(3, MONDAY, [_slot(1)], (None, None)) is False
    assert cache.delete_day_slots(3, [MONDAY]) == 0
    assert cache.delete_day_slots(3) == 0


def test_unknown_version_is_never_written(fake_redis):
    cache = SlotsRedisStore(fake_redis)

    assert cache.store_day_slots(3, MONDAY, [_slot(1)], None) is False
    assert fake_redis.get(DAY_KEY) is None


def test_corrupt_payload_is_a_miss(fake_redis):
    fake_redis.setex(DAY_KEY, 60, "{not json")

    assert SlotsRedisStore(fake_redis).get_day_slots(3, MONDAY) is None


# ── Versioned writes ─────────────────────────────────────────────────────


def test_listing_read_before_day_invalidation_is_not_written(fake_redis):
    cache = SlotsRedisStore(fake_redis)
    version = cache.get_version(3, MONDAY)

    # a reservation lands between the database read and the cache write
    invalidate_court_cache(fake_redis, 3, [MONDAY])

    assert cache.store_day_slots(3, MONDAY, [_slot(1)], version) is False
    assert fake_redis.get(DAY_KEY) is None

    fresh = cache.get_version(3, MONDAY)
    assert cache.store_day_slots(3, MONDAY, [_slot(1)], fresh) is True


def test_listing_read_before_court_wide_invalidation_is_not_written(fake_redis):
    cache = SlotsRedisStore(fake_redis)
    version = cache.get_version(3, MONDAY)

    invalidate_court_cache(fake_redis, 3)

    assert cache.store_day_slots(3, MONDAY, [_slot(1)], version) is False
    assert fake_redis.get(DAY_KEY) is None


def test_other_days_do_not_block_the_write(fake_redis):
    cache = SlotsRedisStore(fake_redis)
    version = cache.get_version(3, MONDAY)

    invalidate_court_cache(fake_redis, 3, [date(2030, 1, 8)])
    invalidate_court_cache(fake_redis, 5, [MONDAY])

    assert cache.store_day_slots(3, MONDAY, [_slot(1)], version) is True


def test_invalidation_inside_the_transaction_aborts_the_write(fake_redis):
    cache = SlotsRedisStore(fake_redis)
    version = cache.get_version(3, MONDAY)
    real_mget = fake_redis.mget

    def mget_then_invalidate(keys):
        values = real_mget(keys)
        fake_redis.incr("slots:ver:3:2030-01-07")
        return values

    with patch.object(fake_redis, "mget", side_effect=mget_then_invalidate):
        assert cache.store_day_slots(3, MONDAY, [_slot(1)], version) is False

    assert fake_redis.get(DAY_KEY) is None


# ── Invalidation ─────────────────────────────────────────────────────────


def test_delete_all_dates_of_court(fake_redis):
    fake_redis.setex("slots:day:3:2030-01-07", 60, "[]")
    fake_redis.setex("slots:day:3:2030-01-08", 60, "[]")
    fake_redis.setex("slots:day:4:2030-01-07", 60, "[]")

    assert invalidate_court_cache(fake_redis, 3) == 2
    assert fake_redis.get("slots:day:4:2030-01-07") == "[]"
    assert fake_redis.get("slots:ver:3") == "1"
    assert fake_redis.ttls["slots:ver:3"] == SlotsRedisStore.VERSION_TTL_SECONDS


def test_invalidation_without_redis():
    assert invalidate_court_cache(None, 3, [MONDAY]) == 0
    assert invalidate_for_slots(None, [_slot(1)]) == 0


def test_invalidate_for_slots_groups_by_court_and_date(fake_redis):
    for key in ("slots:day:3:2030-01-07", "slots:day:3:2030-01-08", "slots:day:5:2030-01-07"):
        fake_redis.setex(key, 60, "[]")

    deleted = invalidate_for_slots(
        fake_redis, [_slot(1), _slot(2), _slot(3, day="2030-01-08"), _slot(4, court_id=5)]
    )

    assert deleted == 3
    assert fake_redis.get("slots:ver:3:2030-01-07") == "1"
    assert fake_redis.get("slots:ver:3:2030-01-08") == "1"
    assert fake_redis.get("slots:ver:5:2030-01-07") == "1"


def test_affected_dates():
    assert get_affected_dates(date(2030, 1, 9), date(2030, 1, 7)) == [
        date(2030, 1, 7), date(2030, 1, 8), date(2030, 1, 9),
    ]


# ── Events ───────────────────────────────────────────────────────────────


def test_emit_event_pushes_to_queue():
    redis = MagicMock()

    emit_event("slots_reserved", {"booking_ref": "booking-a", "slot_ids": [1, 2]}, redis=redis)

    queue, raw = redis.rpush.call_args.args
    event = json.loads(raw)
    assert queue == P2P_QUEUE
    assert event["type"] == "slots_reserved"
    assert event["slot_ids"] == [1, 2]
    assert "ts" in event


def test_emit_event_failure_is_logged(caplog):
    redis = MagicMock()
    redis.rpush.side_effect = RedisConnectionError("down")

    emit_event("slots_released", {"booking_ref": "booking-a"}, redis=redis)

    assert "Failed to emit event slots_released" in caplog.text


# ── Hold sweeper ─────────────────────────────────────────────────────────


def test_sweeper_loop_survives_errors_and_stops_on_cancel():
    orchestrator = MagicMock()
    orchestrator.release_expired_holds.side_effect = [RuntimeError("db down"), 2] + [0] * 1000
    orchestrator_factory = MagicMock(return_value=orchestrator)

    async def run():
        task = asyncio.create_task(hold_sweeper_loop(orchestrator_factory, 0))
        while orchestrator.release_expired_holds.call_count < 3:
            await asyncio.sleep(0.01)
        task.cancel()
        await task

    asyncio.run(run())

    assert orchestrator.release_expired_holds.call_count >= 3
