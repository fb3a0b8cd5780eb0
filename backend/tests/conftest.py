import json
from fnmatch import fnmatch
from unittest.mock import MagicMock

import pytest
from redis.exceptions import WatchError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from venue_slots.models.generated import Base, Courts
from venue_slots.services.slots import (
    AvailabilityStore,
    BookingConfig,
    BookingOrchestrator,
    CallerContext,
    CourtDirectory,
)

WEEKDAY_HOURS = {"is_open": True, "hours": [{"start": "09:00", "end": "17:00"}]}


@pytest.fixture
def session_factory(tmp_path):
    # File database so that worker threads get their own connections
    engine = create_engine(
        f"sqlite:///{tmp_path / 'slots.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def make_court(session_factory):
    def _make(**overrides) -> int:
        values = {
            "venue_id": 7,
            "owner_id": 100,
            "name": "Court 1",
            "sport": "tennis",
            "price_per_hour": 100.0,
            "availability": {
                day: WEEKDAY_HOURS
                for day in ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
            },
            "peak_hour_pricing": {},
            "maintenance": {},
        }
        values.update(overrides)
        for key in ("availability", "peak_hour_pricing", "maintenance"):
            values[key] = json.dumps(values[key])

        db = session_factory()
        try:
            court = Courts(**values)
            db.add(court)
            db.commit()
            return court.id
        finally:
            db.close()

    return _make


@pytest.fixture
def court_id(make_court):
    return make_court()


@pytest.fixture
def store(session_factory):
    return AvailabilityStore(session_factory)


@pytest.fixture
def directory(session_factory):
    return CourtDirectory(session_factory)


@pytest.fixture
def notify():
    return MagicMock()


@pytest.fixture
def orchestrator(store, directory, notify):
    return BookingOrchestrator(store, directory, BookingConfig(), redis=None, notify=notify)


@pytest.fixture
def guest():
    return CallerContext(user_id=42, role="user", user_type="guest")


@pytest.fixture
def owner():
    return CallerContext(user_id=100, role="owner", user_type="member")


@pytest.fixture
def admin():
    return CallerContext(user_id=1, role="admin", user_type="member")


# ── In-memory Redis ──────────────────────────────────────────────────────


class FakeRedis:
    """Just the Redis commands the day cache uses, with decode_responses semantics."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.data.get(key)

    def mget(self, keys):
        return [self.data.get(k) for k in keys]

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def incr(self, key):
        value = int(self.data.get(key) or 0) + 1
        self.data[key] = str(value)
        return value

    def expire(self, key, ttl):
        if key not in self.data:
            return False
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                deleted += 1
            self.ttls.pop(key, None)
        return deleted

    def scan_iter(self, match="*"):
        return iter([k for k in list(self.data) if fnmatch(k, match)])

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Buffers commands until execute(); after watch() and before multi() they run immediately."""

    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.reset()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.reset()

    def reset(self):
        self.watched = {}
        self.queued = []
        self.immediate = False

    def watch(self, *keys):
        self.watched = {k: self.redis.data.get(k) for k in keys}
        self.immediate = True

    def multi(self):
        self.immediate = False

    def execute(self):
        changed = any(self.redis.data.get(k) != v for k, v in self.watched.items())
        queued = self.queued
        self.reset()
        if changed:
            raise WatchError("Watched variable changed.")
        return [getattr(self.redis, name)(*args) for name, args in queued]

    def __getattr__(self, name):
        command = getattr(self.redis, name)

        def call(*args):
            if self.immediate:
                return command(*args)
            self.queued.append((name, args))
            return self

        return call


@pytest.fixture
def fake_redis():
    return FakeRedis()
