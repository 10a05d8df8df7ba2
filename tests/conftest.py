import asyncio
import fnmatch

import pytest
import redis
from fastapi.testclient import TestClient

from app import app
from backend import EdgeCacheSnapshotStore, RedisSnapshotStore, get_store
from edge_cache import EdgeCache
from live import StreamOptions, get_stream_options
from routers.views import get_listing_store

START_MS = 1_767_225_600_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeRedis:
    """The handful of redis commands the store uses, kept in a dict."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail_writes = False
        self.reads = 0

    def ping(self):
        return True

    def get(self, key):
        self.reads += 1
        return self.data.get(key)

    def set(self, key, value, ex=None):
        if self.fail_writes:
            raise redis.ConnectionError("write refused")
        self.data[key] = value
        if ex:
            self.ttls[key] = ex
        return True

    def scan_iter(self, match="*", count=None):
        for key in list(self.data):
            if fnmatch.fnmatchcase(key, match):
                yield key


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_store(fake_redis, clock):
    return RedisSnapshotStore(fake_redis, clock=clock)


@pytest.fixture
def cache_store(clock):
    return EdgeCacheSnapshotStore(EdgeCache(), clock=clock)


@pytest.fixture(params=["redis", "cache"])
def store(request, redis_store, cache_store):
    return redis_store if request.param == "redis" else cache_store


@pytest.fixture
def stream_options(clock):
    async def fake_sleep(seconds):
        clock.advance(int(seconds * 1000))
        await asyncio.sleep(0)

    return StreamOptions(clock=clock, sleep=fake_sleep)


@pytest.fixture
def client(store, stream_options):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_listing_store] = lambda: store
    app.dependency_overrides[get_stream_options] = lambda: stream_options
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
