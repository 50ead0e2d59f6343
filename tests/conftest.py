"""
Redis Mutex - Shared Test Fixtures

In-memory Redis (fakeredis) plus a fake clock so expiry behaviour is
deterministic.
"""

import fakeredis
import pytest

from redis_mutex.clock import FakeClock
from redis_mutex.config import reset_settings
from redis_mutex.mutex import RedisMutex
from redis_mutex.store import RedisStore, reset_store

START = 1_700_000_000.0
NAMESPACE = "test-mutex"


@pytest.fixture(autouse=True)
def reset_singletons():
    """Each test starts from fresh settings and no shared store."""
    reset_settings()
    reset_store()
    yield
    reset_settings()
    reset_store()


@pytest.fixture
def redis_client():
    """Isolated in-memory Redis with decoded responses."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def store(redis_client):
    return RedisStore(redis_client, namespace=NAMESPACE)


@pytest.fixture
def clock():
    return FakeClock(start=START)


@pytest.fixture
def make_mutex(store, clock):
    """Factory for mutexes sharing the fake store and clock."""

    def _make(key="test_lock", **options):
        options.setdefault("block", 0)
        return RedisMutex(key, store=store, clock=clock, **options)

    return _make
