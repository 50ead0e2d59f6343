"""
Redis Mutex - Lock Instance Tests

Retry driver, scoped execution and the raising variants.
"""

from unittest.mock import AsyncMock

import pytest

from redis_mutex import mutex as mutex_module
from redis_mutex.exceptions import (
    AcquisitionFailed,
    ConfigurationError,
    ReleaseFailed,
    StoreUnavailable,
    UsageError,
)
from redis_mutex.mutex import RedisMutex, key_for
from redis_mutex.store import set_store


class Record:
    def __init__(self, id):
        self.id = id


class TestRetryDriver:
    """Tests for lock() polling."""

    @pytest.mark.asyncio
    async def test_non_blocking_tries_once(self, make_mutex, clock):
        mutex = make_mutex(block=0)
        mutex.policy.try_acquire = AsyncMock(return_value=False)

        assert await mutex.lock() is False
        assert mutex.policy.try_acquire.await_count == 1
        assert clock.sleep_calls == []

    @pytest.mark.asyncio
    async def test_blocking_polls_until_timeout(self, make_mutex, clock):
        mutex = make_mutex(block=1, sleep=0.25)
        mutex.policy.try_acquire = AsyncMock(return_value=False)

        assert await mutex.lock() is False
        assert mutex.policy.try_acquire.await_count == 4
        assert clock.sleep_calls == [0.25, 0.25, 0.25, 0.25]

    @pytest.mark.asyncio
    async def test_blocking_succeeds_when_lock_frees_up(self, make_mutex, clock):
        mutex = make_mutex(block=1, sleep=0.1)
        mutex.policy.try_acquire = AsyncMock(side_effect=[False, False, True])

        assert await mutex.lock() is True
        assert mutex.locking is True
        assert len(clock.sleep_calls) == 2

    @pytest.mark.asyncio
    async def test_blocking_waits_out_expired_holder(self, make_mutex, clock):
        """A waiter gets the lock once the holder's record goes stale."""
        holder = make_mutex(expire=0.5)
        await holder.lock()

        waiter = make_mutex(block=2, sleep=0.1)
        assert await waiter.lock() is True
        assert 0.4 <= sum(clock.sleep_calls) <= 0.7


class TestRaisingVariants:
    """Tests for must_lock() and must_unlock()."""

    @pytest.mark.asyncio
    async def test_must_lock_raises_when_held(self, make_mutex):
        await make_mutex().must_lock()

        with pytest.raises(AcquisitionFailed) as exc_info:
            await make_mutex().must_lock()
        assert exc_info.value.lock_key == "test_lock"

    @pytest.mark.asyncio
    async def test_must_unlock_raises_after_release(self, make_mutex):
        mutex = make_mutex()
        assert await mutex.lock() is True
        assert await mutex.unlock() is True

        with pytest.raises(ReleaseFailed):
            await mutex.must_unlock()


class TestWithLock:
    """Tests for scoped execution."""

    @pytest.mark.asyncio
    async def test_returns_value_of_body(self, make_mutex, store):
        mutex = make_mutex()
        assert await mutex.with_lock(lambda: "test_result") == "test_result"
        assert await store.get("test_lock") is None

    @pytest.mark.asyncio
    async def test_awaits_async_body(self, make_mutex, store):
        async def body():
            assert await store.get("test_lock") is not None
            return 42

        assert await make_mutex().with_lock(body) == 42
        assert await store.get("test_lock") is None

    @pytest.mark.asyncio
    async def test_releases_when_body_raises(self, make_mutex, store):
        def body():
            raise RuntimeError("Something went wrong!")

        with pytest.raises(RuntimeError, match="Something went wrong!"):
            await make_mutex().with_lock(body)
        assert await store.get("test_lock") is None

    @pytest.mark.asyncio
    async def test_release_failure_does_not_shadow_body_error(self, make_mutex):
        mutex = make_mutex()
        mutex.policy.release = AsyncMock(side_effect=StoreUnavailable("connection lost"))

        def body():
            raise ValueError("original")

        with pytest.raises(ValueError, match="original"):
            await mutex.with_lock(body)
        mutex.policy.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_requires_body(self, make_mutex):
        with pytest.raises(UsageError):
            await make_mutex().with_lock()

        # Usage errors are also TypeErrors
        with pytest.raises(TypeError):
            await make_mutex().with_lock(None)

    @pytest.mark.asyncio
    async def test_body_not_run_when_lock_held(self, make_mutex):
        await make_mutex().lock()
        calls = []

        with pytest.raises(AcquisitionFailed):
            await make_mutex().with_lock(lambda: calls.append(1))
        assert calls == []

    @pytest.mark.asyncio
    async def test_context_manager_releases_on_error(self, make_mutex, store):
        with pytest.raises(KeyError):
            async with make_mutex() as mutex:
                assert await mutex.locked() is True
                raise KeyError("boom")
        assert await store.get("test_lock") is None

    @pytest.mark.asyncio
    async def test_context_manager_raises_when_held(self, make_mutex):
        await make_mutex().lock()

        with pytest.raises(AcquisitionFailed):
            async with make_mutex():
                pass


class TestConstruction:
    """Tests for keys and options."""

    def test_string_key_used_as_is(self):
        assert key_for("orders:42") == "orders:42"

    def test_object_key_uses_class_and_id(self):
        assert key_for(Record(7)) == "Record:7"

    def test_object_without_id_rejected(self):
        with pytest.raises(ConfigurationError):
            key_for(object())

    def test_unknown_option_rejected(self, store, clock):
        with pytest.raises(ConfigurationError, match="timeout"):
            RedisMutex("k", store=store, clock=clock, timeout=5)

    def test_invalid_type_rejected_at_construction(self, store, clock):
        with pytest.raises(ConfigurationError):
            RedisMutex("k", store=store, clock=clock, type="semaphore")

    def test_defaults_from_settings(self, store, clock):
        mutex = RedisMutex("k", store=store, clock=clock)
        assert mutex.options.expire == 10
        assert mutex.options.block == 1
        assert mutex.options.sleep == 0.1
        assert mutex.options.limit == 1
        assert mutex.options.type == "exclusive"

    def test_holder_token_unique_per_instance(self, store, clock):
        first = RedisMutex("k", store=store, clock=clock)
        second = RedisMutex("k", store=store, clock=clock)
        assert first.holder != second.holder


class TestModuleHelpers:
    """Tests for the module-level conveniences on the shared store."""

    @pytest.mark.asyncio
    async def test_helpers_use_shared_store(self, store, clock):
        set_store(store)

        assert await mutex_module.lock("shared", block=0, clock=clock) is True
        assert await mutex_module.lock("shared", block=0, clock=clock) is False

        result = await mutex_module.with_lock("other", lambda: "done", block=0, clock=clock)
        assert result == "done"

    @pytest.mark.asyncio
    async def test_must_lock_returns_mutex(self, store, clock):
        set_store(store)

        mutex = await mutex_module.must_lock("shared", block=0, clock=clock)
        assert await mutex.unlock() is True
