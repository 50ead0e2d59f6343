"""
Redis Mutex - Lock Instance

RedisMutex ties a lock key, its options and a policy together and adds the
blocking retry loop and scoped execution on top of the policy's single
non-blocking attempt.

Usage:
    mutex = RedisMutex("reports:nightly", expire=30, block=5)

    if await mutex.lock():
        try:
            ...
        finally:
            await mutex.unlock()

    # Or let the mutex release on every exit path
    result = await mutex.with_lock(build_report)

    async with RedisMutex("reports:nightly"):
        ...
"""

import inspect
import uuid
from typing import Any, Awaitable, Callable, Optional, Union

import structlog

from redis_mutex.clock import Clock, get_clock
from redis_mutex.config import MutexOptions, MutexSettings, get_settings
from redis_mutex.exceptions import (
    AcquisitionFailed,
    ConfigurationError,
    MutexError,
    ReleaseFailed,
    UsageError,
)
from redis_mutex.policies import LockState, create_policy
from redis_mutex.store import RedisStore, get_store

logger = structlog.get_logger(__name__)

OPTION_NAMES = frozenset({"expire", "block", "sleep", "limit", "type"})

Body = Callable[[], Union[Any, Awaitable[Any]]]


def key_for(resource: Any) -> str:
    """
    Derive a lock key from a resource.

    Strings are used as-is. Any other object maps to "<ClassName>:<id>",
    so two instances of the same record share a lock.
    """
    if isinstance(resource, str):
        return resource
    resource_id = getattr(resource, "id", None)
    if resource_id is None:
        raise ConfigurationError(
            f"Cannot derive a lock key from {type(resource).__name__}: "
            "pass a string or an object with an 'id' attribute"
        )
    return f"{type(resource).__name__}:{resource_id}"


class RedisMutex:
    """
    One lock instance: a key, a policy and this instance's holder token.

    Options (seconds unless noted):
        expire: Age after which an unreleased record is stale (default 10)
        block: How long lock() waits; 0 means try once (default 1)
        sleep: Poll interval while blocking (default 0.1)
        limit: Capacity for the counting policies (default 1)
        type: exclusive, bounded_concurrency, cumulative_rate or windowed_rate
    """

    def __init__(
        self,
        resource: Any,
        store: Optional[RedisStore] = None,
        clock: Optional[Clock] = None,
        settings: Optional[MutexSettings] = None,
        **options: Any,
    ):
        unknown = set(options) - OPTION_NAMES
        if unknown:
            raise ConfigurationError(f"Unknown lock options: {', '.join(sorted(unknown))}")

        settings = settings or get_settings()
        self.key = key_for(resource)
        self.options = MutexOptions.from_settings(settings, **options)
        self.store = store or get_store()
        self.clock = clock or get_clock()
        self.policy = create_policy(
            self.options.type,
            self.store,
            self.clock,
            guard_expire=settings.guard_expire,
        )
        self.holder = str(uuid.uuid4())
        self.locking = False
        self._state = LockState(
            key=self.key,
            holder=self.holder,
            expire=self.options.expire,
            limit=self.options.limit,
        )

    def __repr__(self) -> str:
        return f"RedisMutex(key={self.key!r}, type={self.options.type!r}, holder={self.holder!r})"

    @property
    def expires_at(self) -> Optional[str]:
        """Expiry this instance wrote on its last exclusive acquire."""
        return self._state.expires_at

    @property
    def record_key(self) -> str:
        """Logical key of the policy's record."""
        return self.policy.record_key(self._state)

    async def try_lock(self) -> bool:
        """Make exactly one acquisition attempt."""
        return await self.policy.try_acquire(self._state)

    async def lock(self) -> bool:
        """
        Acquire, polling until the block timeout elapses.

        With block=0 this is a single attempt. Waiters are not queued, so
        there is no ordering between them.

        Returns:
            True if acquired, False on timeout
        """
        self.locking = False

        if self.options.block > 0:
            started = self.clock.monotonic()
            while self.clock.monotonic() - started < self.options.block:
                if await self.try_lock():
                    self.locking = True
                    break
                await self.clock.sleep(self.options.sleep)
        else:
            self.locking = await self.try_lock()

        if not self.locking:
            logger.debug(
                "redis_mutex_lock_timeout",
                lock_key=self.key,
                block=self.options.block,
            )
        return self.locking

    async def must_lock(self) -> None:
        """Acquire or raise AcquisitionFailed."""
        if not await self.lock():
            raise AcquisitionFailed(f"failed to acquire lock {self.key!r}", lock_key=self.key)

    async def unlock(self, force: bool = False) -> bool:
        """
        Release this instance's hold.

        Args:
            force: Remove the record even if another holder owns it

        Returns:
            True if the record (or our entry) was removed
        """
        released = await self.policy.release(self._state, force=force)
        if released:
            self.locking = False
        return released

    async def must_unlock(self, force: bool = False) -> None:
        """Release or raise ReleaseFailed."""
        if not await self.unlock(force=force):
            raise ReleaseFailed(f"failed to release lock {self.key!r}", lock_key=self.key)

    async def locked(self) -> bool:
        """Whether a new acquisition would be refused right now."""
        return await self.policy.is_locked(self._state)

    async def count(self) -> int:
        """Entries currently counted against capacity."""
        return await self.policy.count(self._state)

    async def prune(self) -> int:
        """Drop entries that no longer count against capacity."""
        return await self.policy.prune(self._state)

    async def with_lock(self, body: Optional[Body] = None) -> Any:
        """
        Run body while holding the lock and return its result.

        The lock is released on every exit path. If body raises, the
        release still runs and body's exception is re-raised; a failing
        release never replaces it.

        Raises:
            UsageError: If no body is given
            AcquisitionFailed: If the lock was not acquired in time
        """
        if body is None:
            raise UsageError("with_lock() requires a body to run under the lock")

        await self.must_lock()
        return await self.run_held(body)

    async def run_held(self, body: Body) -> Any:
        """Run body under the lock this instance already holds, then release."""
        try:
            result = body()
            if inspect.isawaitable(result):
                result = await result
        except BaseException:
            await self._release_after_failure()
            raise

        await self.unlock()
        return result

    async def _release_after_failure(self) -> None:
        try:
            await self.unlock()
        except MutexError as e:
            logger.error(
                "redis_mutex_release_during_unwind_failed",
                lock_key=self.key,
                error=str(e),
            )

    async def __aenter__(self) -> "RedisMutex":
        await self.must_lock()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            await self.unlock()
        else:
            await self._release_after_failure()
        return False

    acquire_blocking = lock
    run_exclusively = with_lock


async def lock(resource: Any, **options: Any) -> bool:
    """Build a mutex for resource and acquire it."""
    return await RedisMutex(resource, **options).lock()


async def must_lock(resource: Any, **options: Any) -> RedisMutex:
    """Build a mutex, acquire it or raise, and return it for a later unlock."""
    mutex = RedisMutex(resource, **options)
    await mutex.must_lock()
    return mutex


async def with_lock(resource: Any, body: Optional[Body] = None, **options: Any) -> Any:
    """Run body under a fresh mutex for resource."""
    return await RedisMutex(resource, **options).with_lock(body)
