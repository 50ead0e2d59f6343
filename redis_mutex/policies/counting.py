"""
Redis Mutex - Counting Policies

Bounded concurrency ("N simultaneous holders") and cumulative rate ("N
acquisitions per rolling window") share one record shape: a sorted set of
holder entries scored by acquisition time, stored at "<key>:<policy>:set".

Each entry is "<holder>:<sequence>:<expire>". Carrying its own expire lets
the sweeper decide staleness per entry without knowing how the lock was
configured.

Check-then-insert is not atomic in Redis, so it runs under a short-lived
exclusive guard lock on the bare key. The guard is non-blocking; failing to
get it counts as a failed attempt.
"""

from abc import abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog

from redis_mutex.clock import Clock
from redis_mutex.policies.base import LockState, MutexPolicy
from redis_mutex.policies.exclusive import ExclusivePolicy, format_timestamp
from redis_mutex.store import RedisStore

logger = structlog.get_logger(__name__)

SET_SUFFIX = ":set"
LIST_SUFFIX = ":list"


def make_entry(state: LockState) -> str:
    """Record member for the next acquisition by this instance."""
    return f"{state.holder}:{state.sequence}:{format_timestamp(state.expire)}"


def entry_expire(entry: Optional[str]) -> Optional[float]:
    """The expire an entry was written with, or None if it carries none."""
    if entry is None:
        return None
    _, _, expire = entry.rpartition(":")
    try:
        return float(expire)
    except ValueError:
        return None


class GuardedPolicy(MutexPolicy):
    """Base for policies whose capacity check runs under a guard lock."""

    suffix = SET_SUFFIX

    def __init__(self, store: RedisStore, clock: Clock, guard_expire: float = 1.0):
        super().__init__(store, clock)
        self.guard_expire = guard_expire
        self._guard = ExclusivePolicy(store, clock)

    def record_key(self, state: LockState) -> str:
        return f"{state.key}:{self.name}{self.suffix}"

    @asynccontextmanager
    async def guarded(self, state: LockState) -> AsyncIterator[bool]:
        """Hold the guard lock for the body; yields whether it was acquired."""
        guard = LockState(key=state.key, holder=state.holder, expire=self.guard_expire)
        acquired = await self._guard.try_acquire(guard)
        if not acquired:
            logger.debug("redis_mutex_guard_busy", lock_key=state.key, policy=self.name)
        try:
            yield acquired
        finally:
            if acquired:
                await self._guard.release(guard)

    async def try_acquire(self, state: LockState) -> bool:
        async with self.guarded(state) as acquired:
            if not acquired:
                return False
            now = self.clock.timestamp()
            if await self.count(state, now=now) >= state.limit:
                logger.debug(
                    "redis_mutex_at_capacity",
                    lock_key=state.key,
                    policy=self.name,
                    limit=state.limit,
                )
                return False
            entry = make_entry(state)
            await self.insert(state, entry, now)
            state.entry = entry
            state.sequence += 1
            logger.debug(
                "redis_mutex_acquired",
                lock_key=state.key,
                policy=self.name,
                holder=state.holder,
            )
            return True

    async def is_locked(self, state: LockState) -> bool:
        return await self.count(state) >= state.limit

    @abstractmethod
    async def insert(self, state: LockState, entry: str, now: float) -> None:
        """Add this acquisition's entry to the record."""
        pass

    async def _delete_record(self, state: LockState) -> bool:
        deleted = await self.store.delete(self.record_key(state))
        if deleted:
            logger.info("redis_mutex_record_deleted", lock_key=state.key, policy=self.name)
        return deleted


class CumulativeRatePolicy(GuardedPolicy):
    """
    At most `limit` acquisitions inside any trailing `expire`-second window.

    Entries are history: release leaves them in place, so the resource can
    be over quota while nothing is running.
    """

    name = "cumulative_rate"

    async def insert(self, state: LockState, entry: str, now: float) -> None:
        await self.store.sorted_set_add(self.record_key(state), entry, now)

    async def count(self, state: LockState, now: Optional[float] = None) -> int:
        if now is None:
            now = self.clock.timestamp()
        return await self.store.sorted_set_count(
            self.record_key(state), now - state.expire, now
        )

    async def release(self, state: LockState, force: bool = False) -> bool:
        if not force:
            return False
        return await self._delete_record(state)

    async def prune(self, state: LockState) -> int:
        """
        Drop entries older than the window.

        Keeps ZCOUNT at O(log N) instead of growing with abandoned history.
        """
        cutoff = self.clock.timestamp() - state.expire
        return await self.store.sorted_set_remove_range_by_score(
            self.record_key(state), "-inf", f"({format_timestamp(cutoff)}"
        )


class BoundedConcurrencyPolicy(CumulativeRatePolicy):
    """
    At most `limit` live holders at once.

    Release removes exactly the entry this instance wrote on its last
    acquire. Entries of crashed holders stop counting once they are
    `expire` seconds old.
    """

    name = "bounded_concurrency"

    async def release(self, state: LockState, force: bool = False) -> bool:
        if force:
            return await self._delete_record(state)
        removed = False
        if state.entry is not None:
            removed = await self.store.sorted_set_remove_member(
                self.record_key(state), state.entry
            )
        if not removed:
            logger.warning(
                "redis_mutex_release_not_owner",
                lock_key=state.key,
                policy=self.name,
                holder=state.holder,
            )
            return False
        state.entry = None
        return True
