"""
Redis Mutex - Exclusive Policy

One holder at a time. The record is a single scalar: the absolute expiry
timestamp written by the holder, which doubles as its ownership token.

Acquire is a single round:
- SETNX the expiry; success means acquired
- Otherwise read it; a live value means the lock is held
- A stale value is stolen with an atomic swap. Only the contender whose
  swap returns a stale previous value wins; every later swapper sees the
  winner's future timestamp and loses.

Boundary: a value equal to now is still live. Stale means value < now.
"""

from typing import Optional

import structlog

from redis_mutex.policies.base import LockState, MutexPolicy

logger = structlog.get_logger(__name__)


def parse_timestamp(value: Optional[str]) -> float:
    """Parse a stored expiry; absent or garbage values read as 0.0."""
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def is_stale(value: Optional[str], now: float) -> bool:
    """Whether a stored expiry has passed."""
    return parse_timestamp(value) < now


def format_timestamp(timestamp: float) -> str:
    return repr(float(timestamp))


class ExclusivePolicy(MutexPolicy):
    """Mutual exclusion on a single scalar key."""

    name = "exclusive"

    async def try_acquire(self, state: LockState) -> bool:
        now = self.clock.timestamp()
        # Extended on each attempt of a blocking loop
        expires_at = format_timestamp(now + state.expire)

        while True:
            if await self.store.set_if_absent(state.key, expires_at):
                state.expires_at = expires_at
                logger.debug("redis_mutex_acquired", lock_key=state.key, policy=self.name)
                return True
            current = await self.store.get(state.key)
            if current is not None:
                break
            # Released between SETNX and GET; race for it again

        if not is_stale(current, now):
            logger.debug(
                "redis_mutex_held",
                lock_key=state.key,
                policy=self.name,
                expires_at=current,
            )
            return False

        previous = await self.store.atomic_swap(state.key, expires_at)
        if is_stale(previous, now):
            state.expires_at = expires_at
            logger.info(
                "redis_mutex_stale_lock_stolen",
                lock_key=state.key,
                previous_expires_at=previous,
            )
            return True

        # Another contender stole it first
        logger.debug("redis_mutex_steal_lost", lock_key=state.key)
        return False

    async def is_locked(self, state: LockState) -> bool:
        current = await self.store.get(state.key)
        return not is_stale(current, self.clock.timestamp())

    async def release(self, state: LockState, force: bool = False) -> bool:
        # The critical section may have outlived expire and the lock been
        # stolen; only delete while the stored value is still ours
        if not force:
            if state.expires_at is None:
                return False
            current = await self.store.get(state.key)
            if current != state.expires_at:
                logger.warning(
                    "redis_mutex_release_not_owner",
                    lock_key=state.key,
                    expected=state.expires_at,
                    found=current,
                )
                return False

        released = await self.store.delete(state.key)
        if released:
            state.expires_at = None
            logger.debug("redis_mutex_released", lock_key=state.key, forced=force)
        return released

    async def count(self, state: LockState) -> int:
        return 1 if await self.store.get(state.key) is not None else 0
