"""
Redis Mutex - Sweeper

Out-of-band janitor for records abandoned by crashed holders. Liveness never
depends on it (acquire steals stale records itself); it only bounds the
growth of dead keys.

Classification by key shape:
- "<key>:<policy>:set"  counting policies, entries past their own expire removed
- "<key>:<policy>:list" windowed rate, left to Redis TTL eviction
- anything else          exclusive scalar expiry

A stored value that does not parse as a timestamp is stale here exactly as
it is for acquire.
"""

from dataclasses import asdict, dataclass
from typing import Optional

import structlog

from redis_mutex.clock import Clock, get_clock
from redis_mutex.config import get_settings
from redis_mutex.policies import LIST_SUFFIX, SET_SUFFIX, entry_expire, is_stale
from redis_mutex.policies.exclusive import format_timestamp
from redis_mutex.store import RedisStore, get_store

logger = structlog.get_logger(__name__)


@dataclass
class SweepResult:
    """Records reclaimed by one sweep, per policy family."""
    exclusive: int = 0
    counting: int = 0
    windowed: int = 0

    @property
    def total(self) -> int:
        return self.exclusive + self.counting + self.windowed

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total"] = self.total
        return data


class Sweeper:
    """
    Batch reclamation of stale records across all policies.

    Safe to run concurrently with live acquisitions: exclusive keys are
    never deleted blind, only after an atomic swap confirms the value we
    replaced was still stale. A live value displaced by that swap is
    written back.
    """

    def __init__(
        self,
        store: Optional[RedisStore] = None,
        clock: Optional[Clock] = None,
        window: Optional[float] = None,
    ):
        """
        Initialize the sweeper.

        Args:
            store: Store adapter (defaults to the shared store)
            clock: Clock (defaults to the system clock)
            window: Lifetime of the interim value written while reclaiming
                an exclusive key (defaults to settings.default_expire)
        """
        self.store = store or get_store()
        self.clock = clock or get_clock()
        self.window = get_settings().default_expire if window is None else window

    async def sweep(self) -> int:
        """Reclaim stale records. Returns how many were reclaimed."""
        return (await self.sweep_report()).total

    async def sweep_report(self) -> SweepResult:
        """Reclaim stale records and report counts per policy family."""
        result = SweepResult()
        keys = await self.store.list_keys_matching("*")
        if not keys:
            return result

        now = self.clock.timestamp()
        exclusive_keys = []
        set_keys = []
        list_keys = []
        for key in keys:
            if key.endswith(SET_SUFFIX):
                set_keys.append(key)
            elif key.endswith(LIST_SUFFIX):
                list_keys.append(key)
            else:
                exclusive_keys.append(key)

        result.exclusive = await self._sweep_exclusive(exclusive_keys, now)
        result.counting = await self._sweep_counting(set_keys, now)
        await self._repair_windowed(list_keys)

        logger.info("redis_mutex_sweep_completed", keys_scanned=len(keys), **result.to_dict())
        return result

    async def _sweep_exclusive(self, keys: list[str], now: float) -> int:
        if not keys:
            return 0

        values = await self.store.get_many(keys)
        candidates = [
            key for key, value in zip(keys, values)
            if value is not None and is_stale(value, now)
        ]

        reclaimed = 0
        interim = format_timestamp(now + self.window)
        for key in candidates:
            # Someone may have re-acquired since the batch read
            previous = await self.store.atomic_swap(key, interim)
            if previous is None:
                # Released since the batch read; drop the value our swap created
                await self.store.delete(key)
            elif is_stale(previous, now):
                await self.store.delete(key)
                reclaimed += 1
                logger.debug("redis_mutex_sweep_reclaimed", lock_key=key, expires_at=previous)
            else:
                # The interim value is live, so nobody else can have taken the key
                await self.store.atomic_swap(key, previous)
                logger.warning(
                    "redis_mutex_sweep_skipped_live_lock",
                    lock_key=key,
                    expires_at=previous,
                )
        return reclaimed

    async def _sweep_counting(self, keys: list[str], now: float) -> int:
        removed = 0
        for key in keys:
            entries = await self.store.sorted_set_range_by_score(
                key, "-inf", f"({format_timestamp(now)}"
            )
            stale = []
            for entry, score in entries:
                expire = entry_expire(entry)
                # Entries without an expire of their own are left alone
                if expire is not None and score < now - expire:
                    stale.append(entry)
            removed += await self.store.sorted_set_remove_members(key, stale)
        return removed

    async def _repair_windowed(self, keys: list[str]) -> None:
        for key in keys:
            expire = entry_expire(await self.store.list_head(key))
            if expire is not None and await self.store.set_ttl_if_absent(key, expire):
                logger.warning("redis_mutex_sweep_ttl_restored", lock_key=key, expire=expire)


async def sweep(store: Optional[RedisStore] = None, clock: Optional[Clock] = None) -> int:
    """Run one sweep with the shared store."""
    return await Sweeper(store=store, clock=clock).sweep()
