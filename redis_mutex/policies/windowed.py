"""
Redis Mutex - Windowed Rate Policy

At most `limit` acquisitions per fixed epoch. The record is a list of
holder entries at "<key>:windowed_rate:list" whose TTL is set only by the
first push of an epoch, so every entry of the epoch expires together when
Redis evicts the list.

LPUSH and PEXPIRE NX are separate commands. A process that dies between
them leaves a list with no TTL; the sweeper restores it from the expire
carried in the newest entry.
"""

from typing import Optional

import structlog

from redis_mutex.policies.base import LockState
from redis_mutex.policies.counting import LIST_SUFFIX, GuardedPolicy

logger = structlog.get_logger(__name__)


class WindowedRatePolicy(GuardedPolicy):
    """Quota per epoch anchored to the epoch's first acquisition."""

    name = "windowed_rate"
    suffix = LIST_SUFFIX

    async def insert(self, state: LockState, entry: str, now: float) -> None:
        record_key = self.record_key(state)
        await self.store.list_push(record_key, entry)
        if await self.store.set_ttl_if_absent(record_key, state.expire):
            logger.debug("redis_mutex_epoch_started", lock_key=state.key, expire=state.expire)

    async def count(self, state: LockState, now: Optional[float] = None) -> int:
        return await self.store.list_length(self.record_key(state))

    async def release(self, state: LockState, force: bool = False) -> bool:
        if not force:
            return False
        return await self._delete_record(state)
