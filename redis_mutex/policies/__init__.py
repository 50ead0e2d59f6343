"""
Redis Mutex - Lock Policies

One capability interface, four implementations, selected once per lock
instance by create_policy().
"""

from typing import Optional

from redis_mutex.clock import Clock
from redis_mutex.config import (
    BOUNDED_CONCURRENCY,
    CUMULATIVE_RATE,
    EXCLUSIVE,
    get_settings,
    normalize_policy_type,
)
from redis_mutex.policies.base import LockState, MutexPolicy
from redis_mutex.policies.counting import (
    LIST_SUFFIX,
    SET_SUFFIX,
    BoundedConcurrencyPolicy,
    CumulativeRatePolicy,
    entry_expire,
)
from redis_mutex.policies.exclusive import ExclusivePolicy, is_stale, parse_timestamp
from redis_mutex.policies.windowed import WindowedRatePolicy
from redis_mutex.store import RedisStore


def create_policy(
    policy_type: str,
    store: RedisStore,
    clock: Clock,
    guard_expire: Optional[float] = None,
) -> MutexPolicy:
    """
    Build the policy for a lock type.

    Args:
        policy_type: One of the canonical lock types or an accepted alias
        store: Store adapter the policy operates on
        clock: Clock used for every timestamp
        guard_expire: Expiry of the counting policies' guard lock

    Returns:
        A policy instance

    Raises:
        ConfigurationError: If the type is unknown
    """
    name = normalize_policy_type(policy_type)
    if name == EXCLUSIVE:
        return ExclusivePolicy(store, clock)

    if guard_expire is None:
        guard_expire = get_settings().guard_expire
    if name == BOUNDED_CONCURRENCY:
        return BoundedConcurrencyPolicy(store, clock, guard_expire=guard_expire)
    if name == CUMULATIVE_RATE:
        return CumulativeRatePolicy(store, clock, guard_expire=guard_expire)
    return WindowedRatePolicy(store, clock, guard_expire=guard_expire)


__all__ = [
    "BoundedConcurrencyPolicy",
    "CumulativeRatePolicy",
    "ExclusivePolicy",
    "LIST_SUFFIX",
    "LockState",
    "MutexPolicy",
    "SET_SUFFIX",
    "WindowedRatePolicy",
    "create_policy",
    "entry_expire",
    "is_stale",
    "parse_timestamp",
]
