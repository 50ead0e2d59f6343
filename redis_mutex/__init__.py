"""
Redis Mutex - Distributed Locking

Mutual exclusion and rate limiting for independent processes, built only
from single-key Redis primitives.
"""

from redis_mutex.clock import Clock, FakeClock, SystemClock
from redis_mutex.config import (
    BOUNDED_CONCURRENCY,
    CUMULATIVE_RATE,
    EXCLUSIVE,
    WINDOWED_RATE,
    MutexOptions,
    MutexSettings,
    get_settings,
)
from redis_mutex.exceptions import (
    AcquisitionFailed,
    ConfigurationError,
    LockError,
    MutexError,
    ReleaseFailed,
    StoreUnavailable,
    UnlockError,
    UsageError,
)
from redis_mutex.macro import AutoMutexRegistry
from redis_mutex.mutex import RedisMutex, lock, must_lock, with_lock
from redis_mutex.store import RedisStore, get_store, reset_store, set_store
from redis_mutex.sweeper import Sweeper, SweepResult, sweep

__version__ = "1.0.0"

__all__ = [
    "AcquisitionFailed",
    "AutoMutexRegistry",
    "BOUNDED_CONCURRENCY",
    "CUMULATIVE_RATE",
    "Clock",
    "ConfigurationError",
    "EXCLUSIVE",
    "FakeClock",
    "LockError",
    "MutexError",
    "MutexOptions",
    "MutexSettings",
    "RedisMutex",
    "RedisStore",
    "ReleaseFailed",
    "StoreUnavailable",
    "SweepResult",
    "Sweeper",
    "SystemClock",
    "UnlockError",
    "UsageError",
    "WINDOWED_RATE",
    "get_settings",
    "get_store",
    "lock",
    "must_lock",
    "reset_store",
    "set_store",
    "sweep",
    "with_lock",
]
