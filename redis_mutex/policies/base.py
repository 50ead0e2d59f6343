"""
Redis Mutex - Policy Base Interface

Abstract base class every lock policy implements. A policy is chosen once
when a lock instance is built; no per-call dispatch by name.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from redis_mutex.clock import Clock
from redis_mutex.store import RedisStore


@dataclass
class LockState:
    """
    Per-instance state a policy needs to prove ownership on release.

    holder: random token identifying this lock instance (counting policies)
    expires_at: value this instance wrote on its last exclusive acquire
    entry: member this instance wrote on its last counting acquire
    sequence: acquisitions made so far, keeps entries distinct
    """
    key: str
    holder: str
    expire: float
    limit: int = 1
    expires_at: Optional[str] = None
    entry: Optional[str] = None
    sequence: int = 0


class MutexPolicy(ABC):
    """
    Abstract base class for lock policies.

    All policies must implement:
    - try_acquire(): One non-blocking acquisition attempt
    - is_locked(): Whether a new acquisition would currently be refused
    - release(): Give back what this instance acquired
    - count(): Live entries relevant to capacity
    - prune(): Drop entries that no longer count
    """

    name: str = ""

    def __init__(self, store: RedisStore, clock: Clock):
        self.store = store
        self.clock = clock

    def record_key(self, state: LockState) -> str:
        """Key the policy's record is stored under."""
        return state.key

    @abstractmethod
    async def try_acquire(self, state: LockState) -> bool:
        """
        Attempt one acquisition without waiting.

        Args:
            state: The lock instance's state; updated on success

        Returns:
            True if acquired, False otherwise
        """
        pass

    @abstractmethod
    async def is_locked(self, state: LockState) -> bool:
        """Return True if the resource is at capacity right now."""
        pass

    @abstractmethod
    async def release(self, state: LockState, force: bool = False) -> bool:
        """
        Release this instance's hold.

        Args:
            state: The lock instance's state
            force: Remove the record even if we don't own it

        Returns:
            True if something was removed, False otherwise
        """
        pass

    @abstractmethod
    async def count(self, state: LockState) -> int:
        """Number of entries currently counted against capacity."""
        pass

    async def prune(self, state: LockState) -> int:
        """Remove entries that no longer count. Returns entries removed."""
        return 0
