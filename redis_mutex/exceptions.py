"""
Redis Mutex - Exceptions

Error taxonomy shared by every policy, the retry driver and the sweeper.
"""

from typing import Optional


class MutexError(Exception):
    """Base exception for all redis_mutex errors."""
    pass


class AcquisitionFailed(MutexError):
    """Raised when a lock could not be acquired within the block timeout."""

    def __init__(self, message: str, lock_key: Optional[str] = None):
        super().__init__(message)
        self.lock_key = lock_key


class ReleaseFailed(MutexError):
    """
    Raised when a release did not remove our record.

    Either the lock was stolen after it expired, or it was already gone
    (double release).
    """

    def __init__(self, message: str, lock_key: Optional[str] = None):
        super().__init__(message)
        self.lock_key = lock_key


class ConfigurationError(MutexError, ValueError):
    """Raised at setup time for invalid options or auto-lock declarations."""
    pass


class StoreUnavailable(MutexError):
    """Raised when a Redis command fails or times out."""
    pass


class UsageError(MutexError, TypeError):
    """Raised when an entry point is called with the wrong shape of arguments."""
    pass


# Short aliases
LockError = AcquisitionFailed
UnlockError = ReleaseFailed
