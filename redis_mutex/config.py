"""
Redis Mutex - Configuration

Environment-based settings plus the per-lock option bundle.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

from redis_mutex.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)


EXCLUSIVE = "exclusive"
BOUNDED_CONCURRENCY = "bounded_concurrency"
CUMULATIVE_RATE = "cumulative_rate"
WINDOWED_RATE = "windowed_rate"

POLICY_TYPES = (EXCLUSIVE, BOUNDED_CONCURRENCY, CUMULATIVE_RATE, WINDOWED_RATE)

# Accepted alternate spellings, normalized once at construction
POLICY_ALIASES = {
    "standard": EXCLUSIVE,
    "concurrent": BOUNDED_CONCURRENCY,
    "bounded-concurrency": BOUNDED_CONCURRENCY,
    "cumulative": CUMULATIVE_RATE,
    "cumulative-rate": CUMULATIVE_RATE,
    "windowed": WINDOWED_RATE,
    "windowed-rate": WINDOWED_RATE,
}


class MutexSettings(BaseSettings):
    """Library settings from environment variables (prefix REDIS_MUTEX_)."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_MUTEX_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    namespace: str = "RedisMutex"

    # Lock defaults
    default_expire: float = 10.0  # Seconds before an unreleased record is stale
    default_block: float = 1.0  # Seconds to wait for a lock; 0 = non-blocking
    default_sleep: float = 0.1  # Poll interval while blocking
    default_limit: int = 1  # Capacity for the counting policies
    guard_expire: float = 1.0  # Expiry of the internal check-then-insert guard
    min_sleep: float = 0.01  # Poll intervals below this hammer the store

    # Logging
    log_level: str = "info"
    log_json: bool = False


@lru_cache()
def get_settings() -> MutexSettings:
    """Get cached settings instance."""
    return MutexSettings()


def reset_settings() -> None:
    """Clear the cached settings (for testing)."""
    get_settings.cache_clear()


def normalize_policy_type(value: str) -> str:
    """Map a policy name or alias to its canonical name."""
    name = str(value).strip().lower()
    name = POLICY_ALIASES.get(name, name)
    if name not in POLICY_TYPES:
        raise ConfigurationError(
            f"Unknown lock type {value!r}; expected one of {', '.join(POLICY_TYPES)}"
        )
    return name


@dataclass(frozen=True)
class MutexOptions:
    """Validated options for one lock instance."""

    expire: float
    block: float
    sleep: float
    limit: int
    type: str = EXCLUSIVE

    def __post_init__(self):
        if self.expire <= 0:
            raise ConfigurationError(f"expire must be positive, got {self.expire}")
        if self.block < 0:
            raise ConfigurationError(f"block must not be negative, got {self.block}")
        if self.sleep <= 0:
            raise ConfigurationError(f"sleep must be positive, got {self.sleep}")
        if not isinstance(self.limit, int) or isinstance(self.limit, bool) or self.limit < 1:
            raise ConfigurationError(f"limit must be a positive integer, got {self.limit}")
        object.__setattr__(self, "type", normalize_policy_type(self.type))

    @classmethod
    def from_settings(
        cls,
        settings: Optional[MutexSettings] = None,
        *,
        expire: Optional[float] = None,
        block: Optional[float] = None,
        sleep: Optional[float] = None,
        limit: Optional[int] = None,
        type: Optional[str] = None,
    ) -> "MutexOptions":
        """Build options, falling back to settings for anything not given."""
        settings = settings or get_settings()
        options = cls(
            expire=settings.default_expire if expire is None else expire,
            block=settings.default_block if block is None else block,
            sleep=settings.default_sleep if sleep is None else sleep,
            limit=settings.default_limit if limit is None else limit,
            type=EXCLUSIVE if type is None else type,
        )
        if options.block > 0 and options.sleep < settings.min_sleep:
            logger.warning(
                "redis_mutex_poll_interval_too_small",
                sleep=options.sleep,
                recommended_min=settings.min_sleep,
            )
        return options
