"""
Redis Mutex - Store Adapter

Thin async wrapper over redis.asyncio exposing only the single-key atomic
primitives the lock policies are built from.

Key features:
- Logical keys are prefixed with the namespace; callers never see it
- SET GET for atomic swap (GETSET replacement)
- PEXPIRE NX so a TTL is set at most once per epoch
- Every Redis failure surfaces as StoreUnavailable; nothing is masked
"""

from typing import Any, Optional, Sequence, Union

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from redis_mutex.config import get_settings
from redis_mutex.exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)

Score = Union[float, str]


class RedisStore:
    """
    Namespaced store adapter.

    Usage:
        store = RedisStore.from_url("redis://localhost:6379/0")
        if await store.set_if_absent("job:42", "1700000000.0"):
            ...
    """

    def __init__(self, client: aioredis.Redis, namespace: str = "RedisMutex"):
        """
        Initialize the store adapter.

        Args:
            client: redis.asyncio client created with decode_responses=True
            namespace: Prefix under which every record of this library lives
        """
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, redis_url: str, namespace: str = "RedisMutex") -> "RedisStore":
        """Create a store from a Redis connection URL."""
        client = aioredis.from_url(redis_url, decode_responses=True)
        return cls(client, namespace=namespace)

    def full_key(self, key: str) -> str:
        """Prefix a logical key with the namespace."""
        return f"{self.namespace}:{key}"

    def logical_key(self, full_key: str) -> str:
        """Strip the namespace prefix from a stored key."""
        prefix = f"{self.namespace}:"
        return full_key[len(prefix):] if full_key.startswith(prefix) else full_key

    async def _call(self, command: str, key: Optional[str], coro) -> Any:
        try:
            return await coro
        except RedisError as e:
            logger.error(
                "redis_mutex_store_error",
                command=command,
                lock_key=key,
                error=str(e),
            )
            raise StoreUnavailable(f"Redis {command} failed for {key!r}: {e}") from e

    # Scalar primitives

    async def set_if_absent(self, key: str, value: str) -> bool:
        result = await self._call(
            "SETNX", key, self.client.set(self.full_key(key), value, nx=True)
        )
        return bool(result)

    async def get(self, key: str) -> Optional[str]:
        return await self._call("GET", key, self.client.get(self.full_key(key)))

    async def atomic_swap(self, key: str, value: str) -> Optional[str]:
        """Write value and return the previous one in a single command."""
        return await self._call(
            "SET GET", key, self.client.set(self.full_key(key), value, get=True)
        )

    async def delete(self, key: str) -> bool:
        result = await self._call("DEL", key, self.client.delete(self.full_key(key)))
        return result > 0

    async def get_many(self, keys: Sequence[str]) -> list[Optional[str]]:
        if not keys:
            return []
        full_keys = [self.full_key(key) for key in keys]
        return await self._call("MGET", None, self.client.mget(full_keys))

    # Sorted sets

    async def sorted_set_add(self, key: str, member: str, score: float) -> None:
        await self._call(
            "ZADD", key, self.client.zadd(self.full_key(key), {member: score})
        )

    async def sorted_set_count(self, key: str, min_score: Score, max_score: Score) -> int:
        return await self._call(
            "ZCOUNT", key, self.client.zcount(self.full_key(key), min_score, max_score)
        )

    async def sorted_set_remove_range_by_score(
        self, key: str, min_score: Score, max_score: Score
    ) -> int:
        """
        Remove members scored within [min_score, max_score].

        Scores may use Redis range syntax, e.g. "-inf" or "(1700000000"
        for an exclusive bound.
        """
        return await self._call(
            "ZREMRANGEBYSCORE",
            key,
            self.client.zremrangebyscore(self.full_key(key), min_score, max_score),
        )

    async def sorted_set_remove_member(self, key: str, member: str) -> bool:
        result = await self._call(
            "ZREM", key, self.client.zrem(self.full_key(key), member)
        )
        return result > 0

    async def sorted_set_remove_members(self, key: str, members: list[str]) -> int:
        if not members:
            return 0
        return await self._call(
            "ZREM", key, self.client.zrem(self.full_key(key), *members)
        )

    async def sorted_set_range_by_score(
        self, key: str, min_score: Score, max_score: Score
    ) -> list[tuple[str, float]]:
        """Members scored within [min_score, max_score], with their scores."""
        return await self._call(
            "ZRANGEBYSCORE",
            key,
            self.client.zrangebyscore(
                self.full_key(key), min_score, max_score, withscores=True
            ),
        )

    # Lists

    async def list_push(self, key: str, member: str) -> int:
        return await self._call(
            "LPUSH", key, self.client.lpush(self.full_key(key), member)
        )

    async def list_length(self, key: str) -> int:
        return await self._call("LLEN", key, self.client.llen(self.full_key(key)))

    async def list_head(self, key: str) -> Optional[str]:
        """Most recently pushed member, or None for an empty list."""
        return await self._call("LINDEX", key, self.client.lindex(self.full_key(key), 0))

    async def set_ttl_if_absent(self, key: str, seconds: float) -> bool:
        """Set a TTL only when the key has none yet (PEXPIRE NX)."""
        milliseconds = max(1, int(seconds * 1000))
        result = await self._call(
            "PEXPIRE NX",
            key,
            self.client.pexpire(self.full_key(key), milliseconds, nx=True),
        )
        return bool(result)

    # Keyspace

    async def list_keys_matching(self, pattern: str = "*") -> list[str]:
        """
        List logical keys in this namespace matching a glob pattern.

        Uses SCAN rather than KEYS so large keyspaces don't block Redis.
        """
        match = self.full_key(pattern)

        async def _scan() -> list[str]:
            return [key async for key in self.client.scan_iter(match=match)]

        full_keys = await self._call("SCAN", pattern, _scan())
        return sorted(self.logical_key(key) for key in full_keys)

    async def ping(self) -> bool:
        """Check Redis reachability."""
        return bool(await self._call("PING", None, self.client.ping()))

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.client.aclose()


# Module-level singleton
_store: Optional[RedisStore] = None


def get_store() -> RedisStore:
    """
    Get the shared RedisStore built from settings.

    Returns:
        The shared RedisStore instance
    """
    global _store
    if _store is None:
        settings = get_settings()
        _store = RedisStore.from_url(settings.redis_url, namespace=settings.namespace)
    return _store


def set_store(store: Optional[RedisStore]) -> None:
    """Install a store as the shared instance (None resets it)."""
    global _store
    _store = store


def reset_store() -> None:
    """Reset the singleton (for testing)."""
    set_store(None)
