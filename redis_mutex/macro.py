"""
Redis Mutex - Auto-Lock Decorator

Wraps functions so every call runs under a mutex whose key is derived from
the function and a chosen subset of its arguments. Registrations live in
an explicit AutoMutexRegistry rather than on the decorated classes.

Usage:
    registry = AutoMutexRegistry()

    class Billing:
        @registry.auto_mutex(on=["account_id"], block=0,
                             after_failure=lambda self, account_id, amount: "busy")
        async def charge(self, account_id, amount):
            ...
"""

import functools
import inspect
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional

import structlog

from redis_mutex.clock import Clock
from redis_mutex.config import MutexOptions
from redis_mutex.exceptions import ConfigurationError
from redis_mutex.mutex import OPTION_NAMES, RedisMutex
from redis_mutex.store import RedisStore

logger = structlog.get_logger(__name__)


def qualified_name(func: Callable) -> str:
    """Stable identifier for a function: module plus qualified name."""
    return f"{func.__module__}.{func.__qualname__}"


def build_key(name: str, arguments: Iterable[Any]) -> str:
    """Join the function identifier with the locked-on argument values."""
    return f"{name}:{':'.join(str(value) for value in arguments)}"


class AutoMutexRegistry:
    """
    Registration table for auto-locked functions.

    Store and clock are resolved when a wrapped function is called, so a
    registry can be built at import time before Redis is configured.
    """

    def __init__(self, store: Optional[RedisStore] = None, clock: Optional[Clock] = None):
        self.store = store
        self.clock = clock
        self._registrations: dict[str, dict[str, Any]] = {}

    @property
    def registrations(self) -> Mapping[str, dict[str, Any]]:
        """Read-only view of qualified name -> lock options."""
        return MappingProxyType(self._registrations)

    def auto_mutex(
        self,
        on: Iterable[str] = (),
        after_failure: Optional[Callable[..., Any]] = None,
        **options: Any,
    ) -> Callable[[Callable], Callable]:
        """
        Decorator factory.

        Args:
            on: Argument names whose values become part of the lock key,
                in this order
            after_failure: Called with the original arguments when the lock
                is not acquired; its result is returned instead
            **options: Lock options (expire, block, sleep, limit, type)

        Raises:
            ConfigurationError: At decoration time, for unknown argument
                names or invalid lock options
        """
        on_names = [on] if isinstance(on, str) else list(on)
        unknown_options = set(options) - OPTION_NAMES
        if unknown_options:
            raise ConfigurationError(f"Unknown lock options: {', '.join(sorted(unknown_options))}")
        # Invalid options raise here, at decoration time
        MutexOptions.from_settings(**options)

        def decorator(func: Callable) -> Callable:
            return self.register(func, on_names, after_failure, options)

        return decorator

    def register(
        self,
        func: Callable,
        on: list[str],
        after_failure: Optional[Callable[..., Any]],
        options: dict[str, Any],
    ) -> Callable:
        """Wrap func and record it in the table."""
        signature = inspect.signature(func)
        unknown = [name for name in on if name not in signature.parameters]
        if unknown:
            raise ConfigurationError(
                f"You are trying to lock on unknown arguments: {', '.join(unknown)}"
            )

        name = qualified_name(func)
        self._registrations[name] = {"on": tuple(on), **options}

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            bound = signature.bind(*args, **kwargs)
            bound.apply_defaults()
            key = build_key(name, (bound.arguments[arg] for arg in on))
            mutex = RedisMutex(key, store=self.store, clock=self.clock, **options)

            if await mutex.lock():
                return await mutex.run_held(functools.partial(func, *args, **kwargs))

            logger.info("redis_mutex_auto_lock_skipped", lock_key=key)
            if after_failure is None:
                return None
            result = after_failure(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        logger.debug("redis_mutex_auto_lock_registered", function=name, on=list(on))
        return wrapper

