"""
Redis Mutex - Configuration Tests
"""

import pytest

from redis_mutex.config import (
    BOUNDED_CONCURRENCY,
    CUMULATIVE_RATE,
    EXCLUSIVE,
    WINDOWED_RATE,
    MutexOptions,
    MutexSettings,
    get_settings,
    normalize_policy_type,
    reset_settings,
)
from redis_mutex.exceptions import ConfigurationError
from redis_mutex.policies import (
    BoundedConcurrencyPolicy,
    CumulativeRatePolicy,
    ExclusivePolicy,
    WindowedRatePolicy,
    create_policy,
)


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("REDIS_MUTEX_DEFAULT_EXPIRE", "REDIS_MUTEX_NAMESPACE"):
            monkeypatch.delenv(name, raising=False)
        settings = MutexSettings()
        assert settings.default_expire == 10.0
        assert settings.default_block == 1.0
        assert settings.default_sleep == 0.1
        assert settings.default_limit == 1
        assert settings.namespace == "RedisMutex"

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("REDIS_MUTEX_DEFAULT_EXPIRE", "30")
        monkeypatch.setenv("redis_mutex_namespace", "jobs")
        reset_settings()

        settings = get_settings()
        assert settings.default_expire == 30.0
        assert settings.namespace == "jobs"

    def test_settings_cached(self):
        assert get_settings() is get_settings()


class TestMutexOptions:
    """Tests for per-instance option validation."""

    def test_overrides_settings(self):
        settings = MutexSettings(default_expire=5, default_block=0)
        options = MutexOptions.from_settings(settings, expire=2, limit=4)
        assert options.expire == 2
        assert options.block == 0
        assert options.limit == 4
        assert options.type == EXCLUSIVE

    @pytest.mark.parametrize(
        "overrides",
        [
            {"expire": 0},
            {"block": -1},
            {"sleep": 0},
            {"limit": 0},
            {"limit": 1.5},
            {"type": "mutex"},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ConfigurationError):
            MutexOptions.from_settings(MutexSettings(), **overrides)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            MutexOptions.from_settings(MutexSettings(), expire=-1)

    @pytest.mark.parametrize(
        "alias, expected",
        [
            ("standard", EXCLUSIVE),
            ("concurrent", BOUNDED_CONCURRENCY),
            ("bounded-concurrency", BOUNDED_CONCURRENCY),
            ("Cumulative", CUMULATIVE_RATE),
            ("windowed", WINDOWED_RATE),
            ("windowed_rate", WINDOWED_RATE),
        ],
    )
    def test_policy_aliases(self, alias, expected):
        assert normalize_policy_type(alias) == expected


class TestCreatePolicy:
    """Tests for choosing the policy once per instance."""

    @pytest.mark.parametrize(
        "policy_type, expected",
        [
            (EXCLUSIVE, ExclusivePolicy),
            (BOUNDED_CONCURRENCY, BoundedConcurrencyPolicy),
            (CUMULATIVE_RATE, CumulativeRatePolicy),
            (WINDOWED_RATE, WindowedRatePolicy),
        ],
    )
    def test_selects_implementation(self, policy_type, expected, store, clock):
        policy = create_policy(policy_type, store, clock, guard_expire=0.5)
        assert type(policy) is expected

    def test_guard_expire_passed_through(self, store, clock):
        policy = create_policy(CUMULATIVE_RATE, store, clock, guard_expire=0.5)
        assert policy.guard_expire == 0.5

    def test_unknown_type(self, store, clock):
        with pytest.raises(ConfigurationError, match="semaphore"):
            create_policy("semaphore", store, clock)
