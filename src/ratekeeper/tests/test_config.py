"""Unit tests for rate limiter configuration models.

Tests pydantic validation of rules and algorithm parameters, and settings
loading from ``RATEKEEPER_*`` environment variables.
"""

import pytest
from pydantic import ValidationError

from ratekeeper.config import (
    FixedWindowConfig,
    RateLimiterSettings,
    RateLimitRule,
    RateLimitStorage,
    RateLimitStrategy,
    SlidingWindowConfig,
    TokenBucketConfig,
    get_settings,
)


class TestAlgorithmConfigs:
    """Test per-algorithm parameter models."""

    def test_valid_configs(self):
        assert FixedWindowConfig(limit=10, window_ms=1_000).limit == 10
        assert SlidingWindowConfig(limit=3, window_ms=10_000).window_ms == 10_000
        assert TokenBucketConfig(capacity=5, refill_rate=0.5).refill_rate == 0.5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"limit": 0, "window_ms": 1_000},
            {"limit": -1, "window_ms": 1_000},
            {"limit": 10, "window_ms": 0},
        ],
    )
    def test_window_configs_reject_non_positive(self, kwargs):
        with pytest.raises(ValidationError):
            FixedWindowConfig(**kwargs)
        with pytest.raises(ValidationError):
            SlidingWindowConfig(**kwargs)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"capacity": 0, "refill_rate": 1.0},
            {"capacity": 5, "refill_rate": 0},
            {"capacity": 5, "refill_rate": -0.1},
        ],
    )
    def test_token_bucket_config_rejects_non_positive(self, kwargs):
        with pytest.raises(ValidationError):
            TokenBucketConfig(**kwargs)

    def test_configs_are_frozen(self):
        config = FixedWindowConfig(limit=10, window_ms=1_000)
        with pytest.raises(ValidationError):
            config.limit = 20


class TestRateLimitRule:
    """Test RateLimitRule validation."""

    def test_defaults(self):
        rule = RateLimitRule(limit=100, window="1m")
        assert rule.strategy is RateLimitStrategy.FIXED_WINDOW
        assert rule.storage is RateLimitStorage.MEMORY
        assert rule.enabled is True
        assert rule.cleanup_interval_ms == 60_000
        assert rule.prefix == "rl:"
        assert rule.window_ms == 60_000

    def test_token_bucket_rule(self):
        rule = RateLimitRule(
            strategy=RateLimitStrategy.TOKEN_BUCKET, limit=20, refill_rate=2.0
        )
        assert rule.window_ms is None
        assert rule.refill_rate == 2.0

    def test_strategy_from_string(self):
        rule = RateLimitRule(strategy="sliding_window", storage="redis", limit=5, window="10s")
        assert rule.strategy is RateLimitStrategy.SLIDING_WINDOW
        assert rule.storage is RateLimitStorage.REDIS

    @pytest.mark.parametrize(
        "strategy", [RateLimitStrategy.FIXED_WINDOW, RateLimitStrategy.SLIDING_WINDOW]
    )
    def test_window_strategies_require_window(self, strategy):
        with pytest.raises(ValidationError, match="requires a window"):
            RateLimitRule(strategy=strategy, limit=10)

    def test_token_bucket_requires_refill_rate(self):
        with pytest.raises(ValidationError, match="refill_rate"):
            RateLimitRule(strategy=RateLimitStrategy.TOKEN_BUCKET, limit=10)

    def test_invalid_window_rejected(self):
        with pytest.raises(ValidationError, match="Invalid window format"):
            RateLimitRule(limit=10, window="fortnight")

    @pytest.mark.parametrize("limit", [0, -5])
    def test_limit_must_be_positive(self, limit):
        with pytest.raises(ValidationError):
            RateLimitRule(limit=limit, window="1m")

    def test_negative_cleanup_interval_rejected(self):
        with pytest.raises(ValidationError):
            RateLimitRule(limit=10, window="1m", cleanup_interval_ms=-1)


class TestRateLimiterSettings:
    """Test environment-driven settings."""

    def test_defaults(self, monkeypatch):
        for name in ("REDIS_URL", "KEY_PREFIX", "FAIL_OPEN", "LOG_JSON"):
            monkeypatch.delenv(f"RATEKEEPER_{name}", raising=False)

        settings = RateLimiterSettings()

        assert settings.redis_url is None
        assert settings.key_prefix == "rl:"
        assert settings.max_increment_attempts == 5
        assert settings.fail_open is False
        assert settings.log_json is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("RATEKEEPER_REDIS_URL", "redis://cache:6379/1")
        monkeypatch.setenv("RATEKEEPER_KEY_PREFIX", "api:")
        monkeypatch.setenv("RATEKEEPER_CLEANUP_INTERVAL_MS", "5000")
        monkeypatch.setenv("RATEKEEPER_FAIL_OPEN", "true")

        settings = RateLimiterSettings()

        assert settings.redis_url == "redis://cache:6379/1"
        assert settings.key_prefix == "api:"
        assert settings.cleanup_interval_ms == 5_000
        assert settings.fail_open is True

    def test_rejects_invalid_values(self, monkeypatch):
        monkeypatch.setenv("RATEKEEPER_MAX_INCREMENT_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            RateLimiterSettings()

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
