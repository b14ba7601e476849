"""Tests for core utilities: retry policy, health registry, caches, logging."""

import asyncio
import logging
from unittest.mock import patch

import httpx
import pytest

from signalsynth.core.cache import CacheTtlConfig, TimedCache
from signalsynth.core.errors import (
    AuthenticationError,
    DataNotAvailableError,
    ProviderError,
    RateLimitError,
)
from signalsynth.core.health import BlacklistStore, ProviderHealthRegistry
from signalsynth.core.logging import JSON_FORMAT, ROOT_LOGGER, TEXT_FORMAT, LoggerMixin, get_logger, setup_logging
from signalsynth.core.retry import FailureKind, RetryConfig, RetryPolicy, classify_failure


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class TestClassifyFailure:
    """Tests for failure classification."""

    def test_rate_limit(self):
        assert classify_failure(RateLimitError("slow down", provider="x")) == FailureKind.RATE_LIMITED

    def test_recoverable_provider_error_is_transient(self):
        assert classify_failure(ProviderError("503", provider="x")) == FailureKind.TRANSIENT

    def test_network_error_is_transient(self):
        assert classify_failure(httpx.ConnectError("refused")) == FailureKind.TRANSIENT

    def test_auth_and_missing_data_are_fatal(self):
        assert classify_failure(AuthenticationError("401", provider="x")) == FailureKind.FATAL
        assert classify_failure(DataNotAvailableError("none", provider="x")) == FailureKind.FATAL
        assert classify_failure(ValueError("bad")) == FailureKind.FATAL


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_transient_failures_back_off_exponentially(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(RetryConfig(max_attempts=3, initial_delay=1.0, multiplier=2.0), sleep=sleep)
        calls = []

        async def op():
            calls.append(1)
            if len(calls) < 3:
                raise ProviderError("503", provider="x")
            return "ok"

        assert asyncio.run(policy.run("x.quotes", op)) == "ok"
        assert len(calls) == 3
        assert sleep.delays == [1.0, 2.0]

    def test_rate_limit_honours_retry_after(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(RetryConfig(max_attempts=2), sleep=sleep)
        calls = []

        async def op():
            calls.append(1)
            if len(calls) == 1:
                raise RateLimitError("429", provider="x", retry_after=7)
            return 42

        assert asyncio.run(policy.run("x.quotes", op)) == 42
        assert sleep.delays == [7.0]

    def test_rate_limit_without_hint_uses_cooldown(self):
        policy = RetryPolicy(RetryConfig(rate_limit_cooldown=5.0))
        delay = policy.compute_delay(RateLimitError("429", provider="x"), 1)
        assert delay == 5.0

    def test_long_retry_after_is_clamped(self):
        policy = RetryPolicy(RetryConfig(max_rate_limit_wait=30.0))
        delay = policy.compute_delay(RateLimitError("429", provider="x", retry_after=3600), 1)
        assert delay == 30.0
        assert policy.compute_delay(RateLimitError("429", provider="x", retry_after=12), 1) == 12.0

    def test_fatal_error_is_not_retried(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(RetryConfig(max_attempts=5), sleep=sleep)
        calls = []

        async def op():
            calls.append(1)
            raise AuthenticationError("401", provider="x")

        with pytest.raises(AuthenticationError):
            asyncio.run(policy.run("x.quotes", op))
        assert len(calls) == 1
        assert sleep.delays == []

    def test_gives_up_after_max_attempts(self):
        sleep = SleepRecorder()
        policy = RetryPolicy(RetryConfig(max_attempts=3), sleep=sleep)
        calls = []

        async def op():
            calls.append(1)
            raise ProviderError(f"fail {len(calls)}", provider="x")

        with pytest.raises(ProviderError, match="fail 3"):
            asyncio.run(policy.run("x.quotes", op))
        assert len(calls) == 3

    def test_backoff_is_capped(self):
        policy = RetryPolicy(RetryConfig(initial_delay=1.0, multiplier=10.0, max_delay=4.0))
        assert policy.compute_delay(ProviderError("x", provider="x"), 3) == 4.0


class TestProviderHealthRegistry:
    """Tests for the blacklist registry."""

    def test_blacklist_and_expiry(self):
        clock = FakeClock()
        registry = ProviderHealthRegistry(clock=clock)

        until = registry.blacklist("finnhub", 600)
        assert until == clock.now + 600
        assert registry.is_blacklisted("finnhub")
        assert not registry.is_blacklisted("fmp")

        clock.advance(601)
        assert not registry.is_blacklisted("finnhub")
        assert registry.blacklisted_providers() == {}

    def test_callback_invoked(self):
        seen = []
        registry = ProviderHealthRegistry(
            clock=FakeClock(), on_blacklisted=lambda name, until: seen.append(name)
        )
        registry.blacklist("polygon")
        assert seen == ["polygon"]

    def test_persisted_entries_survive_restart(self, tmp_path):
        clock = FakeClock()
        store = BlacklistStore(f"sqlite:///{tmp_path / 'signalsynth.db'}")

        ProviderHealthRegistry(store=store, clock=clock).blacklist("fmp", 600)
        ProviderHealthRegistry(store=store, clock=clock).blacklist("alpaca", 10)

        clock.advance(60)
        restored = ProviderHealthRegistry(
            store=BlacklistStore(f"sqlite:///{tmp_path / 'signalsynth.db'}"), clock=clock
        )
        assert restored.is_blacklisted("fmp")
        assert not restored.is_blacklisted("alpaca")
        assert store.load(clock()) == {"fmp": 1_600.0}

    def test_clear_empties_store(self):
        clock = FakeClock()
        store = BlacklistStore("sqlite://")
        registry = ProviderHealthRegistry(store=store, clock=clock)
        registry.blacklist("fmp")
        registry.blacklist("finnhub")

        registry.clear()

        assert store.load(clock()) == {}
        assert ProviderHealthRegistry(store=store, clock=clock).blacklisted_providers() == {}

    def test_clear(self):
        registry = ProviderHealthRegistry(clock=FakeClock())
        registry.blacklist("fmp")
        registry.clear()
        assert not registry.is_blacklisted("fmp")


class TestTimedCache:
    """Tests for TimedCache."""

    def test_entries_expire(self):
        clock = FakeClock()
        cache = TimedCache(ttl=5, clock=clock, name="quotes")
        cache.set("AAPL", 1.0)

        clock.advance(4)
        assert cache.get("AAPL") == 1.0
        clock.advance(2)
        assert cache.get("AAPL") is None

    def test_entry_valid_at_exact_ttl(self):
        clock = FakeClock()
        cache = TimedCache(ttl=5, clock=clock)
        cache.set("AAPL", 1.0)

        clock.advance(5)
        assert cache.get("AAPL") == 1.0
        assert len(cache) == 1

        clock.advance(0.001)
        assert cache.get("AAPL") is None
        assert len(cache) == 0

    def test_lru_eviction(self):
        cache = TimedCache(ttl=60, maxsize=2, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)
        assert cache.get("b") is None
        assert cache.get("a") == 1

    def test_stats(self):
        cache = TimedCache(ttl=60, clock=FakeClock())
        cache.set("a", 1)
        cache.get("a")
        cache.get("b")
        stats = cache.stats
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5

    def test_clear_and_delete(self):
        cache = TimedCache(ttl=60, clock=FakeClock())
        cache.set("a", 1)
        cache.set("b", 2)
        cache.delete("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0


class TestCacheTtlConfig:
    def test_defaults(self):
        config = CacheTtlConfig()
        assert config.quotes == 5
        assert config.daily == 86400

    def test_from_config_ignores_unknown_keys(self):
        config = CacheTtlConfig.from_config({"quotes": 10, "bogus": 1})
        assert config.quotes == 10.0
        assert config.intraday == 120


class TestLogging:
    """Tests for setup_logging and logger naming."""

    @pytest.fixture(autouse=True)
    def restore_level(self):
        yield
        logging.getLogger(ROOT_LOGGER).setLevel(logging.NOTSET)

    def test_json_lines_without_config_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "json")
        with patch("logging.basicConfig") as basic:
            setup_logging(config_path=str(tmp_path / "missing.yaml"), log_level="warning")

        assert basic.call_args.kwargs["format"] == JSON_FORMAT
        assert basic.call_args.kwargs["level"] == "WARNING"
        assert logging.getLogger(ROOT_LOGGER).level == logging.WARNING

    def test_text_is_default(self, tmp_path, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        with patch("logging.basicConfig") as basic:
            setup_logging(config_path=str(tmp_path / "missing.yaml"))

        assert basic.call_args.kwargs["format"] == TEXT_FORMAT

    def test_logger_names(self):
        class Fetcher(LoggerMixin):
            pass

        assert get_logger("gateway").name == "signalsynth.gateway"
        assert get_logger("signalsynth.rss").name == "signalsynth.rss"
        assert Fetcher().logger.name == "signalsynth.Fetcher"
