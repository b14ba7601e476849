"""
Resilient market data gateway.

One TTL cache per data kind plus an ordered fallback walk across the
adapters registered for that kind. Every adapter call goes through the
RetryPolicy; auth/quota failures put the adapter into cool-down via the
ProviderHealthRegistry.

The gateway never raises: when every adapter fails or returns nothing,
callers get an empty list / dict or None and must treat it as "unknown".
"""

import asyncio
import time
from functools import partial
from typing import Any, Awaitable, Callable, Optional, TypeVar

from signalsynth.core.cache import CacheTtlConfig, TimedCache
from signalsynth.core.config import Settings, get_settings
from signalsynth.core.errors import BLACKLISTABLE_ERRORS
from signalsynth.core.health import (
    ENFORCED_COOLDOWN_SECONDS,
    BlacklistStore,
    ProviderHealthRegistry,
)
from signalsynth.core.logging import LoggerMixin
from signalsynth.core.quota import UsageTracker
from signalsynth.core.retry import RetryConfig, RetryPolicy
from signalsynth.domain.models import (
    CompanyProfile,
    DailyBar,
    FinancialMetrics,
    IntradayBar,
    Quote,
    SearchResult,
    SentimentData,
)
from signalsynth.providers.base import HealthCheckResult
from signalsynth.providers.bundle import ProviderBundle, create_provider_bundle

T = TypeVar("T")


def _non_empty(value: Any) -> bool:
    return bool(value)


def _not_none(value: Any) -> bool:
    return value is not None


class MarketDataGateway(LoggerMixin):
    """
    Cached, fault-tolerant access to market data.

    Usage:
        gateway = create_market_data_gateway()
        quotes = await gateway.get_quotes(["AAPL", "MSFT"])
    """

    def __init__(
        self,
        bundle: ProviderBundle,
        *,
        health: Optional[ProviderHealthRegistry] = None,
        retry: Optional[RetryPolicy] = None,
        ttl: Optional[CacheTtlConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.bundle = bundle
        self.health = health or ProviderHealthRegistry()
        self.retry = retry or RetryPolicy()
        self.ttl = ttl or CacheTtlConfig()

        self._quotes = TimedCache(self.ttl.quotes, maxsize=5000, clock=clock, name="quotes")
        self._intraday = TimedCache(self.ttl.intraday, maxsize=500, clock=clock, name="intraday")
        self._daily = TimedCache(self.ttl.daily, maxsize=500, clock=clock, name="daily")
        self._profile = TimedCache(self.ttl.profile, maxsize=2000, clock=clock, name="profile")
        self._metrics = TimedCache(self.ttl.metrics, maxsize=2000, clock=clock, name="metrics")
        self._sentiment = TimedCache(self.ttl.sentiment, maxsize=2000, clock=clock, name="sentiment")

    # ===========================================
    # Fallback plumbing
    # ===========================================

    async def _call(
        self,
        adapter: Any,
        kind: str,
        op: Callable[[], Awaitable[T]],
    ) -> Optional[T]:
        """
        One adapter attempt through the retry policy.

        Returns None when the adapter is in cool-down or failed.
        """
        name = adapter.name
        if self.health.is_blacklisted(name):
            self.logger.debug(f"Skipping {name} for {kind}: in cool-down")
            return None
        try:
            return await self.retry.run(f"{name}.{kind}", op)
        except BLACKLISTABLE_ERRORS as e:
            self.logger.warning(f"{name} {kind} rejected credentials/quota: {e}")
            await asyncio.to_thread(self.health.blacklist, name, ENFORCED_COOLDOWN_SECONDS)
        except Exception as e:
            self.logger.warning(f"{name} {kind} failed: {e}")
        return None

    async def _first_valid(
        self,
        kind: str,
        adapters: list,
        invoke: Callable[[Any], Awaitable[T]],
        is_valid: Callable[[Any], bool],
    ) -> Optional[T]:
        """Walk adapters in order and return the first valid result."""
        for adapter in adapters:
            result = await self._call(adapter, kind, partial(invoke, adapter))
            if result is not None and is_valid(result):
                self.logger.debug(f"{kind} served by {adapter.name}")
                return result
        self.logger.info(f"No adapter produced {kind}")
        return None

    async def _cached(
        self,
        cache: TimedCache,
        key: str,
        kind: str,
        adapters: list,
        invoke: Callable[[Any], Awaitable[T]],
        is_valid: Callable[[Any], bool],
    ) -> Optional[T]:
        cached = cache.get(key)
        if cached is not None:
            return cached
        result = await self._first_valid(kind, adapters, invoke, is_valid)
        if result is not None:
            cache.set(key, result)
        return result

    # ===========================================
    # Prices
    # ===========================================

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """
        Quotes for many symbols.

        Cached per symbol; only symbols still missing are sent to the next
        adapter, so a partial answer from one vendor is topped up by the rest.
        """
        wanted = list(dict.fromkeys(s.strip().upper() for s in symbols if s and s.strip()))
        results: dict[str, Quote] = {}
        missing: list[str] = []
        for symbol in wanted:
            cached = self._quotes.get(symbol)
            if cached is not None:
                results[symbol] = cached
            else:
                missing.append(symbol)

        for adapter in self.bundle.quotes:
            if not missing:
                break
            batch = list(missing)
            fetched = await self._call(adapter, "quotes", partial(adapter.get_quotes, batch))
            if not fetched:
                continue
            for symbol in batch:
                quote = fetched.get(symbol)
                if quote is not None:
                    self._quotes.set(symbol, quote)
                    results[symbol] = quote
            missing = [s for s in missing if s not in results]

        if missing:
            self.logger.info(f"No quote for {len(missing)} symbols: {missing[:10]}")
        return {s: results[s] for s in wanted if s in results}

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        symbol = symbol.upper()
        result = await self._cached(
            self._intraday, f"intraday:{symbol}:{days}", "intraday", self.bundle.intraday,
            lambda a: a.get_intraday(symbol, days), _non_empty,
        )
        return result or []

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        symbol = symbol.upper()
        result = await self._cached(
            self._daily, f"daily:{symbol}:{days}", "daily", self.bundle.daily,
            lambda a: a.get_daily(symbol, days), _non_empty,
        )
        return result or []

    # ===========================================
    # Fundamentals
    # ===========================================

    async def get_profile(self, symbol: str) -> Optional[CompanyProfile]:
        """Profile merged field by field until sector, industry and description are known."""
        symbol = symbol.upper()
        key = f"profile:{symbol}"
        cached = self._profile.get(key)
        if cached is not None:
            return cached

        merged: Optional[CompanyProfile] = None
        for adapter in self.bundle.profile:
            result = await self._call(adapter, "profile", partial(adapter.get_profile, symbol))
            if result is None:
                continue
            merged = result if merged is None else merged.merge(result)
            if merged.is_complete():
                break

        if merged is not None:
            self._profile.set(key, merged)
        return merged

    async def get_metrics(self, symbol: str) -> Optional[FinancialMetrics]:
        """Metrics merged field by field until market cap, P/E and EPS are known."""
        symbol = symbol.upper()
        key = f"metrics:{symbol}"
        cached = self._metrics.get(key)
        if cached is not None:
            return cached

        merged: Optional[FinancialMetrics] = None
        for adapter in self.bundle.metrics:
            result = await self._call(adapter, "metrics", partial(adapter.get_metrics, symbol))
            if result is None:
                continue
            merged = result if merged is None else merged.merge(result)
            if merged.is_complete():
                break

        if merged is not None:
            self._metrics.set(key, merged)
        return merged

    async def get_sentiment(self, symbol: str) -> Optional[SentimentData]:
        symbol = symbol.upper()
        return await self._cached(
            self._sentiment, f"sentiment:{symbol}", "sentiment", self.bundle.sentiment,
            lambda a: a.get_sentiment(symbol), _not_none,
        )

    # ===========================================
    # Discovery (uncached)
    # ===========================================

    async def screen_stocks(
        self,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        min_volume: Optional[int] = None,
        sector: Optional[str] = None,
        limit: int = 50,
    ) -> list[str]:
        result = await self._first_valid(
            "screener", self.bundle.screener,
            lambda a: a.screen_stocks(
                min_price=min_price, max_price=max_price,
                min_volume=min_volume, sector=sector, limit=limit,
            ),
            _non_empty,
        )
        return result or []

    async def get_top_gainers(self, limit: int = 10) -> list[str]:
        result = await self._first_valid(
            "gainers", self.bundle.screener, lambda a: a.get_top_gainers(limit), _non_empty,
        )
        return result or []

    async def get_top_losers(self, limit: int = 10) -> list[str]:
        result = await self._first_valid(
            "losers", self.bundle.screener, lambda a: a.get_top_losers(limit), _non_empty,
        )
        return result or []

    async def get_most_active(self, limit: int = 10) -> list[str]:
        result = await self._first_valid(
            "actives", self.bundle.screener, lambda a: a.get_most_active(limit), _non_empty,
        )
        return result or []

    async def search_symbols(self, query: str, limit: int = 10) -> list[SearchResult]:
        if not query or not query.strip():
            return []
        result = await self._first_valid(
            "search", self.bundle.search, lambda a: a.search_symbols(query, limit), _non_empty,
        )
        return result or []

    # ===========================================
    # Maintenance
    # ===========================================

    def clear_all_caches(self) -> None:
        for cache in self._caches:
            cache.clear()
        self.logger.info("All market data caches cleared")

    @property
    def _caches(self) -> list[TimedCache]:
        return [self._quotes, self._intraday, self._daily,
                self._profile, self._metrics, self._sentiment]

    def cache_stats(self) -> dict[str, dict[str, Any]]:
        return {cache.name: cache.stats for cache in self._caches}

    async def healthcheck_all(self) -> dict[str, HealthCheckResult]:
        """Run each adapter's healthcheck (bypasses caches and retry)."""
        results = {}
        for adapter in self.bundle.adapters:
            results[adapter.name] = await adapter.healthcheck()
        return results


def create_market_data_gateway(
    settings: Optional[Settings] = None,
    config: Optional[dict[str, Any]] = None,
    *,
    health: Optional[ProviderHealthRegistry] = None,
) -> MarketDataGateway:
    """
    Build a gateway from settings and config.yaml.

    Reads `cache_ttl`, `retry` and `usage` sections from config.
    """
    settings = settings or get_settings()
    config = config or {}

    usage = UsageTracker(config)
    bundle = create_provider_bundle(settings, usage=usage)
    health = health or ProviderHealthRegistry(store=BlacklistStore(settings.database_url))

    retry_section = config.get("retry") or {}
    retry_config = RetryConfig(**{
        k: v for k, v in retry_section.items() if k in RetryConfig.__dataclass_fields__
    })

    return MarketDataGateway(
        bundle,
        health=health,
        retry=RetryPolicy(retry_config),
        ttl=CacheTtlConfig.from_config(config.get("cache_ttl")),
    )
