"""
Base provider class and capability interfaces for market data adapters.

Each data kind has its own small capability protocol. A vendor adapter
implements whichever kinds its API offers and is registered into the
per-kind ordered lists of a ProviderBundle.

All adapters must:
- Inherit from BaseProvider
- Raise SignalSynthError subclasses on failure (the gateway retries,
  blacklists and falls back; adapters do not swallow errors)
- Return domain models, not raw API responses
"""

import time
from abc import ABC
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from signalsynth.core.config import Settings, get_settings
from signalsynth.core.errors import QuotaExceededError
from signalsynth.core.http import HttpClient
from signalsynth.core.logging import LoggerMixin
from signalsynth.core.quota import UsageTracker
from signalsynth.domain.models import (
    CompanyProfile,
    DailyBar,
    FinancialMetrics,
    IntradayBar,
    Quote,
    SearchResult,
    SentimentData,
)


class ProviderStatus(str, Enum):
    """Provider health status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


@dataclass
class HealthCheckResult:
    """Result of a provider health check."""
    status: ProviderStatus
    message: str
    latency_ms: Optional[float] = None
    details: Optional[dict[str, Any]] = None


# ===========================================
# Capability interfaces (one per data kind)
# ===========================================

@runtime_checkable
class QuoteSource(Protocol):
    name: str

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        ...


@runtime_checkable
class IntradaySource(Protocol):
    name: str

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        ...


@runtime_checkable
class DailySource(Protocol):
    name: str

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        ...


@runtime_checkable
class ProfileSource(Protocol):
    name: str

    async def get_profile(self, symbol: str) -> Optional[CompanyProfile]:
        ...


@runtime_checkable
class MetricsSource(Protocol):
    name: str

    async def get_metrics(self, symbol: str) -> Optional[FinancialMetrics]:
        ...


@runtime_checkable
class SentimentSource(Protocol):
    name: str

    async def get_sentiment(self, symbol: str) -> Optional[SentimentData]:
        ...


@runtime_checkable
class ScreenerSource(Protocol):
    name: str

    async def screen_stocks(
        self,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        min_volume: Optional[int] = None,
        sector: Optional[str] = None,
        limit: int = 50,
    ) -> list[str]:
        ...

    async def get_top_gainers(self, limit: int = 10) -> list[str]:
        ...

    async def get_top_losers(self, limit: int = 10) -> list[str]:
        ...

    async def get_most_active(self, limit: int = 10) -> list[str]:
        ...


@runtime_checkable
class SearchSource(Protocol):
    name: str

    async def search_symbols(self, query: str, limit: int = 10) -> list[SearchResult]:
        ...


# ===========================================
# Shared adapter plumbing
# ===========================================

class BaseProvider(ABC, LoggerMixin):
    """
    Abstract base class for all market data adapters.

    Features provided by base class:
    - Shared async HTTP client
    - Usage tracking / quota enforcement
    - Logging
    - A default healthcheck built on a cheap quote request
    """

    name: str = "base"
    BASE_URL: str = ""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[HttpClient] = None,
        usage: Optional[UsageTracker] = None,
    ):
        """
        Initialize provider.

        Args:
            settings: Application settings. Uses global if not provided.
            http_client: HTTP client. A private one is created if not provided.
            usage: Usage tracker shared across adapters.
        """
        self.settings = settings or get_settings()
        self.http = http_client or HttpClient(timeout=self.settings.http_timeout)
        self.usage = usage or UsageTracker()

    @property
    def is_configured(self) -> bool:
        """True when the adapter has the credentials it needs."""
        return True

    def _consume_quota(self, cost: int = 1) -> None:
        """Record a call, raising if a configured limit is exhausted."""
        result = self.usage.check_and_consume(self.name, cost=cost)
        if not result.allowed:
            raise QuotaExceededError(
                f"{self.name} quota exceeded: {result.reason}",
                provider=self.name,
            )

    async def _get(
        self,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """GET `BASE_URL + path` and return decoded JSON."""
        self._consume_quota()
        url = path if path.startswith("http") else f"{self.BASE_URL}{path}"
        return await self.http.aget(
            url,
            params=params,
            headers=headers,
            provider_name=self.name,
        )

    async def healthcheck(self) -> HealthCheckResult:
        """Check the vendor by requesting a single well-known quote."""
        if not self.is_configured:
            return HealthCheckResult(
                status=ProviderStatus.UNAVAILABLE,
                message=f"{self.name} API key not configured",
            )
        if not isinstance(self, QuoteSource):
            return HealthCheckResult(
                status=ProviderStatus.HEALTHY,
                message=f"{self.name} configured",
            )

        start_time = time.time()
        try:
            quotes = await self.get_quotes(["AAPL"])
        except Exception as e:
            return HealthCheckResult(
                status=ProviderStatus.UNAVAILABLE,
                message=f"{self.name} API error: {e}",
            )

        latency = (time.time() - start_time) * 1000
        if not quotes:
            return HealthCheckResult(
                status=ProviderStatus.DEGRADED,
                message=f"{self.name} returned no data",
                latency_ms=latency,
            )
        return HealthCheckResult(
            status=ProviderStatus.HEALTHY,
            message=f"{self.name} API is responding",
            latency_ms=latency,
        )


def safe_float(value: Any) -> Optional[float]:
    """Coerce vendor numbers (which may be strings, '', or null) to float."""
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def safe_int(value: Any, default: int = 0) -> int:
    number = safe_float(value)
    return int(number) if number is not None else default
