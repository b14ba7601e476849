"""
Per-kind ordered adapter lists.

A vendor simply is or isn't present in a kind's list; the order encodes
preference. Quotes and bars lead with low-latency brokerage feeds,
fundamentals lead with the vendors that actually carry those fields.
"""

from dataclasses import dataclass, field
from typing import Optional

from signalsynth.core.config import Settings, get_settings
from signalsynth.core.http import HttpClient
from signalsynth.core.logging import get_logger
from signalsynth.core.quota import UsageTracker
from signalsynth.providers.alpaca import AlpacaProvider
from signalsynth.providers.base import (
    BaseProvider,
    DailySource,
    IntradaySource,
    MetricsSource,
    ProfileSource,
    QuoteSource,
    ScreenerSource,
    SearchSource,
    SentimentSource,
)
from signalsynth.providers.finnhub import FinnhubProvider
from signalsynth.providers.fmp import FMPProvider
from signalsynth.providers.mock import MockProvider
from signalsynth.providers.polygon import PolygonProvider
from signalsynth.providers.twelvedata import TwelveDataProvider

logger = get_logger("providers.bundle")

# Preference order per data kind (adapter names)
QUOTE_ORDER = ["alpaca", "polygon", "twelvedata", "finnhub", "fmp", "mock"]
BAR_ORDER = ["alpaca", "polygon", "twelvedata", "finnhub", "fmp", "mock"]
PROFILE_ORDER = ["fmp", "finnhub", "polygon", "twelvedata", "mock"]
METRICS_ORDER = ["fmp", "finnhub", "polygon", "twelvedata", "mock"]
SENTIMENT_ORDER = ["fmp", "finnhub", "mock"]
SCREENER_ORDER = ["fmp", "polygon", "mock"]
SEARCH_ORDER = ["fmp", "polygon", "finnhub", "mock"]


@dataclass
class ProviderBundle:
    """Ordered adapter lists, one per data kind."""
    quotes: list[QuoteSource] = field(default_factory=list)
    intraday: list[IntradaySource] = field(default_factory=list)
    daily: list[DailySource] = field(default_factory=list)
    profile: list[ProfileSource] = field(default_factory=list)
    metrics: list[MetricsSource] = field(default_factory=list)
    sentiment: list[SentimentSource] = field(default_factory=list)
    screener: list[ScreenerSource] = field(default_factory=list)
    search: list[SearchSource] = field(default_factory=list)

    @property
    def adapters(self) -> list:
        """Distinct adapters across all kinds, first-seen order."""
        seen: dict[str, object] = {}
        for kind in (self.quotes, self.intraday, self.daily, self.profile,
                     self.metrics, self.sentiment, self.screener, self.search):
            for adapter in kind:
                seen.setdefault(adapter.name, adapter)
        return list(seen.values())

    @classmethod
    def from_adapters(cls, adapters: list[BaseProvider]) -> "ProviderBundle":
        """Register each adapter into every kind it implements, in preference order."""
        by_name = {a.name: a for a in adapters}

        def pick(order: list[str], capability: type) -> list:
            return [
                by_name[name] for name in order
                if name in by_name and isinstance(by_name[name], capability)
            ]

        return cls(
            quotes=pick(QUOTE_ORDER, QuoteSource),
            intraday=pick(BAR_ORDER, IntradaySource),
            daily=pick(BAR_ORDER, DailySource),
            profile=pick(PROFILE_ORDER, ProfileSource),
            metrics=pick(METRICS_ORDER, MetricsSource),
            sentiment=pick(SENTIMENT_ORDER, SentimentSource),
            screener=pick(SCREENER_ORDER, ScreenerSource),
            search=pick(SEARCH_ORDER, SearchSource),
        )


def create_provider_bundle(
    settings: Optional[Settings] = None,
    http_client: Optional[HttpClient] = None,
    usage: Optional[UsageTracker] = None,
) -> ProviderBundle:
    """
    Build the bundle from configured vendors.

    The mock adapter is used only when no vendor key is set or
    USE_MOCK_DATA is enabled.
    """
    settings = settings or get_settings()
    http_client = http_client or HttpClient(timeout=settings.http_timeout)
    usage = usage or UsageTracker()

    if settings.use_mock_data:
        logger.info("USE_MOCK_DATA set, using mock market data")
        return ProviderBundle.from_adapters([MockProvider(settings, http_client, usage)])

    candidates: list[BaseProvider] = [
        cls(settings, http_client, usage)
        for cls in (AlpacaProvider, PolygonProvider, TwelveDataProvider, FinnhubProvider, FMPProvider)
    ]
    configured = [a for a in candidates if a.is_configured]
    if not configured:
        logger.warning("No market data API keys configured, falling back to mock data")
        configured = [MockProvider(settings, http_client, usage)]

    logger.info(f"Market data adapters: {[a.name for a in configured]}")
    return ProviderBundle.from_adapters(configured)
