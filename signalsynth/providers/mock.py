"""
Mock market data provider.

Deterministic synthetic data derived from a hash of the symbol, so the CLI
and tests run end to end without API keys. Registered last in every list,
and only when no real vendor is configured or USE_MOCK_DATA is set.
"""

import hashlib
import math
from datetime import datetime, timedelta, timezone
from typing import Optional

from signalsynth.domain.models import (
    CompanyProfile,
    DailyBar,
    FinancialMetrics,
    IntradayBar,
    Quote,
    SearchResult,
    SentimentData,
    sentiment_label,
)
from signalsynth.providers.base import BaseProvider

_SECTORS = ["Technology", "Healthcare", "Financial Services", "Energy", "Consumer Cyclical"]

_UNIVERSE = [
    "AAPL", "MSFT", "NVDA", "AMZN", "GOOGL", "META", "TSLA", "AMD",
    "JPM", "XOM", "PLTR", "SOFI", "RIOT", "MARA", "NFLX", "DIS",
]


def _seed(symbol: str) -> int:
    return int(hashlib.sha256(symbol.upper().encode("utf-8")).hexdigest()[:8], 16)


class MockProvider(BaseProvider):
    """Synthetic data for every kind; never touches the network."""

    name = "mock"

    def _base_price(self, symbol: str) -> float:
        return round(5 + (_seed(symbol) % 49500) / 100, 2)

    def _wave(self, symbol: str, i: int) -> float:
        # Gentle oscillation so indicators have something to chew on
        phase = (_seed(symbol) % 360) * math.pi / 180
        return math.sin(i / 7 + phase) * 0.02

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        now = datetime.now(timezone.utc)
        return {
            s: Quote(
                symbol=s,
                price=self._base_price(s),
                volume=100_000 + _seed(s) % 5_000_000,
                timestamp=now,
                change_percent=round(((_seed(s) % 1000) - 500) / 100, 2),
            )
            for s in symbols
        }

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        if days <= 0:
            return []
        base = self._base_price(symbol)
        start = datetime.now(timezone.utc).replace(second=0, microsecond=0) - timedelta(days=days)
        bars = []
        for i in range(days * 78):
            close = base * (1 + self._wave(symbol, i))
            bars.append(IntradayBar(
                time=start + timedelta(minutes=5 * i),
                open=close * 0.999,
                high=close * 1.004,
                low=close * 0.996,
                close=close,
                volume=1_000 + (_seed(symbol) + i) % 9_000,
            ))
        return bars

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        if days <= 0:
            return []
        base = self._base_price(symbol)
        today = datetime.now(timezone.utc).date()
        bars = []
        for i in range(days):
            # Drift upward toward today's price
            close = base * (0.9 + 0.1 * i / max(days - 1, 1)) * (1 + self._wave(symbol, i))
            bars.append(DailyBar(
                date=today - timedelta(days=days - 1 - i),
                open=close * 0.995,
                high=close * 1.01,
                low=close * 0.99,
                close=close,
                volume=500_000 + (_seed(symbol) + i) % 2_000_000,
            ))
        return bars

    async def get_profile(self, symbol: str) -> Optional[CompanyProfile]:
        sector = _SECTORS[_seed(symbol) % len(_SECTORS)]
        return CompanyProfile(
            name=f"{symbol} Inc.",
            sector=sector,
            industry=f"{sector} Services",
            description=f"Synthetic profile for {symbol}.",
        )

    async def get_metrics(self, symbol: str) -> Optional[FinancialMetrics]:
        seed = _seed(symbol)
        return FinancialMetrics(
            market_cap=float(1_000_000_000 + seed % 900_000_000_000),
            pe_ratio=round(8 + (seed % 4200) / 100, 2),
            eps=round(0.5 + (seed % 1200) / 100, 2),
            dividend_yield=round((seed % 400) / 10000, 4),
            pb_ratio=round(1 + (seed % 900) / 100, 2),
            debt_to_equity=round((seed % 250) / 100, 2),
        )

    async def get_sentiment(self, symbol: str) -> Optional[SentimentData]:
        score = round(((_seed(symbol) % 200) - 100) / 100, 2)
        return SentimentData(score=score, label=sentiment_label(score))

    async def screen_stocks(
        self,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        min_volume: Optional[int] = None,
        sector: Optional[str] = None,
        limit: int = 50,
    ) -> list[str]:
        quotes = await self.get_quotes(_UNIVERSE)
        return [
            q.symbol for q in quotes.values()
            if (min_price is None or q.price >= min_price)
            and (max_price is None or q.price <= max_price)
            and (min_volume is None or q.volume >= min_volume)
        ][:limit]

    async def _sorted_by_change(self, reverse: bool, limit: int) -> list[str]:
        quotes = await self.get_quotes(_UNIVERSE)
        ranked = sorted(quotes.values(), key=lambda q: q.change_percent or 0, reverse=reverse)
        return [q.symbol for q in ranked[:limit]]

    async def get_top_gainers(self, limit: int = 10) -> list[str]:
        return await self._sorted_by_change(True, limit)

    async def get_top_losers(self, limit: int = 10) -> list[str]:
        return await self._sorted_by_change(False, limit)

    async def get_most_active(self, limit: int = 10) -> list[str]:
        quotes = await self.get_quotes(_UNIVERSE)
        ranked = sorted(quotes.values(), key=lambda q: q.volume, reverse=True)
        return [q.symbol for q in ranked[:limit]]

    async def search_symbols(self, query: str, limit: int = 10) -> list[SearchResult]:
        q = query.strip().upper()
        if not q:
            return []
        return [
            SearchResult(symbol=s, name=f"{s} Inc.", exchange="MOCK")
            for s in _UNIVERSE if q in s
        ][:limit]
