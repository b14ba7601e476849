"""
Polygon.io (Massive) provider for US stock market data.

Provides:
- Snapshot quotes (batched)
- OHLCV aggregates (minute and day)
- Ticker reference data (profile, market cap)
- Gainers/losers snapshots and a snapshot-based screener
- Ticker search

Note: Polygon.io was rebranded to Massive in late 2025.
Both names refer to the same service.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from signalsynth.domain.models import (
    CompanyProfile,
    DailyBar,
    FinancialMetrics,
    IntradayBar,
    Quote,
    SearchResult,
)
from signalsynth.providers.base import BaseProvider, safe_float, safe_int


class PolygonProvider(BaseProvider):
    """
    Polygon.io (Massive) data provider for US equities.

    Free tier limitations:
    - 5 API calls/minute
    - End-of-day data only
    - 2 years historical data
    """

    name = "polygon"
    BASE_URL = "https://api.polygon.io"

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.polygon_api_key)

    def _params(self, **params: Any) -> dict[str, Any]:
        params = {k: v for k, v in params.items() if v is not None}
        params["apiKey"] = self.settings.polygon_api_key
        return params

    # -------------------------------------------
    # Prices
    # -------------------------------------------

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        if not symbols:
            return {}
        data = await self._get(
            "/v2/snapshot/locale/us/markets/stocks/tickers",
            params=self._params(tickers=",".join(symbols)),
        )
        results = {}
        for snap in data.get("tickers", []) or []:
            quote = self._snapshot_to_quote(snap)
            if quote:
                results[quote.symbol] = quote
        return results

    @staticmethod
    def _snapshot_to_quote(snap: dict[str, Any]) -> Optional[Quote]:
        symbol = snap.get("ticker")
        day = snap.get("day") or {}
        prev = snap.get("prevDay") or {}
        last_trade = snap.get("lastTrade") or {}

        price = safe_float(last_trade.get("p")) or safe_float(day.get("c")) or safe_float(prev.get("c"))
        if not symbol or not price:
            return None

        # Before the open the day bar is empty; fall back to the previous session
        volume = safe_int(day.get("v")) or safe_int(prev.get("v"))
        updated = snap.get("updated")
        timestamp = (
            datetime.fromtimestamp(updated / 1e9, tz=timezone.utc)
            if updated else datetime.now(timezone.utc)
        )
        return Quote(
            symbol=symbol,
            price=price,
            volume=volume,
            timestamp=timestamp,
            change_percent=safe_float(snap.get("todaysChangePerc")),
        )

    async def _aggs(self, symbol: str, multiplier: int, timespan: str, days: int) -> list[dict]:
        end = datetime.now(timezone.utc).date()
        start = end - timedelta(days=days)
        data = await self._get(
            f"/v2/aggs/ticker/{symbol}/range/{multiplier}/{timespan}/{start}/{end}",
            params=self._params(adjusted="true", sort="asc", limit=50000),
        )
        return data.get("results", []) or []

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        if not symbol or days <= 0:
            return []
        return [
            IntradayBar(
                time=datetime.fromtimestamp(r["t"] / 1000, tz=timezone.utc),
                open=r["o"], high=r["h"], low=r["l"], close=r["c"],
                volume=safe_int(r.get("v")),
            )
            for r in await self._aggs(symbol, 5, "minute", days)
            if all(k in r for k in ("t", "o", "h", "l", "c"))
        ]

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        if not symbol or days <= 0:
            return []
        # Calendar days, not sessions: pad so `days` sessions are covered
        calendar_days = int(days * 1.5) + 5
        return [
            DailyBar(
                date=datetime.fromtimestamp(r["t"] / 1000, tz=timezone.utc).date(),
                open=r["o"], high=r["h"], low=r["l"], close=r["c"],
                volume=safe_int(r.get("v")),
            )
            for r in await self._aggs(symbol, 1, "day", calendar_days)
            if all(k in r for k in ("t", "o", "h", "l", "c"))
        ]

    # -------------------------------------------
    # Reference data
    # -------------------------------------------

    async def _reference(self, symbol: str) -> dict[str, Any]:
        data = await self._get(f"/v3/reference/tickers/{symbol}", params=self._params())
        return data.get("results") or {}

    async def get_profile(self, symbol: str) -> Optional[CompanyProfile]:
        ref = await self._reference(symbol)
        if not ref:
            return None
        return CompanyProfile(
            name=ref.get("name") or symbol,
            sector=None,
            industry=ref.get("sic_description"),
            description=ref.get("description"),
        )

    async def get_metrics(self, symbol: str) -> Optional[FinancialMetrics]:
        ref = await self._reference(symbol)
        market_cap = safe_float(ref.get("market_cap"))
        if market_cap is None:
            return None
        return FinancialMetrics(market_cap=market_cap)

    # -------------------------------------------
    # Discovery
    # -------------------------------------------

    async def screen_stocks(
        self,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        min_volume: Optional[int] = None,
        sector: Optional[str] = None,
        limit: int = 50,
    ) -> list[str]:
        """Filter the full-market snapshot client side (sector is not supported)."""
        data = await self._get(
            "/v2/snapshot/locale/us/markets/stocks/tickers",
            params=self._params(),
        )
        quotes = [q for q in (self._snapshot_to_quote(s) for s in data.get("tickers", []) or []) if q]
        matches = [
            q for q in quotes
            if (min_price is None or q.price >= min_price)
            and (max_price is None or q.price <= max_price)
            and (min_volume is None or q.volume >= min_volume)
        ]
        matches.sort(key=lambda q: q.volume, reverse=True)
        return [q.symbol for q in matches[:limit]]

    async def _movers(self, direction: str, limit: int) -> list[str]:
        data = await self._get(
            f"/v2/snapshot/locale/us/markets/stocks/{direction}",
            params=self._params(),
        )
        return [t["ticker"] for t in data.get("tickers", []) or [] if t.get("ticker")][:limit]

    async def get_top_gainers(self, limit: int = 10) -> list[str]:
        return await self._movers("gainers", limit)

    async def get_top_losers(self, limit: int = 10) -> list[str]:
        return await self._movers("losers", limit)

    async def get_most_active(self, limit: int = 10) -> list[str]:
        return await self.screen_stocks(limit=limit)

    async def search_symbols(self, query: str, limit: int = 10) -> list[SearchResult]:
        if not query.strip():
            return []
        data = await self._get(
            "/v3/reference/tickers",
            params=self._params(search=query, market="stocks", active="true", limit=limit),
        )
        return [
            SearchResult(
                symbol=r["ticker"],
                name=r.get("name") or "",
                exchange=r.get("primary_exchange"),
            )
            for r in data.get("results", []) or []
            if r.get("ticker")
        ]
