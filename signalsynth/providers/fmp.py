"""
Financial Modeling Prep (FMP) provider.

Provides:
- Batch quotes (with earnings announcement date)
- Intraday and daily history
- Company profile and key metrics
- News sentiment
- Stock screener, market movers and symbol search

Docs: https://site.financialmodelingprep.com/developer/docs
"""

from datetime import date, datetime, timezone
from typing import Any, Optional

from signalsynth.core.timeutil import date_range, parse_timestamp
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
from signalsynth.providers.base import BaseProvider, safe_float, safe_int


class FMPProvider(BaseProvider):
    """
    Financial Modeling Prep data provider.

    The richest source for fundamentals, so it leads the profile, metrics,
    sentiment and screener orderings.

    Free tier limitations:
    - 250 requests/day
    - US symbols only
    """

    name = "fmp"
    BASE_URL = "https://financialmodelingprep.com/api"

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.fmp_api_key)

    def _params(self, **params: Any) -> dict[str, Any]:
        params = {k: v for k, v in params.items() if v is not None}
        params["apikey"] = self.settings.fmp_api_key
        return params

    async def _list(self, path: str, **params: Any) -> list[dict[str, Any]]:
        data = await self._get(path, params=self._params(**params))
        return data if isinstance(data, list) else []

    # -------------------------------------------
    # Prices
    # -------------------------------------------

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        if not symbols:
            return {}
        rows = await self._list(f"/v3/quote/{','.join(symbols)}")
        results = {}
        for row in rows:
            quote = self._to_quote(row)
            if quote:
                results[quote.symbol] = quote
        return results

    @staticmethod
    def _to_quote(row: dict[str, Any]) -> Optional[Quote]:
        symbol = row.get("symbol")
        price = safe_float(row.get("price"))
        if not symbol or price is None:
            return None
        ts = row.get("timestamp")
        return Quote(
            symbol=symbol,
            price=price,
            volume=safe_int(row.get("volume")),
            timestamp=(
                datetime.fromtimestamp(int(ts), tz=timezone.utc)
                if ts else datetime.now(timezone.utc)
            ),
            change_percent=safe_float(row.get("changesPercentage")),
        )

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        if not symbol or days <= 0:
            return []
        start, end = date_range(days)
        rows = await self._list(f"/v3/historical-chart/5min/{symbol}", **{"from": start, "to": end})
        bars = []
        for row in rows:
            try:
                ts = datetime.strptime(row["date"], "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc)
                bars.append(IntradayBar(
                    time=ts,
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=safe_int(row.get("volume")),
                ))
            except (KeyError, TypeError, ValueError):
                continue
        # FMP returns newest first
        return sorted(bars, key=lambda b: b.time)

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        if not symbol or days <= 0:
            return []
        start, end = date_range(days)
        data = await self._get(
            f"/v3/historical-price-full/{symbol}",
            params=self._params(**{"from": start, "to": end}),
        )
        rows = data.get("historical", []) if isinstance(data, dict) else []
        bars = []
        for row in rows:
            try:
                bars.append(DailyBar(
                    date=date.fromisoformat(str(row["date"])[:10]),
                    open=float(row["open"]),
                    high=float(row["high"]),
                    low=float(row["low"]),
                    close=float(row["close"]),
                    volume=safe_int(row.get("volume")),
                ))
            except (KeyError, TypeError, ValueError):
                continue
        return sorted(bars, key=lambda b: b.date)

    # -------------------------------------------
    # Fundamentals
    # -------------------------------------------

    async def get_profile(self, symbol: str) -> Optional[CompanyProfile]:
        rows = await self._list(f"/v3/profile/{symbol}")
        if not rows:
            return None
        row = rows[0]
        return CompanyProfile(
            name=row.get("companyName") or symbol,
            sector=row.get("sector") or None,
            industry=row.get("industry") or None,
            description=row.get("description") or None,
        )

    async def get_metrics(self, symbol: str) -> Optional[FinancialMetrics]:
        rows = await self._list(f"/v3/key-metrics/{symbol}", limit=1)
        if not rows:
            return None
        row = rows[0]

        earnings_date = None
        quotes = await self._list(f"/v3/quote/{symbol}")
        if quotes and quotes[0].get("earningsAnnouncement"):
            try:
                earnings_date = parse_timestamp(quotes[0]["earningsAnnouncement"]).date()
            except ValueError:
                earnings_date = None

        return FinancialMetrics(
            market_cap=safe_float(row.get("marketCap")),
            pe_ratio=safe_float(row.get("peRatio")),
            eps=safe_float(row.get("netIncomePerShare")),
            earnings_date=earnings_date,
            dividend_yield=safe_float(row.get("dividendYield")),
            pb_ratio=safe_float(row.get("pbRatio")),
            debt_to_equity=safe_float(row.get("debtToEquity")),
        )

    async def get_sentiment(self, symbol: str) -> Optional[SentimentData]:
        rows = await self._list("/v3/stock-news-sentiments-rss-feed", tickers=symbol, page=0)
        scores = [
            s for s in (safe_float(r.get("sentimentScore")) for r in rows if r.get("symbol", symbol) == symbol)
            if s is not None
        ]
        if not scores:
            return None
        # FMP scores are 0..1; rescale to -1..1
        score = max(-1.0, min(1.0, (sum(scores) / len(scores) - 0.5) * 2.0))
        return SentimentData(score=score, label=sentiment_label(score))

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
        rows = await self._list(
            "/v3/stock-screener",
            priceMoreThan=min_price,
            priceLowerThan=max_price,
            volumeMoreThan=min_volume,
            sector=sector,
            isActivelyTrading="true",
            country="US",
            limit=limit,
        )
        return [r["symbol"] for r in rows if r.get("symbol")][:limit]

    async def _movers(self, kind: str, limit: int) -> list[str]:
        rows = await self._list(f"/v3/stock_market/{kind}")
        return [r["symbol"] for r in rows if r.get("symbol")][:limit]

    async def get_top_gainers(self, limit: int = 10) -> list[str]:
        return await self._movers("gainers", limit)

    async def get_top_losers(self, limit: int = 10) -> list[str]:
        return await self._movers("losers", limit)

    async def get_most_active(self, limit: int = 10) -> list[str]:
        return await self._movers("actives", limit)

    async def search_symbols(self, query: str, limit: int = 10) -> list[SearchResult]:
        if not query.strip():
            return []
        rows = await self._list("/v3/search", query=query, limit=limit)
        return [
            SearchResult(
                symbol=r["symbol"],
                name=r.get("name") or "",
                exchange=r.get("exchangeShortName") or r.get("stockExchange"),
            )
            for r in rows
            if r.get("symbol")
        ]
