"""
Finnhub provider for quotes, candles, fundamentals and news sentiment.

Provides:
- Real-time quotes (no volume in the free quote payload)
- Historical candles (premium on most plans)
- Company profile and basic financial metrics
- Aggregated news sentiment
"""

from datetime import datetime, timezone
from typing import Any, Optional

from signalsynth.core.errors import DataNotAvailableError
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

SECONDS_PER_DAY = 86_400


class FinnhubProvider(BaseProvider):
    """
    Finnhub data provider.

    Free tier limitations:
    - 60 API calls/minute
    - Candles require a paid plan
    """

    name = "finnhub"
    BASE_URL = "https://finnhub.io/api/v1"

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.finnhub_api_key)

    def _params(self, **params: Any) -> dict[str, Any]:
        params["token"] = self.settings.finnhub_api_key
        return params

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        """One request per symbol; symbols without a price are skipped."""
        results: dict[str, Quote] = {}
        for symbol in symbols:
            try:
                data = await self._get("/quote", params=self._params(symbol=symbol))
            except DataNotAvailableError:
                continue
            quote = self._to_quote(symbol, data)
            if quote:
                results[symbol] = quote
        return results

    def _to_quote(self, symbol: str, data: dict[str, Any]) -> Optional[Quote]:
        price = safe_float(data.get("c"))
        ts = data.get("t")
        # Finnhub answers unknown symbols with c=0
        if not price or not ts:
            return None
        return Quote(
            symbol=symbol,
            price=price,
            volume=safe_int(data.get("v")),
            timestamp=datetime.fromtimestamp(int(ts), tz=timezone.utc),
            change_percent=safe_float(data.get("dp")),
        )

    async def _candles(self, symbol: str, days: int, resolution: str) -> dict[str, Any]:
        now = int(datetime.now(timezone.utc).timestamp())
        start = now - max(days, 1) * SECONDS_PER_DAY
        return await self._get(
            "/stock/candle",
            params=self._params(symbol=symbol, resolution=resolution, **{"from": start, "to": now}),
        )

    @staticmethod
    def _rows(candles: dict[str, Any]) -> list[tuple]:
        if candles.get("s") != "ok":
            return []
        volumes = candles.get("v") or []
        count = min(len(candles.get(k) or []) for k in ("t", "o", "h", "l", "c"))
        return [
            (
                candles["t"][i],
                candles["o"][i],
                candles["h"][i],
                candles["l"][i],
                candles["c"][i],
                int(volumes[i]) if i < len(volumes) else 0,
            )
            for i in range(count)
        ]

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        if not symbol or days <= 0:
            return []
        candles = await self._candles(symbol, days, "5")
        return [
            IntradayBar(
                time=datetime.fromtimestamp(t, tz=timezone.utc),
                open=o, high=h, low=l, close=c, volume=v,
            )
            for t, o, h, l, c, v in self._rows(candles)
        ]

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        if not symbol or days <= 0:
            return []
        candles = await self._candles(symbol, days, "D")
        return [
            DailyBar(
                date=datetime.fromtimestamp(t, tz=timezone.utc).date(),
                open=o, high=h, low=l, close=c, volume=v,
            )
            for t, o, h, l, c, v in self._rows(candles)
        ]

    async def get_profile(self, symbol: str) -> Optional[CompanyProfile]:
        data = await self._get("/stock/profile2", params=self._params(symbol=symbol))
        if not data or not isinstance(data, dict) or not data.get("name"):
            return None
        return CompanyProfile(
            name=data["name"],
            sector=None,
            industry=data.get("finnhubIndustry"),
            description=None,
        )

    async def get_metrics(self, symbol: str) -> Optional[FinancialMetrics]:
        data = await self._get("/stock/metric", params=self._params(symbol=symbol, metric="all"))
        metric = data.get("metric") if isinstance(data, dict) else None
        if not metric:
            return None

        market_cap = safe_float(metric.get("marketCapitalization"))
        dividend = safe_float(metric.get("dividendYieldIndicatedAnnual"))
        debt_equity = safe_float(metric.get("totalDebt/totalEquityAnnual"))
        return FinancialMetrics(
            # Finnhub reports market cap in millions and yields in percent
            market_cap=market_cap * 1_000_000 if market_cap is not None else None,
            pe_ratio=safe_float(metric.get("peTTM")),
            eps=safe_float(metric.get("epsTTM")),
            dividend_yield=dividend / 100.0 if dividend is not None else None,
            pb_ratio=safe_float(metric.get("pbAnnual")),
            debt_to_equity=debt_equity,
        )

    async def get_sentiment(self, symbol: str) -> Optional[SentimentData]:
        data = await self._get("/news-sentiment", params=self._params(symbol=symbol))
        sentiment = data.get("sentiment") if isinstance(data, dict) else None
        if not sentiment:
            return None
        bullish = safe_float(sentiment.get("bullishPercent"))
        bearish = safe_float(sentiment.get("bearishPercent"))
        if bullish is None or bearish is None:
            return None
        # Percentages may arrive as 0-1 or 0-100
        scale = 100.0 if max(bullish, bearish) > 1.0 else 1.0
        score = max(-1.0, min(1.0, (bullish - bearish) / scale))
        return SentimentData(score=score, label=sentiment_label(score))

    async def search_symbols(self, query: str, limit: int = 10) -> list[SearchResult]:
        if not query.strip():
            return []
        data = await self._get("/search", params=self._params(q=query))
        matches = data.get("result", []) if isinstance(data, dict) else []
        return [
            SearchResult(symbol=m["symbol"], name=m.get("description", ""), exchange=None)
            for m in matches[:limit]
            if m.get("symbol")
        ]
