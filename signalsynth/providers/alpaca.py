"""
Alpaca market data provider.

Provides:
- Batched snapshots (latest trade + daily volume)
- Intraday and daily bars

Low latency and generous limits, so it leads the quote and bar orderings.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from signalsynth.core.timeutil import parse_timestamp
from signalsynth.domain.models import DailyBar, IntradayBar, Quote
from signalsynth.providers.base import BaseProvider, safe_float, safe_int


class AlpacaProvider(BaseProvider):
    """
    Alpaca data provider (IEX feed on the free plan).

    Free tier limitations:
    - 200 API calls/minute
    - IEX volume only (a fraction of consolidated volume)
    """

    name = "alpaca"
    BASE_URL = "https://data.alpaca.markets"

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.alpaca_api_key and self.settings.alpaca_secret_key)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "APCA-API-KEY-ID": self.settings.alpaca_api_key or "",
            "APCA-API-SECRET-KEY": self.settings.alpaca_secret_key or "",
        }

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        if not symbols:
            return {}
        data = await self._get(
            "/v2/stocks/snapshots",
            params={"symbols": ",".join(symbols)},
            headers=self._headers,
        )
        results = {}
        for symbol, snap in (data or {}).items():
            quote = self._snapshot_to_quote(symbol, snap or {})
            if quote:
                results[symbol] = quote
        return results

    @staticmethod
    def _snapshot_to_quote(symbol: str, snap: dict[str, Any]) -> Optional[Quote]:
        trade = snap.get("latestTrade") or {}
        daily = snap.get("dailyBar") or {}
        prev = snap.get("prevDailyBar") or {}

        price = safe_float(trade.get("p")) or safe_float(daily.get("c"))
        if not price:
            return None

        change = None
        prev_close = safe_float(prev.get("c"))
        if prev_close:
            change = (price - prev_close) / prev_close * 100

        try:
            timestamp = parse_timestamp(trade["t"]) if trade.get("t") else datetime.now(timezone.utc)
        except ValueError:
            timestamp = datetime.now(timezone.utc)

        return Quote(
            symbol=symbol,
            price=price,
            volume=safe_int(daily.get("v")),
            timestamp=timestamp,
            change_percent=change,
        )

    async def _bars(self, symbol: str, timeframe: str, days: int) -> list[dict[str, Any]]:
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=days)
        data = await self._get(
            f"/v2/stocks/{symbol}/bars",
            params={
                "timeframe": timeframe,
                "start": start.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "limit": 10000,
                "adjustment": "all",
            },
            headers=self._headers,
        )
        return (data or {}).get("bars") or []

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        if not symbol or days <= 0:
            return []
        bars = []
        for b in await self._bars(symbol, "5Min", days):
            try:
                bars.append(IntradayBar(
                    time=parse_timestamp(b["t"]),
                    open=b["o"], high=b["h"], low=b["l"], close=b["c"],
                    volume=safe_int(b.get("v")),
                ))
            except (KeyError, ValueError):
                continue
        return bars

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        if not symbol or days <= 0:
            return []
        bars = []
        # Calendar days, not sessions
        for b in await self._bars(symbol, "1Day", int(days * 1.5) + 5):
            try:
                bars.append(DailyBar(
                    date=parse_timestamp(b["t"]).date(),
                    open=b["o"], high=b["h"], low=b["l"], close=b["c"],
                    volume=safe_int(b.get("v")),
                ))
            except (KeyError, ValueError):
                continue
        return bars
