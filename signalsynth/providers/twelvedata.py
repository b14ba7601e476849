"""
Twelve Data provider.

Provides:
- Quotes
- Time series (intraday and daily)
- Company profile and statistics

Twelve Data reports most errors inside a 200 response
({"status": "error", "code": 429, ...}); those are mapped onto the usual
exceptions here.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional

from signalsynth.core.errors import (
    AuthenticationError,
    DataNotAvailableError,
    ProviderError,
    QuotaExceededError,
    RateLimitError,
)
from signalsynth.domain.models import (
    CompanyProfile,
    DailyBar,
    FinancialMetrics,
    IntradayBar,
    Quote,
)
from signalsynth.providers.base import BaseProvider, safe_float, safe_int

# 5-minute bars per regular session
BARS_PER_DAY_5MIN = 78


class TwelveDataProvider(BaseProvider):
    """
    Twelve Data provider.

    Free tier limitations:
    - 8 API calls/minute
    - 800 API calls/day
    """

    name = "twelvedata"
    BASE_URL = "https://api.twelvedata.com"

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.twelve_data_api_key)

    async def _call(self, path: str, **params: Any) -> dict[str, Any]:
        params["apikey"] = self.settings.twelve_data_api_key
        data = await self._get(path, params=params)
        if not isinstance(data, dict):
            return {}
        if data.get("status") == "error":
            self._raise_api_error(data)
        return data

    def _raise_api_error(self, data: dict[str, Any]) -> None:
        code = safe_int(data.get("code"))
        message = data.get("message", "Twelve Data error")
        if code == 429:
            raise RateLimitError(message, provider=self.name)
        if code == 401:
            raise AuthenticationError(message, provider=self.name)
        if code in (402, 403):
            raise QuotaExceededError(message, provider=self.name)
        if code == 404 or code == 400:
            raise DataNotAvailableError(message, provider=self.name)
        raise ProviderError(message, provider=self.name, recoverable=code >= 500)

    async def get_quotes(self, symbols: list[str]) -> dict[str, Quote]:
        results = {}
        for symbol in symbols:
            try:
                data = await self._call("/quote", symbol=symbol)
            except DataNotAvailableError:
                continue
            price = safe_float(data.get("close"))
            if price is None:
                continue
            ts = data.get("timestamp")
            results[symbol] = Quote(
                symbol=symbol,
                price=price,
                volume=safe_int(data.get("volume")),
                timestamp=(
                    datetime.fromtimestamp(int(ts), tz=timezone.utc)
                    if ts else datetime.now(timezone.utc)
                ),
                change_percent=safe_float(data.get("percent_change")),
            )
        return results

    async def _series(self, symbol: str, interval: str, size: int) -> list[dict[str, Any]]:
        data = await self._call("/time_series", symbol=symbol, interval=interval, outputsize=size)
        # Newest first on the wire
        return list(reversed(data.get("values") or []))

    async def get_intraday(self, symbol: str, days: int) -> list[IntradayBar]:
        if not symbol or days <= 0:
            return []
        bars = []
        for v in await self._series(symbol, "5min", min(days * BARS_PER_DAY_5MIN, 5000)):
            try:
                bars.append(IntradayBar(
                    time=datetime.strptime(v["datetime"], "%Y-%m-%d %H:%M:%S").replace(tzinfo=timezone.utc),
                    open=float(v["open"]),
                    high=float(v["high"]),
                    low=float(v["low"]),
                    close=float(v["close"]),
                    volume=safe_int(v.get("volume")),
                ))
            except (KeyError, ValueError):
                continue
        return bars

    async def get_daily(self, symbol: str, days: int) -> list[DailyBar]:
        if not symbol or days <= 0:
            return []
        bars = []
        for v in await self._series(symbol, "1day", min(days, 5000)):
            try:
                bars.append(DailyBar(
                    date=date.fromisoformat(v["datetime"][:10]),
                    open=float(v["open"]),
                    high=float(v["high"]),
                    low=float(v["low"]),
                    close=float(v["close"]),
                    volume=safe_int(v.get("volume")),
                ))
            except (KeyError, ValueError):
                continue
        return bars

    async def get_profile(self, symbol: str) -> Optional[CompanyProfile]:
        data = await self._call("/profile", symbol=symbol)
        if not data.get("name"):
            return None
        return CompanyProfile(
            name=data["name"],
            sector=data.get("sector") or None,
            industry=data.get("industry") or None,
            description=data.get("description") or None,
        )

    async def get_metrics(self, symbol: str) -> Optional[FinancialMetrics]:
        data = await self._call("/statistics", symbol=symbol)
        stats = data.get("statistics") or {}
        if not stats:
            return None
        valuations = stats.get("valuations_metrics") or {}
        financials = stats.get("financials") or {}
        income = financials.get("income_statement") or {}
        balance = financials.get("balance_sheet") or {}
        dividends = stats.get("dividends_and_splits") or {}
        return FinancialMetrics(
            market_cap=safe_float(valuations.get("market_capitalization")),
            pe_ratio=safe_float(valuations.get("trailing_pe")),
            eps=safe_float(income.get("diluted_eps_ttm")),
            dividend_yield=safe_float(dividends.get("forward_annual_dividend_yield")),
            pb_ratio=safe_float(valuations.get("price_to_book_mrq")),
            debt_to_equity=safe_float(balance.get("total_debt_to_equity_mrq")),
        )
