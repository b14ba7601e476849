"""
Candidate discovery.

Builds the candidate universe as an ordered symbol -> provenance map.
First-seen provenance wins, so pinned tickers keep CUSTOM even when a
curated list or the screener also returns them.
"""

from typing import Optional

from signalsynth.core.logging import LoggerMixin
from signalsynth.domain.models import (
    AssetClass,
    DiscoveryMode,
    RiskTolerance,
    ScreenerThresholds,
    TickerSource,
    TradingIntent,
)
from signalsynth.services.gateway import MarketDataGateway

DAY_TRADE_CANDIDATES = [
    "AAPL", "MSFT", "GOOGL", "AMZN", "META", "NVDA", "TSLA",
    "JPM", "BAC", "GS", "MS",
    "SPY", "QQQ", "IWM",
    "AMD", "NFLX", "DIS", "BA", "INTC",
]

SWING_CANDIDATES = [
    "AAPL", "MSFT", "GOOGL", "AMZN", "META", "NVDA",
    "JPM", "BAC", "GS", "V", "MA",
    "JNJ", "UNH", "PFE", "ABBV",
    "WMT", "HD", "MCD", "NKE", "COST",
    "CAT", "BA", "GE",
    "XOM", "CVX",
]

LONG_TERM_CANDIDATES = [
    "AAPL", "MSFT", "GOOGL", "AMZN",
    "JPM", "BAC", "V", "MA", "BRK.B",
    "JNJ", "UNH", "ABBV", "LLY",
    "PG", "KO", "PEP", "WMT", "COST",
    "CAT", "HON", "UPS",
    "XOM", "CVX",
    "SPY", "VOO", "VTI",
]

FOREX_CANDIDATES = ["EUR/USD", "GBP/USD", "USD/JPY", "AUD/USD", "USD/CAD", "USD/CHF"]
METALS_CANDIDATES = ["XAU/USD", "XAG/USD", "XPT/USD"]

CONSERVATIVE_EXCLUDE = {"TSLA", "AMD", "NVDA", "NFLX"}
AGGRESSIVE_ADD = ["RIOT", "MARA", "PLTR", "SOFI", "AMC", "GME"]

LIVE_SCREENER_LIMIT = 25
LIVE_MOVERS_LIMIT = 10


def static_candidates(intent: TradingIntent, risk: RiskTolerance) -> list[str]:
    """Curated equity list for an intent, adjusted for risk tolerance."""
    base = {
        TradingIntent.DAY_TRADE: DAY_TRADE_CANDIDATES,
        TradingIntent.SWING: SWING_CANDIDATES,
        TradingIntent.LONG_TERM: LONG_TERM_CANDIDATES,
    }[intent]

    if risk == RiskTolerance.CONSERVATIVE:
        symbols = [s for s in base if s not in CONSERVATIVE_EXCLUDE]
    elif risk == RiskTolerance.AGGRESSIVE:
        symbols = base + AGGRESSIVE_ADD
    else:
        symbols = list(base)
    return list(dict.fromkeys(symbols))


class CandidateDiscoverer(LoggerMixin):
    """Union of pinned, curated and (optionally) live-screened symbols."""

    def __init__(self, gateway: MarketDataGateway):
        self.gateway = gateway

    async def discover(
        self,
        intent: TradingIntent,
        risk: RiskTolerance = RiskTolerance.MODERATE,
        asset_class: AssetClass = AssetClass.STOCKS,
        mode: DiscoveryMode = DiscoveryMode.STATIC,
        custom_tickers: Optional[list[str]] = None,
        thresholds: Optional[ScreenerThresholds] = None,
    ) -> dict[str, TickerSource]:
        """
        Discover candidates.

        Returns:
            Insertion-ordered map of symbol -> provenance
        """
        candidates: dict[str, TickerSource] = {}

        def add(symbols: list[str], source: TickerSource) -> None:
            for symbol in symbols:
                normalized = symbol.strip().upper()
                if normalized:
                    candidates.setdefault(normalized, source)

        add(custom_tickers or [], TickerSource.CUSTOM)

        if asset_class.includes_forex:
            add(FOREX_CANDIDATES, TickerSource.PREDEFINED)
        if asset_class.includes_metals:
            add(METALS_CANDIDATES, TickerSource.PREDEFINED)

        if asset_class.includes_stocks:
            if mode == DiscoveryMode.LIVE:
                live = await self._discover_live(risk, thresholds or ScreenerThresholds())
                if live:
                    for symbol, source in live.items():
                        add([symbol], source)
                else:
                    self.logger.warning("Live discovery returned nothing, using curated list")
                    add(static_candidates(intent, risk), TickerSource.PREDEFINED)
            else:
                add(static_candidates(intent, risk), TickerSource.PREDEFINED)

        self.logger.info(f"Discovered {len(candidates)} candidates ({mode.value}, {asset_class.value})")
        return candidates

    async def _discover_live(
        self,
        risk: RiskTolerance,
        thresholds: ScreenerThresholds,
    ) -> dict[str, TickerSource]:
        min_price, min_volume = thresholds.for_risk(risk)
        found: dict[str, TickerSource] = {}

        for symbol in await self.gateway.screen_stocks(
            min_price=min_price, min_volume=min_volume, limit=LIVE_SCREENER_LIMIT,
        ):
            found.setdefault(symbol.upper(), TickerSource.SCREENER)
        for symbol in await self.gateway.get_top_gainers(LIVE_MOVERS_LIMIT):
            found.setdefault(symbol.upper(), TickerSource.LIVE_GAINER)
        for symbol in await self.gateway.get_top_losers(LIVE_MOVERS_LIMIT):
            found.setdefault(symbol.upper(), TickerSource.LIVE_LOSER)
        for symbol in await self.gateway.get_most_active(LIVE_MOVERS_LIMIT):
            found.setdefault(symbol.upper(), TickerSource.LIVE_ACTIVE)

        return found
