"""
Targeted enrichment.

Only symbols that asked for a data kind (via the shortlist's
requested_enrichment tags) get it fetched. Symbols that asked for nothing
get everything, except EOD stats on day trades.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, TypeVar

from signalsynth.core.logging import LoggerMixin
from signalsynth.domain import indicators
from signalsynth.domain.models import (
    CompanyProfile,
    EodStats,
    FinancialMetrics,
    IntradayStats,
    SentimentData,
    TradingIntent,
)
from signalsynth.services.gateway import MarketDataGateway

T = TypeVar("T")

INTRADAY_DAYS = 2
EOD_DAYS = 200

INTRADAY_TAGS = {"INTRADAY"}
EOD_TAGS = {"EOD"}
CONTEXT_TAGS = {"FUNDAMENTALS", "PROFILE", "METRICS", "SENTIMENT", "CONTEXT", "NEWS"}


@dataclass
class SymbolContext:
    profile: Optional[CompanyProfile] = None
    metrics: Optional[FinancialMetrics] = None
    sentiment: Optional[SentimentData] = None


@dataclass
class EnrichmentResult:
    intraday: dict[str, IntradayStats] = field(default_factory=dict)
    eod: dict[str, EodStats] = field(default_factory=dict)
    context: dict[str, SymbolContext] = field(default_factory=dict)

    @property
    def sentiment(self) -> dict[str, SentimentData]:
        return {s: c.sentiment for s, c in self.context.items() if c.sentiment is not None}


@dataclass(frozen=True)
class EnrichmentTargets:
    intraday: list[str]
    eod: list[str]
    context: list[str]


def plan_targets(
    symbols: list[str],
    requested: dict[str, list[str]],
    intent: TradingIntent,
) -> EnrichmentTargets:
    """
    Decide which sub-fetchers run for which symbols.

    Args:
        symbols: Shortlisted symbols, in order
        requested: symbol -> requested enrichment tags (upper-case)
        intent: Trading intent
    """
    intraday, eod, context = [], [], []
    for symbol in symbols:
        tags = set(requested.get(symbol) or [])
        if not tags:
            intraday.append(symbol)
            context.append(symbol)
            if intent != TradingIntent.DAY_TRADE:
                eod.append(symbol)
            continue
        if tags & INTRADAY_TAGS:
            intraday.append(symbol)
        if tags & EOD_TAGS:
            eod.append(symbol)
        if tags & CONTEXT_TAGS:
            context.append(symbol)
    return EnrichmentTargets(intraday=intraday, eod=eod, context=context)


class TargetedEnricher(LoggerMixin):
    """Fetches bars and context for shortlisted symbols, concurrently per symbol."""

    def __init__(self, gateway: MarketDataGateway):
        self.gateway = gateway

    async def execute(
        self,
        symbols: list[str],
        requested: dict[str, list[str]],
        intent: TradingIntent,
    ) -> EnrichmentResult:
        targets = plan_targets(symbols, requested, intent)
        self.logger.info(
            f"Enriching: intraday={len(targets.intraday)} eod={len(targets.eod)} "
            f"context={len(targets.context)}"
        )

        intraday, eod, context = await asyncio.gather(
            self._gather(targets.intraday, self._intraday_stats),
            self._gather(targets.eod, self._eod_stats),
            self._gather(targets.context, self._context),
        )
        return EnrichmentResult(intraday=intraday, eod=eod, context=context)

    async def _gather(
        self,
        symbols: list[str],
        fetch: Callable[[str], Awaitable[Optional[T]]],
    ) -> dict[str, T]:
        results = await asyncio.gather(*(fetch(s) for s in symbols), return_exceptions=True)
        out: dict[str, T] = {}
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                self.logger.warning(f"Enrichment failed for {symbol}: {result}")
                continue
            if result is not None:
                out[symbol] = result
        return out

    async def _intraday_stats(self, symbol: str) -> Optional[IntradayStats]:
        bars = await self.gateway.get_intraday(symbol, INTRADAY_DAYS)
        if not bars:
            return None
        closes = [b.close for b in bars]
        return IntradayStats(
            vwap=indicators.vwap(bars),
            rsi14=indicators.rsi(closes, 14),
            atr14=indicators.atr(bars, 14),
        )

    async def _eod_stats(self, symbol: str) -> Optional[EodStats]:
        bars = await self.gateway.get_daily(symbol, EOD_DAYS)
        if not bars:
            return None
        closes = [b.close for b in bars]
        return EodStats(sma50=indicators.sma(closes, 50), sma200=indicators.sma(closes, 200))

    async def _context(self, symbol: str) -> Optional[SymbolContext]:
        profile, metrics, sentiment = await asyncio.gather(
            self.gateway.get_profile(symbol),
            self.gateway.get_metrics(symbol),
            self.gateway.get_sentiment(symbol),
        )
        if profile is None and metrics is None and sentiment is None:
            return None
        return SymbolContext(profile=profile, metrics=metrics, sentiment=sentiment)

