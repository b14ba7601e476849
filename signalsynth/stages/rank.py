"""
Setup ranking.

Pure scoring: identical inputs give identical setups, except valid_until,
which is exactly generation time plus the intent's window.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from signalsynth.core.logging import LoggerMixin
from signalsynth.core.timeutil import days_until, now_utc
from signalsynth.domain.models import (
    EodStats,
    FinancialMetrics,
    IntradayStats,
    Quote,
    SentimentData,
    SetupType,
    TickerSource,
    TradeSetup,
    TradingIntent,
)

VALIDITY_WINDOWS = {
    TradingIntent.DAY_TRADE: timedelta(minutes=30),
    TradingIntent.SWING: timedelta(days=1),
    TradingIntent.LONG_TERM: timedelta(days=7),
}

EARNINGS_PENALTY = {
    TradingIntent.DAY_TRADE: 0.2,
    TradingIntent.SWING: 0.8,
    TradingIntent.LONG_TERM: 0.4,
}
EARNINGS_WINDOW_DAYS = 3

MAX_SCORE = 4.0
MIN_CONFIDENCE = 0.1
HIGH_PROBABILITY_SCORE = 2.0
STOP_FACTOR = 0.98
TARGET_FACTOR = 1.05


class SetupRanker(LoggerMixin):
    """Scores quotes plus indicators into TradeSetups, best first."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or now_utc

    def rank(
        self,
        symbols: list[str],
        quotes: dict[str, Quote],
        intent: TradingIntent,
        intraday: Optional[dict[str, IntradayStats]] = None,
        eod: Optional[dict[str, EodStats]] = None,
        sentiment: Optional[dict[str, SentimentData]] = None,
        metrics: Optional[dict[str, FinancialMetrics]] = None,
        sources: Optional[dict[str, TickerSource]] = None,
    ) -> list[TradeSetup]:
        """
        Build and sort setups.

        Symbols without a quote are dropped. Ties keep input order.
        """
        intraday = intraday or {}
        eod = eod or {}
        sentiment = sentiment or {}
        metrics = metrics or {}
        sources = sources or {}
        generated_at = self.clock()

        setups = []
        for symbol in symbols:
            quote = quotes.get(symbol)
            if quote is None:
                continue
            setup = self.score(
                quote,
                intent,
                generated_at,
                intraday.get(symbol),
                eod.get(symbol),
                sentiment.get(symbol),
                metrics.get(symbol),
            )
            setup.source = sources.get(symbol, TickerSource.PREDEFINED)
            setups.append(setup)

        setups.sort(key=lambda s: s.confidence, reverse=True)
        self.logger.info(f"Ranked {len(setups)} setups for {intent.value}")
        return setups

    def score(
        self,
        quote: Quote,
        intent: TradingIntent,
        generated_at: datetime,
        intraday: Optional[IntradayStats] = None,
        eod: Optional[EodStats] = None,
        sentiment: Optional[SentimentData] = None,
        metrics: Optional[FinancialMetrics] = None,
    ) -> TradeSetup:
        price = quote.price
        score = 0.0
        reasons: list[str] = []

        if intraday is not None:
            if intraday.vwap is not None and price > intraday.vwap:
                score += 1
                reasons.append(f"Price above VWAP ({intraday.vwap:.2f})")
            if intraday.rsi14 is not None:
                if intraday.rsi14 < 30:
                    score += 1
                    reasons.append(f"RSI oversold ({intraday.rsi14:.1f})")
                elif intraday.rsi14 > 70:
                    score -= 0.5
                    reasons.append("RSI overbought")
                else:
                    reasons.append("RSI neutral")

        if eod is not None and eod.sma200 is not None and price > eod.sma200:
            score += 1
            reasons.append("Price above SMA-200")

        if sentiment is not None and sentiment.score > 0.2:
            score += 1
            reasons.append(f"Positive sentiment ({sentiment.label}, {sentiment.score:.2f})")

        penalty = 0.0
        if metrics is not None and metrics.earnings_date is not None:
            days = days_until(metrics.earnings_date, generated_at)
            if 0 <= days <= EARNINGS_WINDOW_DAYS:
                penalty = EARNINGS_PENALTY[intent]
                reasons.append(f"Upcoming earnings in {days} days (High Volatility Risk)")

        confidence = min(1.0, max(MIN_CONFIDENCE, score / MAX_SCORE - penalty))
        setup_type = (
            SetupType.HIGH_PROBABILITY if score > HIGH_PROBABILITY_SCORE else SetupType.SPECULATIVE
        )

        return TradeSetup(
            symbol=quote.symbol,
            setup_type=setup_type.value,
            trigger_price=price,
            stop_loss=price * STOP_FACTOR,
            target_price=price * TARGET_FACTOR,
            confidence=confidence,
            reasons=reasons,
            valid_until=generated_at + VALIDITY_WINDOWS[intent],
            intent=intent,
            intraday_stats=intraday,
            eod_stats=eod,
            metrics=metrics,
            sentiment=sentiment,
        )
