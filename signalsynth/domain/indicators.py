"""
Technical indicator routines (VWAP, RSI, ATR, SMA).

Bars are ordered oldest first and loaded into a pandas DataFrame; RSI, ATR
and SMA come from the `ta` library. Each function returns the latest value,
or None when there is not enough data.
"""

from typing import Optional, Sequence, Union

import pandas as pd
from ta.momentum import RSIIndicator
from ta.trend import SMAIndicator
from ta.volatility import AverageTrueRange

from signalsynth.domain.models import DailyBar, IntradayBar

Bar = Union[IntradayBar, DailyBar]


def bars_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """OHLCV frame with one row per bar."""
    return pd.DataFrame(
        {
            "open": [b.open for b in bars],
            "high": [b.high for b in bars],
            "low": [b.low for b in bars],
            "close": [b.close for b in bars],
            "volume": [b.volume for b in bars],
        },
        dtype=float,
    )


def _last(series: pd.Series) -> Optional[float]:
    if series.empty:
        return None
    value = series.iloc[-1]
    return None if pd.isna(value) else float(value)


def vwap(bars: Sequence[IntradayBar]) -> Optional[float]:
    """Volume weighted average of the typical price (H+L+C)/3 over all bars."""
    if not bars:
        return None
    df = bars_frame(bars)
    total_volume = df["volume"].sum()
    if total_volume == 0:
        return None
    typical = (df["high"] + df["low"] + df["close"]) / 3.0
    return float((typical * df["volume"]).sum() / total_volume)


def rsi(closes: Sequence[float], period: int = 14) -> Optional[float]:
    """Wilder-smoothed Relative Strength Index (0-100)."""
    if len(closes) < period + 1:
        return None
    close = pd.Series(closes, dtype=float)
    # ta reports 100 for a series that never moves
    if close.diff().abs().sum() == 0:
        return 50.0
    return _last(RSIIndicator(close, window=period).rsi())


def atr(bars: Sequence[Bar], period: int = 14) -> Optional[float]:
    """Wilder-smoothed Average True Range."""
    if len(bars) < period + 1:
        return None
    df = bars_frame(bars)
    indicator = AverageTrueRange(df["high"], df["low"], df["close"], window=period)
    return _last(indicator.average_true_range())


def sma(closes: Sequence[float], period: int) -> Optional[float]:
    """Simple moving average of the most recent `period` closes."""
    if period <= 0 or len(closes) < period:
        return None
    return _last(SMAIndicator(pd.Series(closes, dtype=float), window=period).sma_indicator())
