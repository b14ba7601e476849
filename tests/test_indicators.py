"""Tests for the technical indicator routines."""

from datetime import date, timedelta

import pytest

from signalsynth.domain import indicators
from signalsynth.domain.models import DailyBar, IntradayBar

from conftest import FIXED_NOW


def _intraday(high: float, low: float, close: float, volume: int, i: int = 0) -> IntradayBar:
    return IntradayBar(
        time=FIXED_NOW + timedelta(minutes=5 * i),
        open=close, high=high, low=low, close=close, volume=volume,
    )


def _daily(closes: list[float], spread: float = 1.0) -> list[DailyBar]:
    return [
        DailyBar(date=date(2025, 1, 1) + timedelta(days=i), open=c, high=c + spread, low=c - spread,
                 close=c, volume=1_000)
        for i, c in enumerate(closes)
    ]


class TestVwap:
    def test_volume_weighted_typical_price(self):
        bars = [_intraday(11, 9, 10, 100, 0), _intraday(21, 19, 20, 300, 1)]
        assert indicators.vwap(bars) == pytest.approx(17.5)

    def test_no_bars_or_no_volume(self):
        assert indicators.vwap([]) is None
        assert indicators.vwap([_intraday(11, 9, 10, 0)]) is None


class TestRsi:
    def test_rising_closes(self):
        assert indicators.rsi([float(i) for i in range(1, 21)]) == pytest.approx(100.0)

    def test_falling_closes(self):
        assert indicators.rsi([float(i) for i in range(20, 0, -1)]) == pytest.approx(0.0)

    def test_flat_closes_are_neutral(self):
        assert indicators.rsi([50.0] * 20) == 50.0

    def test_mixed_closes_in_range(self):
        closes = [44.0, 44.3, 44.1, 43.6, 44.3, 44.8, 45.1, 45.4, 45.8, 46.1,
                  45.9, 46.3, 45.6, 46.3, 46.3, 46.0, 46.4, 46.2]
        value = indicators.rsi(closes)
        assert 50.0 < value < 80.0

    def test_needs_period_plus_one_closes(self):
        assert indicators.rsi([1.0] * 14) is None
        assert indicators.rsi([float(i) for i in range(15)]) is not None


class TestAtr:
    def test_constant_range(self):
        bars = _daily([100.0] * 20, spread=1.0)
        assert indicators.atr(bars) == pytest.approx(2.0)

    def test_gap_widens_true_range(self):
        quiet = indicators.atr(_daily([100.0] * 20))
        gapped = indicators.atr(_daily([100.0] * 19 + [110.0]))
        assert gapped > quiet

    def test_insufficient_bars(self):
        assert indicators.atr(_daily([100.0] * 14)) is None


class TestSma:
    def test_latest_window(self):
        assert indicators.sma([float(i) for i in range(1, 11)], 5) == pytest.approx(8.0)

    def test_exact_length(self):
        assert indicators.sma([2.0, 4.0, 6.0], 3) == pytest.approx(4.0)

    def test_insufficient_or_bad_period(self):
        assert indicators.sma([1.0, 2.0], 3) is None
        assert indicators.sma([1.0, 2.0], 0) is None


class TestBarsFrame:
    def test_columns_in_bar_order(self):
        df = indicators.bars_frame([_intraday(11, 9, 10, 100, 0), _intraday(21, 19, 20, 300, 1)])
        assert list(df.columns) == ["open", "high", "low", "close", "volume"]
        assert df["close"].tolist() == [10.0, 20.0]
