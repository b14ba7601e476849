"""Tests for the deterministic pipeline stages."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from signalsynth.core.errors import ProviderError
from signalsynth.domain.models import (
    AssetClass,
    DiscoveryMode,
    EodStats,
    FinancialMetrics,
    IntradayBar,
    IntradayStats,
    Quote,
    RiskTolerance,
    SentimentData,
    SetupType,
    TickerSource,
    TradeSetup,
    TradingIntent,
)
from signalsynth.domain.plans import DecisionUpdate, DropItem, KeepItem
from signalsynth.stages.decision import apply_decision, setup_prompt_payload
from signalsynth.stages.discover import (
    CONSERVATIVE_EXCLUDE,
    FOREX_CANDIDATES,
    CandidateDiscoverer,
    static_candidates,
)
from signalsynth.stages.enrich import TargetedEnricher, plan_targets
from signalsynth.stages.filter import TradeabilityFilter
from signalsynth.stages.rank import SetupRanker

from conftest import FIXED_NOW, ScriptedAdapter, make_gateway


def _quote(symbol: str, price: float = 100.0) -> Quote:
    return Quote(symbol=symbol, price=price, volume=1_000_000, timestamp=FIXED_NOW)


def _setup(symbol: str, confidence: float = 0.5) -> TradeSetup:
    return TradeSetup(
        symbol=symbol,
        setup_type=SetupType.SPECULATIVE.value,
        trigger_price=100.0,
        stop_loss=98.0,
        target_price=105.0,
        confidence=confidence,
        reasons=[],
        valid_until=FIXED_NOW + timedelta(days=1),
        intent=TradingIntent.SWING,
    )


class TestTradeabilityFilter:
    """Tests for TradeabilityFilter."""

    def test_keeps_priced_symbols_in_order(self):
        adapter = ScriptedAdapter("a", prices={"MSFT": 400.0, "PENNY": 0.5, "AAPL": 150.0})
        stage = TradeabilityFilter(make_gateway(adapter))

        result = asyncio.run(stage.execute(["MSFT", "NOQUOTE", "PENNY", "AAPL"], min_price=1.0))

        assert result == ["MSFT", "AAPL"]

    def test_lower_floor_for_aggressive(self):
        adapter = ScriptedAdapter("a", prices={"PENNY": 0.5})
        stage = TradeabilityFilter(make_gateway(adapter))

        assert asyncio.run(stage.execute(["PENNY"], min_price=0.1)) == ["PENNY"]

    def test_zero_volume_is_untradeable(self):
        gateway = Mock()
        gateway.get_quotes = AsyncMock(return_value={
            "AAPL": Quote("AAPL", 150.0, 0, FIXED_NOW),
        })
        assert asyncio.run(TradeabilityFilter(gateway).execute(["AAPL"])) == []

    def test_fails_closed(self):
        gateway = Mock()
        gateway.get_quotes = AsyncMock(side_effect=RuntimeError("boom"))
        assert asyncio.run(TradeabilityFilter(gateway).execute(["AAPL"])) == []

    def test_empty_input(self):
        gateway = Mock()
        gateway.get_quotes = AsyncMock()
        assert asyncio.run(TradeabilityFilter(gateway).execute([])) == []
        gateway.get_quotes.assert_not_called()


class TestStaticCandidates:
    def test_conservative_excludes_volatile_names(self):
        symbols = static_candidates(TradingIntent.DAY_TRADE, RiskTolerance.CONSERVATIVE)
        assert not CONSERVATIVE_EXCLUDE & set(symbols)

    def test_aggressive_adds_speculative_names(self):
        symbols = static_candidates(TradingIntent.SWING, RiskTolerance.AGGRESSIVE)
        assert "RIOT" in symbols
        assert len(symbols) == len(set(symbols))


class TestCandidateDiscoverer:
    """Tests for CandidateDiscoverer."""

    def test_custom_tickers_keep_custom_provenance(self):
        discoverer = CandidateDiscoverer(make_gateway(ScriptedAdapter("a")))

        candidates = asyncio.run(discoverer.discover(
            TradingIntent.SWING, custom_tickers=[" aapl", "ZZZ", ""],
        ))

        assert list(candidates)[:2] == ["AAPL", "ZZZ"]
        assert candidates["AAPL"] == TickerSource.CUSTOM
        assert candidates["MSFT"] == TickerSource.PREDEFINED

    def test_live_mode_uses_screener(self):
        adapter = ScriptedAdapter("a", screen=["pltr", "sofi"])
        discoverer = CandidateDiscoverer(make_gateway(adapter))

        candidates = asyncio.run(discoverer.discover(
            TradingIntent.DAY_TRADE, RiskTolerance.AGGRESSIVE, mode=DiscoveryMode.LIVE,
        ))

        assert candidates == {"PLTR": TickerSource.SCREENER, "SOFI": TickerSource.SCREENER}
        screen_kwargs = [arg for method, arg in adapter.calls if method == "screen_stocks"][0]
        assert screen_kwargs["min_price"] == 1.0
        assert screen_kwargs["min_volume"] == 500_000

    def test_live_mode_falls_back_to_curated(self):
        adapter = ScriptedAdapter("a", errors={"screen_stocks": ProviderError("500", provider="a")})
        discoverer = CandidateDiscoverer(make_gateway(adapter))

        candidates = asyncio.run(discoverer.discover(
            TradingIntent.SWING, mode=DiscoveryMode.LIVE,
        ))

        assert list(candidates) == static_candidates(TradingIntent.SWING, RiskTolerance.MODERATE)

    def test_forex_only(self):
        discoverer = CandidateDiscoverer(make_gateway(ScriptedAdapter("a")))

        candidates = asyncio.run(discoverer.discover(
            TradingIntent.SWING, asset_class=AssetClass.FOREX,
        ))

        assert list(candidates) == FOREX_CANDIDATES


class TestPlanTargets:
    """Enrichment only fetches what was asked for."""

    def test_untagged_symbols_get_everything(self):
        targets = plan_targets(["AAPL"], {}, TradingIntent.SWING)
        assert targets.intraday == ["AAPL"]
        assert targets.eod == ["AAPL"]
        assert targets.context == ["AAPL"]

    def test_day_trade_skips_eod_by_default(self):
        targets = plan_targets(["AAPL"], {}, TradingIntent.DAY_TRADE)
        assert targets.eod == []

    def test_tags_select_fetchers(self):
        targets = plan_targets(
            ["AAPL", "MSFT", "NVDA"],
            {"AAPL": ["INTRADAY"], "MSFT": ["EOD", "SENTIMENT"], "NVDA": ["UNKNOWN"]},
            TradingIntent.SWING,
        )
        assert targets.intraday == ["AAPL"]
        assert targets.eod == ["MSFT"]
        assert targets.context == ["MSFT"]


class TestTargetedEnricher:
    def _bars(self, n: int = 30):
        return [
            IntradayBar(time=FIXED_NOW + timedelta(minutes=5 * i), open=10, high=11,
                        low=9, close=10 + (i % 3) * 0.1, volume=100)
            for i in range(n)
        ]

    def test_failures_skip_the_symbol(self):
        gateway = Mock()

        async def intraday(symbol, days):
            if symbol == "BAD":
                raise RuntimeError("vendor down")
            return self._bars()

        gateway.get_intraday = AsyncMock(side_effect=intraday)
        enricher = TargetedEnricher(gateway)

        result = asyncio.run(enricher.execute(
            ["AAPL", "BAD"], {"AAPL": ["INTRADAY"], "BAD": ["INTRADAY"]}, TradingIntent.SWING,
        ))

        assert list(result.intraday) == ["AAPL"]
        assert result.intraday["AAPL"].vwap is not None
        assert result.eod == {}
        assert result.context == {}

    def test_context_collects_sentiment(self):
        gateway = Mock()
        gateway.get_profile = AsyncMock(return_value=None)
        gateway.get_metrics = AsyncMock(return_value=None)
        gateway.get_sentiment = AsyncMock(return_value=SentimentData(0.5, "bullish"))
        enricher = TargetedEnricher(gateway)

        result = asyncio.run(enricher.execute(["AAPL"], {"AAPL": ["SENTIMENT"]}, TradingIntent.SWING))

        assert result.sentiment == {"AAPL": SentimentData(0.5, "bullish")}


class TestSetupRanker:
    """Tests for SetupRanker scoring."""

    @pytest.fixture
    def ranker(self):
        return SetupRanker(clock=lambda: FIXED_NOW)

    def test_full_score(self, ranker):
        setups = ranker.rank(
            ["AAPL"],
            {"AAPL": _quote("AAPL", 100.0)},
            TradingIntent.SWING,
            intraday={"AAPL": IntradayStats(vwap=95.0, rsi14=25.0)},
            eod={"AAPL": EodStats(sma200=90.0)},
            sentiment={"AAPL": SentimentData(0.5, "bullish")},
        )

        setup = setups[0]
        assert setup.confidence == 1.0
        assert setup.setup_type == SetupType.HIGH_PROBABILITY.value
        assert setup.stop_loss == pytest.approx(98.0)
        assert setup.target_price == pytest.approx(105.0)
        assert setup.valid_until == FIXED_NOW + timedelta(days=1)
        assert len(setup.reasons) == 4

    def test_no_signals_floor_confidence(self, ranker):
        setup = ranker.rank(["AAPL"], {"AAPL": _quote("AAPL")}, TradingIntent.DAY_TRADE)[0]
        assert setup.confidence == pytest.approx(0.1)
        assert setup.setup_type == SetupType.SPECULATIVE.value
        assert setup.valid_until == FIXED_NOW + timedelta(minutes=30)

    def test_overbought_penalized(self, ranker):
        setup = ranker.rank(
            ["AAPL"], {"AAPL": _quote("AAPL", 100.0)}, TradingIntent.SWING,
            intraday={"AAPL": IntradayStats(vwap=95.0, rsi14=80.0)},
        )[0]
        assert setup.confidence == pytest.approx(0.125)
        assert "RSI overbought" in setup.reasons

    def test_earnings_penalty_within_window(self, ranker):
        earnings = FIXED_NOW.date() + timedelta(days=2)
        setup = ranker.rank(
            ["AAPL"], {"AAPL": _quote("AAPL", 100.0)}, TradingIntent.SWING,
            intraday={"AAPL": IntradayStats(vwap=95.0, rsi14=25.0)},
            eod={"AAPL": EodStats(sma200=90.0)},
            sentiment={"AAPL": SentimentData(0.5, "bullish")},
            metrics={"AAPL": FinancialMetrics(earnings_date=earnings)},
        )[0]
        assert setup.confidence == pytest.approx(0.2)
        assert any("Upcoming earnings in 2 days" in r for r in setup.reasons)

    def test_earnings_outside_window_ignored(self, ranker):
        past = FIXED_NOW.date() - timedelta(days=1)
        far = FIXED_NOW.date() + timedelta(days=10)
        for earnings in (past, far):
            setup = ranker.rank(
                ["AAPL"], {"AAPL": _quote("AAPL")}, TradingIntent.SWING,
                metrics={"AAPL": FinancialMetrics(earnings_date=earnings)},
            )[0]
            assert not any("earnings" in r for r in setup.reasons)

    def test_sorted_with_stable_ties(self, ranker):
        setups = ranker.rank(
            ["AAA", "BBB", "CCC", "DDD"],
            {s: _quote(s) for s in ["AAA", "BBB", "CCC"]},
            TradingIntent.SWING,
            sentiment={"CCC": SentimentData(0.9, "bullish")},
            sources={"BBB": TickerSource.CUSTOM},
        )
        assert [s.symbol for s in setups] == ["CCC", "AAA", "BBB"]
        assert setups[2].source == TickerSource.CUSTOM
        assert setups[1].source == TickerSource.PREDEFINED

    def test_deterministic(self, ranker):
        args = (["AAPL"], {"AAPL": _quote("AAPL")}, TradingIntent.LONG_TERM)
        first = [s.to_dict() for s in ranker.rank(*args)]
        second = [s.to_dict() for s in ranker.rank(*args)]
        assert first == second


class TestApplyDecision:
    """Tests for apply_decision."""

    def test_keep_filters_and_annotates(self):
        setups = [_setup("AAPL"), _setup("MSFT"), _setup("NVDA")]
        update = DecisionUpdate(keep=[
            KeepItem("NVDA", confidence=0.8, setup_bias="bullish", expanded_rss_needed=True,
                     expanded_rss_reason="  guidance cut rumor "),
            KeepItem("AAPL", confidence=0.0, must_review=True),
        ])

        kept = apply_decision(setups, update)

        assert [s.symbol for s in kept] == ["AAPL", "NVDA"]
        aapl, nvda = kept
        assert aapl.must_review is True
        assert aapl.decision_confidence is None
        assert nvda.decision_confidence == 0.8
        assert nvda.rss_needed is True
        assert nvda.expanded_rss_reason == "guidance cut rumor"

    def test_drop_only(self):
        setups = [_setup("AAPL"), _setup("MSFT")]
        kept = apply_decision(setups, DecisionUpdate(drop=[DropItem("MSFT")]))
        assert [s.symbol for s in kept] == ["AAPL"]

    def test_empty_update_passes_through(self):
        setups = [_setup("AAPL"), _setup("MSFT")]
        assert apply_decision(setups, DecisionUpdate()) == setups

    def test_keep_wins_over_drop(self):
        setups = [_setup("AAPL"), _setup("MSFT")]
        update = DecisionUpdate(keep=[KeepItem("AAPL")], drop=[DropItem("AAPL")])
        assert [s.symbol for s in apply_decision(setups, update)] == ["AAPL"]

    def test_prompt_payload_omits_presentation_fields(self):
        payload = setup_prompt_payload(_setup("AAPL"))
        assert "valid_until" not in payload
        assert "decision_confidence" not in payload
        assert payload["symbol"] == "AAPL"
