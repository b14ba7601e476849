"""Tests for the click CLI."""

from unittest.mock import AsyncMock, Mock, patch

import pytest
from click.testing import CliRunner

from signalsynth.cli.main import cli, find_saved_setup, run_deep_dive_once
from signalsynth.core.errors import ConfigurationError
from signalsynth.core.health import BlacklistStore, ProviderHealthRegistry
from signalsynth.domain.models import (
    AnalysisResult,
    AnalysisStage,
    IntradayStats,
    SetupType,
    TradeSetup,
    TradingIntent,
)
from signalsynth.domain.plans import (
    NO_ACTIONABLE_NEWS,
    DeepDive,
    DeepDiveDriver,
    DeepDiveSource,
    RssVerification,
)
from signalsynth.rss.store import RssStore
from signalsynth.services.persistence import SQLitePersistence

from conftest import FIXED_NOW


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("signalsynth.cli.main.setup_logging"):
        yield


@pytest.fixture
def persistence():
    store = SQLitePersistence("sqlite://")
    with patch("signalsynth.cli.main.create_persistence_service", return_value=store):
        yield store


class TestWatchlistCommands:
    def test_add_list_remove(self, persistence):
        runner = CliRunner()

        result = runner.invoke(cli, ["watchlist", "add", "aapl", "MSFT", "AAPL"])
        assert result.exit_code == 0
        assert "Already watching AAPL" in result.output

        result = runner.invoke(cli, ["watchlist", "list"])
        assert "AAPL" in result.output and "MSFT" in result.output

        runner.invoke(cli, ["watchlist", "remove", "msft"])
        assert persistence.list_watchlist() == ["AAPL"]

    def test_empty_list(self, persistence):
        result = CliRunner().invoke(cli, ["watchlist", "list"])
        assert "Watchlist is empty" in result.output


class TestHistoryCommand:
    def test_empty_history(self, persistence):
        result = CliRunner().invoke(cli, ["history"])
        assert result.exit_code == 0
        assert "No saved results" in result.output

    def test_clear(self, persistence):
        result = CliRunner().invoke(cli, ["history", "--clear"])
        assert "Deleted 0 results" in result.output


class TestClearCacheCommand:
    def test_clears_blacklist_and_rss_store(self):
        blacklist = BlacklistStore("sqlite://")
        ProviderHealthRegistry(store=blacklist).blacklist("fmp")
        rss = RssStore("sqlite://")
        rss.touch_feed("https://feed/1")

        with patch("signalsynth.cli.main.BlacklistStore", return_value=blacklist), \
                patch("signalsynth.cli.main.RssStore", return_value=rss):
            result = CliRunner().invoke(cli, ["clear-cache"])

        assert result.exit_code == 0
        assert "Removed 0 RSS items and 1 feed validators" in result.output
        assert blacklist.load(0) == {}
        assert rss.get_feed_state("https://feed/1") is None


class TestAnalyzeCommand:
    def test_configuration_error_exits_2(self):
        with patch(
            "signalsynth.cli.main.run_analysis_once",
            side_effect=ConfigurationError("No API key for LLM provider openai"),
        ):
            result = CliRunner().invoke(cli, ["analyze", "--intent", "day_trade"])

        assert result.exit_code == 2
        assert "No API key" in result.output

    def test_rejects_unknown_intent(self):
        result = CliRunner().invoke(cli, ["analyze", "--intent", "scalp"])
        assert result.exit_code != 0


def _saved_result(symbol: str = "AAPL") -> AnalysisResult:
    setup = TradeSetup(
        symbol=symbol,
        setup_type=SetupType.HIGH_PROBABILITY.value,
        trigger_price=100.0,
        stop_loss=98.0,
        target_price=105.0,
        confidence=0.7,
        reasons=[],
        valid_until=FIXED_NOW,
        intent=TradingIntent.DAY_TRADE,
        intraday_stats=IntradayStats(vwap=99.5, rsi14=31.0),
    )
    return AnalysisResult(
        intent=TradingIntent.DAY_TRADE,
        total_candidates=10,
        tradeable_count=5,
        setup_count=1,
        setups=[setup],
        generated_at=FIXED_NOW,
    )


class TestDeepDiveCommand:
    def test_displays_result(self):
        deep_dive = DeepDive(
            summary="Guidance raised",
            drivers=[DeepDiveDriver("earnings", "bullish", "EPS beat")],
            risks=["Export rules"],
            sources=[DeepDiveSource(title="Reuters", url="https://news/r")],
        )
        with patch("signalsynth.cli.main.run_deep_dive_once", return_value=deep_dive) as run:
            result = CliRunner().invoke(cli, ["deep-dive", "nvda", "--intent", "swing"])

        assert result.exit_code == 0
        run.assert_called_once_with("nvda", TradingIntent.SWING)
        assert "Guidance raised" in result.output
        assert "EPS beat" in result.output
        assert "https://news/r" in result.output

    def test_configuration_error_exits_2(self):
        with patch(
            "signalsynth.cli.main.run_deep_dive_once",
            side_effect=ConfigurationError("No API key for LLM provider openai (stage deep_dive)"),
        ):
            result = CliRunner().invoke(cli, ["deep-dive", "NVDA"])

        assert result.exit_code == 2
        assert "deep_dive" in result.output

    def test_snapshot_from_latest_saved_setup(self, persistence):
        persistence.save_result(_saved_result("AAPL"))
        researcher = Mock()
        researcher.research = AsyncMock(return_value=DeepDive.no_actionable_news())

        with patch("signalsynth.cli.main.create_deep_dive_researcher", return_value=researcher), \
                patch("signalsynth.cli.main._load_config", return_value={}):
            result = run_deep_dive_once("aapl")

        assert result.summary == NO_ACTIONABLE_NEWS
        researcher.stage.router.ensure_key.assert_called_once_with(AnalysisStage.DEEP_DIVE)
        subject = researcher.research.await_args.args[0]
        assert subject.symbol == "AAPL"
        assert subject.intent == TradingIntent.DAY_TRADE
        assert "31.00 RSI" in subject.snapshot and "99.50 VWAP" in subject.snapshot

    def test_unknown_symbol_uses_blank_snapshot(self, persistence):
        researcher = Mock()
        researcher.research = AsyncMock(return_value=DeepDive.no_actionable_news())

        with patch("signalsynth.cli.main.create_deep_dive_researcher", return_value=researcher), \
                patch("signalsynth.cli.main._load_config", return_value={}):
            run_deep_dive_once("tsla", TradingIntent.SWING)

        subject = researcher.research.await_args.args[0]
        assert subject.symbol == "TSLA"
        assert subject.intent == TradingIntent.SWING
        assert subject.snapshot.startswith("Technical: N/A RSI")
        assert find_saved_setup(persistence, "TSLA") is None


class TestRssVerifyCommand:
    def test_valid_feed(self):
        verification = RssVerification(is_valid=True, title="Markets", description="Market news")
        with patch("signalsynth.cli.main.run_rss_verify_once", return_value=verification):
            result = CliRunner().invoke(cli, ["rss", "verify", "https://feed/markets"])

        assert result.exit_code == 0
        assert "Valid feed" in result.output and "Markets" in result.output

    def test_invalid_feed_exits_1(self):
        verification = RssVerification(is_valid=False, title="Unknown", description="Could not fetch URL.")
        with patch("signalsynth.cli.main.run_rss_verify_once", return_value=verification):
            result = CliRunner().invoke(cli, ["rss", "verify", "https://feed/missing"])

        assert result.exit_code == 1
        assert "Could not fetch URL." in result.output

    def test_configuration_error_exits_2(self):
        with patch(
            "signalsynth.cli.main.run_rss_verify_once",
            side_effect=ConfigurationError("No API key for LLM provider openai (stage rss_verify)"),
        ):
            result = CliRunner().invoke(cli, ["rss", "verify", "https://feed/markets"])

        assert result.exit_code == 2
