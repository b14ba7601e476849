"""Tests for persistence, alerts, scheduling and notifications."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from signalsynth.domain.models import (
    AnalysisResult,
    IntradayBar,
    Quote,
    SetupType,
    TradeSetup,
    TradingIntent,
)
from signalsynth.services.alerts import AlertSettings, AlertType, MarketAlertChecker
from signalsynth.services.persistence import SQLitePersistence
from signalsynth.services.scheduler import SchedulerService
from signalsynth.services.telegram import TelegramService, format_result

from conftest import FIXED_NOW, FakeClock


def _result(symbols=("AAPL",), at=FIXED_NOW) -> AnalysisResult:
    setups = [
        TradeSetup(
            symbol=s,
            setup_type=SetupType.HIGH_PROBABILITY.value,
            trigger_price=100.0,
            stop_loss=98.0,
            target_price=105.0,
            confidence=0.75,
            reasons=["Price above VWAP (99.00)"],
            valid_until=at + timedelta(days=1),
            intent=TradingIntent.SWING,
            setup_bias="bullish",
        )
        for s in symbols
    ]
    return AnalysisResult(
        intent=TradingIntent.SWING,
        total_candidates=20,
        tradeable_count=10,
        setup_count=len(setups),
        setups=setups,
        generated_at=at,
    )


class TestSQLitePersistence:
    """Tests for SQLitePersistence."""

    @pytest.fixture
    def store(self):
        return SQLitePersistence("sqlite://")

    def test_watchlist(self, store):
        assert store.add_to_watchlist(" aapl ") is True
        assert store.add_to_watchlist("AAPL") is False
        assert store.add_to_watchlist("msft", note="cloud") is True
        assert sorted(store.list_watchlist()) == ["AAPL", "MSFT"]

        assert store.remove_from_watchlist("aapl") is True
        assert store.remove_from_watchlist("AAPL") is False
        assert store.list_watchlist() == ["MSFT"]

    def test_save_and_load(self, store):
        run_id = store.save_result(_result(("AAPL", "MSFT")))

        loaded = store.load_result(run_id)
        assert loaded["setup_count"] == 2
        assert [s["symbol"] for s in loaded["setups"]] == ["AAPL", "MSFT"]
        assert store.load_result("missing") is None

    def test_history_newest_first(self, store):
        store.save_result(_result(("AAPL",)), run_id="old")
        store.save_result(_result(("MSFT",), at=FIXED_NOW + timedelta(hours=1)), run_id="new")

        history = store.list_history(limit=5)

        assert [h["run_id"] for h in history] == ["new", "old"]
        assert history[0]["symbols"] == ["MSFT"]
        assert history[0]["intent"] == "swing"
        assert store.list_history(limit=1)[0]["run_id"] == "new"

    def test_save_same_run_id_overwrites(self, store):
        store.save_result(_result(("AAPL",)), run_id="r1")
        store.save_result(_result(("AAPL", "MSFT")), run_id="r1")

        history = store.list_history()
        assert len(history) == 1
        assert history[0]["setup_count"] == 2

    def test_clear_history(self, store):
        store.save_result(_result())
        store.save_result(_result())
        assert store.clear_history() == 2
        assert store.list_history() == []


class TestMarketAlertChecker:
    """Tests for rule evaluation and cooldowns."""

    def test_vwap_dip(self):
        checker = MarketAlertChecker(Mock(), AlertSettings(vwap_dip_percent=1.0), clock=FakeClock())

        alerts = checker.evaluate("AAPL", 98.0, 100.0, None)

        assert [a.alert_type for a in alerts] == [AlertType.VWAP_DIP]
        assert alerts[0].threshold == 99.0
        assert checker.evaluate("AAPL", 99.5, 100.0, None) == []

    def test_rsi_thresholds_inclusive(self):
        checker = MarketAlertChecker(Mock(), AlertSettings(), clock=FakeClock())

        assert [a.alert_type for a in checker.evaluate("AAPL", 100.0, None, 30.0)] == [AlertType.RSI_OVERSOLD]
        assert [a.alert_type for a in checker.evaluate("MSFT", 100.0, None, 70.0)] == [AlertType.RSI_OVERBOUGHT]
        assert checker.evaluate("NVDA", 100.0, None, 50.0) == []

    def test_cooldown_per_symbol_and_type(self):
        clock = FakeClock()
        checker = MarketAlertChecker(Mock(), AlertSettings(cooldown_minutes=60), clock=clock)

        assert checker.evaluate("AAPL", 100.0, None, 20.0)
        assert checker.evaluate("AAPL", 100.0, None, 20.0) == []
        assert checker.evaluate("MSFT", 100.0, None, 20.0)

        clock.advance(60 * 60 + 1)
        assert checker.evaluate("AAPL", 100.0, None, 20.0)

    def test_cooldown_persists_across_checkers(self):
        clock = FakeClock()
        store = SQLitePersistence("sqlite://")
        settings = AlertSettings(cooldown_minutes=60)

        first = MarketAlertChecker(Mock(), settings, store=store, clock=clock)
        assert first.evaluate("AAPL", 100.0, None, 20.0)

        clock.advance(15 * 60)
        second = MarketAlertChecker(Mock(), settings, store=store, clock=clock)
        assert second.evaluate("AAPL", 100.0, None, 20.0) == []
        assert second.evaluate("AAPL", 100.0, None, 80.0)

        clock.advance(46 * 60)
        third = MarketAlertChecker(Mock(), settings, store=store, clock=clock)
        assert third.evaluate("AAPL", 100.0, None, 20.0)
        assert store.last_alert_at("AAPL", "rsi_oversold") == clock.now

    def test_check_uses_gateway_bars(self):
        bars = [
            IntradayBar(time=FIXED_NOW + timedelta(minutes=5 * i), open=110 - i, high=110.5 - i,
                        low=109.5 - i, close=110 - i, volume=100)
            for i in range(20)
        ]
        gateway = Mock()
        gateway.get_quotes = AsyncMock(return_value={"AAPL": Quote("AAPL", 95.0, 1_000, FIXED_NOW)})
        gateway.get_intraday = AsyncMock(return_value=bars)
        checker = MarketAlertChecker(gateway, AlertSettings(), clock=FakeClock())

        alerts = asyncio.run(checker.check(["aapl", "MSFT"]))

        assert {a.alert_type for a in alerts} == {AlertType.VWAP_DIP, AlertType.RSI_OVERSOLD}
        gateway.get_intraday.assert_awaited_once_with("AAPL", 1)
        assert alerts[0].to_dict()["alert_type"] == "vwap_dip"

    def test_settings_from_dict(self):
        settings = AlertSettings.from_dict({"enabled": True, "rsi_oversold": 25, "unknown": 1})
        assert settings.enabled is True
        assert settings.rsi_oversold == 25
        assert AlertSettings.from_dict(None) == AlertSettings()


class TestSchedulerService:
    """Tests for SchedulerService (scheduler never started)."""

    @pytest.fixture
    def service(self):
        settings = Mock()
        settings.timezone = "UTC"
        config = {
            "scheduler": {
                "analysis": {"enabled": True, "cron": "0 10 * * mon-fri"},
                "alert_check": {"enabled": True, "interval_minutes": 5},
            },
        }
        return SchedulerService(settings, config, scheduler=BackgroundScheduler(timezone="UTC"))

    def test_setup_from_config(self, service):
        service.setup_from_config(lambda: None, lambda: None)
        assert {job["name"] for job in service.get_jobs()} == {"analysis", "alert_check"}

    def test_alert_job_needs_callable(self, service):
        service.setup_from_config(lambda: None)
        assert [job["name"] for job in service.get_jobs()] == ["analysis"]

    def test_invalid_cron(self, service):
        with pytest.raises(ValueError):
            service.add_job("bad", lambda: None, "* * *")

    def test_remove_job(self, service):
        service.add_interval_job("tick", lambda: None, 1)
        assert service.remove_job("tick") is True
        assert service.remove_job("tick") is False


class TestTelegramService:
    """Tests for TelegramService."""

    @pytest.fixture
    def settings(self):
        settings = Mock()
        settings.telegram_bot_token = "token"
        settings.telegram_chat_id = "42"
        settings.telegram_enabled = True
        return settings

    def test_send_message(self, settings):
        bot = Mock()
        bot.send_message = AsyncMock()
        service = TelegramService(settings=settings, bot=bot)

        assert asyncio.run(service.send_message_async("hi")) is True
        bot.send_message.assert_awaited_once_with(chat_id="42", text="hi", parse_mode="Markdown")

    def test_disabled_without_credentials(self, settings):
        settings.telegram_chat_id = None
        bot = Mock()
        bot.send_message = AsyncMock()
        service = TelegramService(settings=settings, bot=bot)

        assert service.enabled is False
        assert asyncio.run(service.send_message_async("hi")) is False
        bot.send_message.assert_not_called()

    def test_send_failure_returns_false(self, settings):
        bot = Mock()
        bot.send_message = AsyncMock(side_effect=RuntimeError("network"))
        service = TelegramService(settings=settings, bot=bot)

        assert asyncio.run(service.send_message_async("hi")) is False

    def test_send_alerts_counts_successes(self, settings):
        bot = Mock()
        bot.send_message = AsyncMock(side_effect=[None, RuntimeError("flaky")])
        service = TelegramService(settings=settings, bot=bot)

        sent = asyncio.run(service.send_alerts([{"symbol": "AAPL"}, {"symbol": "MSFT"}]))

        assert sent == 1

    def test_format_result(self):
        text = format_result(_result(("AAPL",)))
        assert "*AAPL*" in text
        assert "20 candidates" in text
        assert "75%" in text

    def test_format_empty_result(self):
        result = _result(())
        result.global_notes = ["Stand aside"]
        text = format_result(result)
        assert "No setups this run." in text
        assert "Stand aside" in text
