"""Tests for the single-symbol deep dive and RSS feed verification."""

import asyncio
import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from signalsynth.core.errors import LLMError
from signalsynth.core.http import HttpClient
from signalsynth.domain.models import (
    AnalysisStage,
    CompanyProfile,
    IntradayStats,
    SetupType,
    TickerSource,
    TradeSetup,
    TradingIntent,
)
from signalsynth.domain.news import RssDigest, RssHeadline
from signalsynth.domain.plans import NO_ACTIONABLE_NEWS, DeepDive, RssVerification
from signalsynth.llm.models import LlmProvider, LlmSource, LlmStageResponse, RoutingTable, StageModelConfig, ToolsMode
from signalsynth.llm.prompts import RSS_VERIFY_SYSTEM, SYSTEM_ANALYST
from signalsynth.llm.router import StageModelRouter
from signalsynth.rss.catalog import RssFeedResolution, RssFeedStage
from signalsynth.rss.client import RssFeedClient
from signalsynth.rss.store import RssStore
from signalsynth.stages.deep_dive import DeepDiveResearcher, DeepDiveSubject, build_snapshot
from signalsynth.stages.rss_verify import RssFeedVerifier

from conftest import FIXED_NOW, DictKeys, ScriptedLlm

DEEP_DIVE_JSON = json.dumps({
    "summary": "Guidance raised after the close.",
    "drivers": [{"type": "earnings", "direction": "bullish", "detail": "EPS beat by 12%"}],
    "risks": ["Export restrictions"],
    "what_changes_my_mind": ["Guidance cut"],
    "sources": [
        {"title": "Listed A", "url": "https://news/a", "publisher": "Wire"},
        {"title": "Listed B", "url": "https://news/b"},
    ],
})


def _researcher(responses, routing=None, keys=None, **kwargs):
    llm = ScriptedLlm(responses)
    router = StageModelRouter(routing or RoutingTable(), keys or DictKeys(), runner_factory=llm)
    return DeepDiveResearcher(router, **kwargs), llm


class TestDeepDiveSubject:
    def test_snapshot_from_saved_setup(self):
        subject = DeepDiveSubject.from_setup_dict({
            "symbol": "aapl",
            "intent": "day_trade",
            "source": "screener",
            "rss_needed": True,
            "intraday_stats": {"vwap": 101.2, "rsi14": 28.5, "atr14": 1.1},
            "profile": {"name": "Apple Inc."},
            "metrics": {"pe_ratio": 30},
        })

        assert subject.symbol == "AAPL"
        assert subject.intent == TradingIntent.DAY_TRADE
        assert subject.source == TickerSource.SCREENER
        assert subject.snapshot == "Technical: 28.50 RSI, 101.20 VWAP. Fundamental: Apple Inc., PE: 30.00."

    def test_snapshot_from_live_setup(self):
        setup = TradeSetup(
            symbol="NVDA",
            setup_type=SetupType.HIGH_PROBABILITY.value,
            trigger_price=100.0,
            stop_loss=98.0,
            target_price=105.0,
            confidence=0.6,
            reasons=[],
            valid_until=FIXED_NOW,
            intent=TradingIntent.SWING,
            source=TickerSource.LIVE_GAINER,
            expanded_rss_needed=True,
            intraday_stats=IntradayStats(vwap=120.0, rsi14=64.0),
            profile=CompanyProfile(name="NVIDIA"),
        )

        subject = DeepDiveSubject.from_setup(setup)

        assert subject.source == TickerSource.LIVE_GAINER
        assert subject.expanded_rss_needed is True
        assert subject.snapshot == "Technical: 64.00 RSI, 120.00 VWAP. Fundamental: NVIDIA, PE: N/A."

    def test_missing_context_reads_na(self):
        assert build_snapshot() == "Technical: N/A RSI, N/A VWAP. Fundamental: N/A, PE: N/A."
        subject = DeepDiveSubject.from_setup_dict({"symbol": "MSFT", "source": "bogus"})
        assert subject.source == TickerSource.CUSTOM
        assert "N/A RSI" in subject.snapshot


class TestDeepDiveResearcher:
    """Tests for DeepDiveResearcher."""

    def test_grounding_sources_come_first_and_dedupe(self):
        response = LlmStageResponse(
            raw_text=DEEP_DIVE_JSON,
            sources=[LlmSource("Grounded B", "https://news/b"), LlmSource("Grounded C", "https://news/c")],
        )
        researcher, _ = _researcher({AnalysisStage.DEEP_DIVE: response})

        result = asyncio.run(researcher.research(DeepDiveSubject("NVDA")))

        assert result.summary == "Guidance raised after the close."
        assert result.drivers[0].direction == "bullish"
        assert [s.url for s in result.sources] == ["https://news/b", "https://news/c", "https://news/a"]
        assert result.sources[0].title == "Grounded B"
        assert result.sources[2].publisher == "Wire"

    def test_request_uses_web_search(self):
        researcher, llm = _researcher({AnalysisStage.DEEP_DIVE: DEEP_DIVE_JSON})

        asyncio.run(researcher.research(DeepDiveSubject("NVDA", snapshot=build_snapshot(rsi14=55.0))))

        sent = llm.requests[0]
        assert sent.stage == AnalysisStage.DEEP_DIVE
        assert sent.tools == ToolsMode.WEB_SEARCH
        assert sent.system_prompt == SYSTEM_ANALYST
        assert "NVDA" in sent.user_prompt
        assert "55.00 RSI" in sent.user_prompt
        assert "No recent headlines found." in sent.user_prompt

    def test_gemini_routing_uses_google_search(self):
        routing = RoutingTable({
            AnalysisStage.DEEP_DIVE: StageModelConfig(LlmProvider.GEMINI, "gemini-3-pro", tools=ToolsMode.WEB_SEARCH),
        })
        researcher, llm = _researcher(
            {AnalysisStage.DEEP_DIVE: DEEP_DIVE_JSON}, routing=routing, keys=DictKeys({"gemini": "g-key"}),
        )

        asyncio.run(researcher.research(DeepDiveSubject("NVDA")))

        assert llm.requests[0].tools == ToolsMode.GOOGLE_SEARCH
        assert llm.created == [(LlmProvider.GEMINI, "gemini-3-pro", "g-key")]

    @pytest.mark.parametrize("answer", [
        LLMError("upstream 500", provider="openai"),
        "I could not find anything useful.",
        '{"summary": "", "drivers": []}',
    ])
    def test_failures_fall_back_to_no_actionable_news(self, answer):
        researcher, _ = _researcher({AnalysisStage.DEEP_DIVE: answer})

        result = asyncio.run(researcher.research(DeepDiveSubject("NVDA")))

        assert result.summary == NO_ACTIONABLE_NEWS
        assert result.drivers == [] and result.sources == []

    def test_headlines_from_deep_dive_feeds(self):
        resolver = Mock()
        resolver.resolve.return_value = RssFeedResolution(feed_urls=["https://feed/nvda"])
        builder = Mock()
        builder.build = AsyncMock(return_value=RssDigest({
            "NVDA": [RssHeadline("Nvidia unveils new chip", "https://news/x", 0, "")],
        }))
        catalog = Mock()
        researcher, llm = _researcher(
            {AnalysisStage.DEEP_DIVE: DEEP_DIVE_JSON},
            rss_builder=builder, rss_catalog=catalog, rss_resolver=resolver,
        )

        asyncio.run(researcher.research(DeepDiveSubject("NVDA", expanded_rss_needed=True)))

        args = resolver.resolve.call_args.args
        assert args[0] is catalog
        assert args[2][0].symbol == "NVDA" and args[2][0].expanded_rss_needed is True
        assert args[3] == RssFeedStage.DEEP_DIVE
        builder.build.assert_awaited_once_with(["NVDA"], ["https://feed/nvda"], lookback_hours=72)
        assert "Nvidia unveils new chip" in llm.requests[0].user_prompt

    def test_digest_failure_still_runs_stage(self):
        resolver = Mock()
        resolver.resolve.return_value = RssFeedResolution(feed_urls=["https://feed/nvda"])
        builder = Mock()
        builder.build = AsyncMock(side_effect=RuntimeError("disk full"))
        researcher, llm = _researcher(
            {AnalysisStage.DEEP_DIVE: DEEP_DIVE_JSON},
            rss_builder=builder, rss_catalog=Mock(), rss_resolver=resolver,
        )

        result = asyncio.run(researcher.research(DeepDiveSubject("NVDA")))

        assert result.summary == "Guidance raised after the close."
        assert "No recent headlines found." in llm.requests[0].user_prompt


class TestDeepDiveModel:
    def test_from_dict_tolerates_junk(self):
        deep_dive = DeepDive.from_dict({
            "summary": "Quiet week",
            "drivers": [{"type": "macro"}, "not an object"],
            "risks": "single string",
            "sources": None,
        })
        assert deep_dive.drivers[0].type == "macro"
        assert deep_dive.drivers[0].direction == ""
        assert deep_dive.sources == []
        assert deep_dive.is_empty is False
        assert DeepDive().is_empty is True


def _verifier(handler, responses):
    llm = ScriptedLlm(responses)
    router = StageModelRouter(RoutingTable(), DictKeys(), runner_factory=llm)
    client = RssFeedClient(HttpClient(transport=httpx.MockTransport(handler)), RssStore("sqlite://"))
    return RssFeedVerifier(router, client), llm


class TestRssFeedVerifier:
    """Tests for RssFeedVerifier."""

    FEED = "<?xml version='1.0'?><rss><channel><title>Markets</title>" + "x" * 5000 + "</channel></rss>"

    def test_valid_feed(self):
        verifier, llm = _verifier(
            lambda r: httpx.Response(200, text=self.FEED),
            {AnalysisStage.RSS_VERIFY: '{"isValid": true, "title": "Markets", "description": "Market news"}'},
        )

        result = asyncio.run(verifier.verify("https://feed/markets"))

        assert result == RssVerification(is_valid=True, title="Markets", description="Market news")
        sent = llm.requests[0]
        assert sent.system_prompt == RSS_VERIFY_SYSTEM
        assert sent.tools == ToolsMode.NONE
        assert "https://feed/markets" in sent.user_prompt
        assert self.FEED[:2000] in sent.user_prompt
        assert self.FEED[:2001] not in sent.user_prompt

    def test_invalid_verdict_is_returned(self):
        verifier, _ = _verifier(
            lambda r: httpx.Response(200, text="<html>Login</html>"),
            {AnalysisStage.RSS_VERIFY: '{"isValid": false, "title": "Login page"}'},
        )

        result = asyncio.run(verifier.verify("https://site/login"))

        assert result.is_valid is False
        assert result.title == "Login page"
        assert result.description == "No description"

    @pytest.mark.parametrize("handler", [
        lambda r: httpx.Response(404),
        lambda r: httpx.Response(200, text="   "),
    ])
    def test_unfetchable_url_skips_llm(self, handler):
        verifier, llm = _verifier(handler, {})

        result = asyncio.run(verifier.verify("https://feed/missing"))

        assert result == RssVerification(is_valid=False, title="Unknown", description="Could not fetch URL.")
        assert llm.requests == []

    def test_network_error_is_unfetchable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        verifier, _ = _verifier(handler, {})

        assert asyncio.run(verifier.verify("https://feed/down")).description == "Could not fetch URL."

    def test_unparseable_answer(self):
        verifier, _ = _verifier(
            lambda r: httpx.Response(200, text=self.FEED),
            {AnalysisStage.RSS_VERIFY: "Looks like a feed to me"},
        )

        result = asyncio.run(verifier.verify("https://feed/markets"))

        assert result == RssVerification(is_valid=False, title="Unknown", description="Failed to parse validation.")

    def test_provider_failure(self):
        verifier, _ = _verifier(
            lambda r: httpx.Response(200, text=self.FEED),
            {AnalysisStage.RSS_VERIFY: LLMError("quota exceeded", provider="openai")},
        )

        result = asyncio.run(verifier.verify("https://feed/markets"))

        assert result.is_valid is False
        assert result.title == "Error"
        assert result.description.startswith("Verification process failed:")
        assert "quota exceeded" in result.description
