"""
Single-symbol deep dive.

The only stage routed with web tools. Grounding sources reported by the
provider are merged ahead of the sources the model lists itself.
"""

from dataclasses import dataclass
from typing import Any, Optional

from signalsynth.core.logging import LoggerMixin
from signalsynth.domain.models import AnalysisStage, TickerSource, TradeSetup, TradingIntent
from signalsynth.domain.news import RssDigest
from signalsynth.domain.plans import DeepDive, DeepDiveSource
from signalsynth.llm.models import LlmStageResponse
from signalsynth.llm.prompts import DEEP_DIVE_TEMPLATE
from signalsynth.llm.router import StageModelRouter
from signalsynth.rss.catalog import (
    RssCatalog,
    RssFeedResolver,
    RssFeedSelection,
    RssFeedStage,
    RssTickerInput,
)
from signalsynth.rss.digest import RssDigestBuilder
from signalsynth.stages.base import LlmStage

DEEP_DIVE_LOOKBACK_HOURS = 72


def _fmt(value: Optional[float]) -> str:
    return f"{value:.2f}" if value is not None else "N/A"


@dataclass(frozen=True)
class DeepDiveSubject:
    symbol: str
    intent: TradingIntent = TradingIntent.SWING
    snapshot: str = ""
    source: TickerSource = TickerSource.CUSTOM
    rss_needed: bool = True
    expanded_rss_needed: bool = False

    @classmethod
    def from_setup(cls, setup: TradeSetup) -> "DeepDiveSubject":
        stats = setup.intraday_stats
        return cls(
            symbol=setup.symbol,
            intent=setup.intent,
            snapshot=build_snapshot(
                rsi14=stats.rsi14 if stats else None,
                vwap=stats.vwap if stats else None,
                name=setup.profile.name if setup.profile else None,
                pe_ratio=setup.metrics.pe_ratio if setup.metrics else None,
            ),
            source=setup.source,
            rss_needed=setup.rss_needed,
            expanded_rss_needed=setup.expanded_rss_needed,
        )

    @classmethod
    def from_setup_dict(cls, data: dict[str, Any]) -> "DeepDiveSubject":
        """Subject from a setup as saved in analysis history."""
        stats = data.get("intraday_stats") or {}
        profile = data.get("profile") or {}
        metrics = data.get("metrics") or {}
        try:
            source = TickerSource(data.get("source") or TickerSource.CUSTOM.value)
        except ValueError:
            source = TickerSource.CUSTOM
        try:
            intent = TradingIntent(data.get("intent") or TradingIntent.SWING.value)
        except ValueError:
            intent = TradingIntent.SWING
        return cls(
            symbol=str(data["symbol"]).upper(),
            intent=intent,
            snapshot=build_snapshot(
                rsi14=stats.get("rsi14"),
                vwap=stats.get("vwap"),
                name=profile.get("name"),
                pe_ratio=metrics.get("pe_ratio"),
            ),
            source=source,
            rss_needed=bool(data.get("rss_needed", True)),
            expanded_rss_needed=bool(data.get("expanded_rss_needed", False)),
        )


def build_snapshot(
    rsi14: Optional[float] = None,
    vwap: Optional[float] = None,
    name: Optional[str] = None,
    pe_ratio: Optional[float] = None,
) -> str:
    return (
        f"Technical: {_fmt(rsi14)} RSI, {_fmt(vwap)} VWAP. "
        f"Fundamental: {name or 'N/A'}, PE: {_fmt(pe_ratio)}."
    )


def merge_sources(grounding: list[DeepDiveSource], listed: list[DeepDiveSource]) -> list[DeepDiveSource]:
    """Grounding sources first, then the model's own; first URL wins."""
    seen: set[str] = set()
    merged = []
    for source in grounding + listed:
        key = source.url.strip()
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(source)
    return merged


class DeepDiveStage(LlmStage[DeepDive]):
    stage = AnalysisStage.DEEP_DIVE
    schema_id = "deep_dive_v1"

    def build_prompt(
        self,
        *,
        subject: DeepDiveSubject,
        digest: Optional[RssDigest] = None,
        **_: Any,
    ) -> str:
        if digest is None or digest.is_empty:
            headlines = "No recent headlines found."
        else:
            headlines = digest.to_prompt_text()
        return DEEP_DIVE_TEMPLATE.format(
            symbol=subject.symbol,
            intent=subject.intent.value,
            snapshot=subject.snapshot or build_snapshot(),
            headlines=headlines,
        )

    def parse(self, data: dict[str, Any], **_: Any) -> DeepDive:
        return DeepDive.from_dict(data)

    def finalize(self, value: DeepDive, response: LlmStageResponse) -> DeepDive:
        grounding = [DeepDiveSource(title=s.title, url=s.url) for s in response.sources]
        value.sources = merge_sources(grounding, value.sources)
        return value

    def is_empty(self, value: DeepDive) -> bool:
        return value.is_empty


class DeepDiveResearcher(LoggerMixin):
    """
    Run a deep dive for one symbol.

    Headlines come from the RSS feeds resolved for the deep dive stage over
    a 72 hour window. Any stage failure or empty answer yields the
    "no actionable news" note rather than an error.
    """

    def __init__(
        self,
        router: StageModelRouter,
        *,
        rss_builder: Optional[RssDigestBuilder] = None,
        rss_catalog: Optional[RssCatalog] = None,
        rss_resolver: Optional[RssFeedResolver] = None,
        rss_selection: Optional[RssFeedSelection] = None,
    ):
        self.stage = DeepDiveStage(router)
        self.rss_builder = rss_builder
        self.rss_catalog = rss_catalog
        self.rss_resolver = rss_resolver or RssFeedResolver()
        self.rss_selection = rss_selection or RssFeedSelection()

    async def _digest(self, subject: DeepDiveSubject) -> Optional[RssDigest]:
        if self.rss_builder is None or self.rss_catalog is None:
            return None
        resolution = self.rss_resolver.resolve(
            self.rss_catalog,
            self.rss_selection,
            [RssTickerInput(
                symbol=subject.symbol,
                source=subject.source,
                rss_needed=subject.rss_needed,
                expanded_rss_needed=subject.expanded_rss_needed,
            )],
            RssFeedStage.DEEP_DIVE,
        )
        try:
            return await self.rss_builder.build(
                [subject.symbol], resolution.feed_urls, lookback_hours=DEEP_DIVE_LOOKBACK_HOURS,
            )
        except Exception as e:
            self.logger.warning(f"RSS digest for deep dive on {subject.symbol} failed: {e}")
            return None

    async def research(self, subject: DeepDiveSubject) -> DeepDive:
        digest = await self._digest(subject)
        outcome = await self.stage.execute(subject=subject, digest=digest)
        if not outcome.is_success:
            self.logger.info(f"Deep dive on {subject.symbol}: {outcome.status.value}, using fallback note")
            return DeepDive.no_actionable_news()
        return outcome.value
