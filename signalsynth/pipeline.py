"""
Analysis pipeline.

Sequences the stages end to end:

    discover -> filter -> quotes -> shortlist (LLM) -> enrich -> rank
      -> decision update (LLM) -> RSS digest -> fundamentals/news synthesis (LLM)

Stages run strictly in order; per-symbol work inside a stage runs
concurrently. Expensive enrichment only happens for what the shortlist
asked for.
"""

from datetime import datetime
from typing import Any, Callable, Optional, Union

from signalsynth.core.config import KeyProvider, Settings, get_settings, load_yaml_config
from signalsynth.core.http import HttpClient
from signalsynth.core.logging import LoggerMixin
from signalsynth.core.timeutil import now_utc
from signalsynth.domain.models import (
    AnalysisResult,
    AnalysisStage,
    AssetClass,
    DiscoveryMode,
    RiskTolerance,
    ScreenerThresholds,
    TradingIntent,
)
from signalsynth.domain.news import RssDigest
from signalsynth.domain.plans import DecisionUpdate, ShortlistPlan
from signalsynth.llm.models import RoutingTable
from signalsynth.llm.router import StageModelRouter, StaticKeyProvider
from signalsynth.rss.catalog import (
    RssCatalog,
    RssFeedResolver,
    RssFeedSelection,
    RssFeedStage,
    RssTickerInput,
    load_catalog,
)
from signalsynth.rss.client import RssFeedClient
from signalsynth.rss.digest import RssDigestBuilder
from signalsynth.rss.store import RssStore
from signalsynth.services.gateway import MarketDataGateway, create_market_data_gateway
from signalsynth.stages.base import OutcomeStatus, StageOutcome
from signalsynth.stages.decision import DecisionUpdater, apply_decision
from signalsynth.stages.deep_dive import DeepDiveResearcher
from signalsynth.stages.discover import CandidateDiscoverer
from signalsynth.stages.enrich import TargetedEnricher
from signalsynth.stages.filter import TradeabilityFilter
from signalsynth.stages.rank import SetupRanker
from signalsynth.stages.rss_verify import RssFeedVerifier
from signalsynth.stages.shortlist import ShortlistGate
from signalsynth.stages.synthesis import FundamentalsNewsSynthesizer

ProgressCallback = Callable[[str], None]

AGGRESSIVE_MIN_PRICE = 0.1
DEFAULT_MIN_PRICE = 1.0

LLM_STAGES = (
    AnalysisStage.SHORTLIST,
    AnalysisStage.DECISION_UPDATE,
    AnalysisStage.FUNDAMENTALS_NEWS_SYNTHESIS,
)


class AnalysisPipeline(LoggerMixin):
    """
    End-to-end analysis run.

    Usage:
        pipeline = create_analysis_pipeline()
        result = await pipeline.execute(TradingIntent.SWING)
    """

    def __init__(
        self,
        gateway: MarketDataGateway,
        router: StageModelRouter,
        *,
        rss_builder: Optional[RssDigestBuilder] = None,
        rss_catalog: Optional[RssCatalog] = None,
        rss_resolver: Optional[RssFeedResolver] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.gateway = gateway
        self.router = router
        self.rss_builder = rss_builder
        self.rss_catalog = rss_catalog
        self.rss_resolver = rss_resolver or RssFeedResolver()
        self.clock = clock

        self.discoverer = CandidateDiscoverer(gateway)
        self.filter = TradeabilityFilter(gateway)
        self.enricher = TargetedEnricher(gateway)
        self.ranker = SetupRanker(clock)

    def _router_for_run(self, llm_key: Optional[str]) -> StageModelRouter:
        if not llm_key:
            return self.router
        return self.router.with_keys(StaticKeyProvider(llm_key, self.router.keys))

    async def execute(
        self,
        intent: TradingIntent,
        risk: RiskTolerance = RiskTolerance.MODERATE,
        asset_class: AssetClass = AssetClass.STOCKS,
        discovery_mode: DiscoveryMode = DiscoveryMode.STATIC,
        llm_key: Optional[str] = None,
        custom_tickers: Optional[list[str]] = None,
        blocklist: Optional[list[str]] = None,
        screener_thresholds: Optional[ScreenerThresholds] = None,
        max_shortlist: int = 15,
        max_decision_keep: int = 10,
        rss_feeds: Optional[Union[list[str], RssFeedSelection]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisResult:
        """
        Run the staged analysis.

        Args:
            llm_key: Key for this run; overrides the key store for every stage
            rss_feeds: Explicit feed URLs, or a topic selection resolved
                against the catalog. None skips the digest.
            on_progress: Called with a short message as each stage starts

        Raises:
            ConfigurationError: No LLM key for a stage's provider
        """
        router = self._router_for_run(llm_key)
        for stage in LLM_STAGES:
            router.ensure_key(stage)

        errors: list[dict[str, Any]] = []

        def progress(message: str) -> None:
            self.logger.info(message)
            if on_progress is not None:
                on_progress(message)

        def result(**kwargs: Any) -> AnalysisResult:
            kwargs.setdefault("setups", [])
            kwargs.setdefault("setup_count", len(kwargs["setups"]))
            return AnalysisResult(intent=intent, generated_at=self.clock(), errors=errors, **kwargs)

        # Step 1: Discover
        progress("Discovering candidates...")
        raw_candidates = await self.discoverer.discover(
            intent,
            risk,
            asset_class,
            discovery_mode,
            custom_tickers,
            screener_thresholds,
        )
        blocked = {s.strip().upper() for s in (blocklist or [])}
        candidates = {s: src for s, src in raw_candidates.items() if s not in blocked}
        symbols = list(candidates)
        if not symbols:
            self.logger.info("Candidate universe is empty")
            return result(total_candidates=0, tradeable_count=0)

        # Step 2: Tradeability
        progress("Filtering tradeable symbols...")
        min_price = AGGRESSIVE_MIN_PRICE if risk == RiskTolerance.AGGRESSIVE else DEFAULT_MIN_PRICE
        tradeable = await self.filter.execute(symbols, min_price=min_price)
        if not tradeable:
            return result(total_candidates=len(symbols), tradeable_count=0)

        # Step 3: Quotes
        progress("Fetching quotes...")
        quotes = await self.gateway.get_quotes(tradeable)

        # Step 4: Shortlist gate
        progress("LLM shortlisting...")
        shortlist_outcome = await ShortlistGate(router).execute(
            symbols=tradeable,
            quotes=quotes,
            intent=intent,
            risk=risk,
            max_shortlist=max_shortlist,
        )
        self._record(errors, shortlist_outcome, AnalysisStage.SHORTLIST)
        plan = shortlist_outcome.value_or(ShortlistPlan())

        tradeable_upper = {s.upper(): s for s in tradeable}
        shortlisted = []
        for item in plan.shortlist:
            if item.avoid:
                continue
            symbol = tradeable_upper.get(item.symbol.strip().upper())
            if symbol is not None and symbol not in shortlisted:
                shortlisted.append(symbol)

        base = {
            "total_candidates": len(symbols),
            "tradeable_count": len(tradeable),
            "global_notes": plan.global_notes,
        }
        if not shortlisted:
            self.logger.info("Shortlist is empty, nothing to enrich")
            return result(**base)

        # Step 5: Targeted enrichment
        progress(f"Enriching {len(shortlisted)} shortlisted symbols...")
        requested = {
            tradeable_upper[i.symbol]: i.requested_enrichment
            for i in plan.shortlist
            if i.symbol in tradeable_upper
        }
        enrichment = await self.enricher.execute(shortlisted, requested, intent)

        # Step 6: Rank
        progress("Ranking setups...")
        setups = self.ranker.rank(
            shortlisted,
            quotes,
            intent,
            intraday=enrichment.intraday,
            eod=enrichment.eod,
            sentiment=enrichment.sentiment,
            metrics={s: c.metrics for s, c in enrichment.context.items() if c.metrics is not None},
            sources=candidates,
        )
        for setup in setups:
            context = enrichment.context.get(setup.symbol)
            if context is not None:
                setup.profile = context.profile

        # Step 7: Decision update
        decision_update: Optional[DecisionUpdate] = None
        if setups:
            progress("LLM decision update...")
            decision_outcome = await DecisionUpdater(router).execute(
                setups=setups,
                intent=intent,
                risk=risk,
                max_keep=max_decision_keep,
            )
            self._record(errors, decision_outcome, AnalysisStage.DECISION_UPDATE)
            if decision_outcome.status == OutcomeStatus.SUCCESS:
                decision_update = decision_outcome.value
                setups = apply_decision(setups, decision_update)

        if not setups:
            return result(**base, decision_update=decision_update)

        # Step 8: RSS digest
        digest = await self._build_digest(setups, rss_feeds, progress)

        # Step 9: Fundamentals + news synthesis
        progress("Synthesizing fundamentals and news...")
        synthesis_outcome = await FundamentalsNewsSynthesizer(router).execute(
            setups=setups,
            intent=intent,
            risk=risk,
            digest=digest,
        )
        self._record(errors, synthesis_outcome, AnalysisStage.FUNDAMENTALS_NEWS_SYNTHESIS)

        progress(f"Analysis complete: {len(setups)} setups")
        return result(
            **base,
            setups=setups,
            rss_digest=digest,
            decision_update=decision_update,
            fundamentals_news_synthesis=(
                synthesis_outcome.value if synthesis_outcome.is_success else None
            ),
        )

    def resolve_feeds(
        self,
        setups: list,
        rss_feeds: Optional[Union[list[str], RssFeedSelection]],
    ) -> list[str]:
        if rss_feeds is None:
            return []
        if isinstance(rss_feeds, RssFeedSelection):
            if self.rss_catalog is None:
                self.logger.warning("RSS selection given but no catalog loaded")
                return []
            tickers = [
                RssTickerInput(
                    symbol=s.symbol,
                    source=s.source,
                    rss_needed=s.rss_needed,
                    expanded_rss_needed=s.expanded_rss_needed,
                )
                for s in setups
            ]
            resolution = self.rss_resolver.resolve(
                self.rss_catalog, rss_feeds, tickers, RssFeedStage.ANALYSIS,
            )
            return resolution.feed_urls
        return list(dict.fromkeys(rss_feeds))

    async def _build_digest(
        self,
        setups: list,
        rss_feeds: Optional[Union[list[str], RssFeedSelection]],
        progress: ProgressCallback,
    ) -> Optional[RssDigest]:
        feed_urls = self.resolve_feeds(setups, rss_feeds)
        if self.rss_builder is None or not feed_urls:
            return None

        progress("Building RSS digest...")
        try:
            return await self.rss_builder.build([s.symbol for s in setups], feed_urls)
        except Exception as e:
            self.logger.error(f"RSS digest failed: {e}", exc_info=True)
            return None

    def _record(self, errors: list[dict[str, Any]], outcome: StageOutcome, stage: AnalysisStage) -> None:
        entry = outcome.error_dict(stage.value)
        if entry is not None:
            errors.append(entry)


def _create_router(
    settings: Settings,
    config: dict[str, Any],
    keys: Optional[KeyProvider] = None,
    routing: Optional[RoutingTable] = None,
) -> StageModelRouter:
    return StageModelRouter(
        routing or RoutingTable.from_config(config.get("llm_routing")),
        keys or settings,
        ollama_base_url=settings.ollama_base_url,
    )


def _create_rss_client(settings: Settings) -> tuple[RssFeedClient, RssStore]:
    rss_store = RssStore(settings.rss_database_url)
    return RssFeedClient(HttpClient(timeout=settings.http_timeout), rss_store), rss_store


def _create_resolver(config: dict[str, Any]) -> RssFeedResolver:
    rss_config = config.get("rss") or {}
    return RssFeedResolver(
        max_ticker_sources_per_symbol=rss_config.get("max_ticker_sources_per_symbol", 2),
        max_expanded_topics=rss_config.get("max_expanded_topics", 6),
    )


def create_analysis_pipeline(
    settings: Optional[Settings] = None,
    config: Optional[dict[str, Any]] = None,
    *,
    keys: Optional[KeyProvider] = None,
    routing: Optional[RoutingTable] = None,
) -> AnalysisPipeline:
    """Build a pipeline wired from settings and config.yaml."""
    settings = settings or get_settings()
    if config is None:
        config = load_yaml_config()

    client, rss_store = _create_rss_client(settings)
    return AnalysisPipeline(
        create_market_data_gateway(settings, config),
        _create_router(settings, config, keys, routing),
        rss_builder=RssDigestBuilder(client, rss_store),
        rss_catalog=load_catalog((config.get("rss") or {}).get("catalog_path")),
        rss_resolver=_create_resolver(config),
    )


def create_deep_dive_researcher(
    settings: Optional[Settings] = None,
    config: Optional[dict[str, Any]] = None,
    *,
    keys: Optional[KeyProvider] = None,
) -> DeepDiveResearcher:
    settings = settings or get_settings()
    if config is None:
        config = load_yaml_config()

    rss_config = config.get("rss") or {}
    client, rss_store = _create_rss_client(settings)
    return DeepDiveResearcher(
        _create_router(settings, config, keys),
        rss_builder=RssDigestBuilder(client, rss_store),
        rss_catalog=load_catalog(rss_config.get("catalog_path")),
        rss_resolver=_create_resolver(config),
        rss_selection=RssFeedSelection.from_dict(rss_config.get("selection")),
    )


def create_rss_verifier(
    settings: Optional[Settings] = None,
    config: Optional[dict[str, Any]] = None,
    *,
    keys: Optional[KeyProvider] = None,
) -> RssFeedVerifier:
    settings = settings or get_settings()
    if config is None:
        config = load_yaml_config()

    client, _ = _create_rss_client(settings)
    return RssFeedVerifier(_create_router(settings, config, keys), client)
