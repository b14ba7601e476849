"""
SignalSynth CLI entry point.

Usage:
    # One analysis run
    signalsynth analyze --intent swing --risk moderate

    # Pin tickers and pick a provider for every LLM stage
    signalsynth analyze -t AAPL -t NVDA --llm-provider anthropic

    # Watchlist and history
    signalsynth watchlist add AAPL
    signalsynth history

    # News check on one ticker, feed URL check
    signalsynth deep-dive NVDA
    signalsynth rss verify https://example.com/feed.xml

    # Recurring runs
    signalsynth schedule
"""

import asyncio
import signal
import sys
from dataclasses import replace
from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from signalsynth import __version__
from signalsynth.core.config import get_settings, load_yaml_config
from signalsynth.core.errors import ConfigurationError
from signalsynth.core.health import BlacklistStore, ProviderHealthRegistry
from signalsynth.core.logging import get_logger, setup_logging
from signalsynth.domain.models import (
    AnalysisResult,
    AnalysisStage,
    AssetClass,
    DiscoveryMode,
    RiskTolerance,
    ScreenerThresholds,
    TradingIntent,
)
from signalsynth.domain.plans import DeepDive, RssVerification
from signalsynth.llm.models import LlmProvider, RoutingTable
from signalsynth.pipeline import create_analysis_pipeline, create_deep_dive_researcher, create_rss_verifier
from signalsynth.rss.catalog import RssFeedSelection
from signalsynth.rss.store import RssStore
from signalsynth.services.alerts import AlertSettings, MarketAlertChecker
from signalsynth.services.gateway import create_market_data_gateway
from signalsynth.services.persistence import PersistenceService, create_persistence_service
from signalsynth.services.scheduler import create_scheduler_service
from signalsynth.services.telegram import create_telegram_service
from signalsynth.stages.deep_dive import DeepDiveSubject, build_snapshot

console = Console()
logger = get_logger("cli")

BIAS_COLORS = {"bullish": "green", "bearish": "red", "neutral": "white"}


def _load_config() -> dict[str, Any]:
    try:
        return load_yaml_config()
    except FileNotFoundError as e:
        logger.warning(f"{e}; using built-in defaults")
        return {}


def run_analysis_once(
    intent: TradingIntent,
    risk: RiskTolerance,
    asset_class: AssetClass = AssetClass.STOCKS,
    discovery_mode: DiscoveryMode = DiscoveryMode.STATIC,
    custom_tickers: Optional[list[str]] = None,
    llm_provider: Optional[str] = None,
    llm_model: Optional[str] = None,
    with_rss: bool = True,
    notify: bool = True,
) -> AnalysisResult:
    """
    Execute the analysis pipeline once, persist it and notify.

    Returns:
        The analysis result
    """
    settings = get_settings()
    config = _load_config()
    analysis_config = config.get("analysis") or {}

    routing = RoutingTable.from_config(config.get("llm_routing"))
    if llm_provider:
        routing = routing.with_provider(LlmProvider(llm_provider), llm_model)

    pipeline = create_analysis_pipeline(settings, config, routing=routing)
    persistence = create_persistence_service(settings)

    pinned = list(custom_tickers or []) + persistence.list_watchlist()
    rss_feeds = RssFeedSelection.from_dict((config.get("rss") or {}).get("selection")) if with_rss else None

    result = asyncio.run(pipeline.execute(
        intent,
        risk,
        asset_class,
        discovery_mode,
        custom_tickers=pinned,
        blocklist=analysis_config.get("blocklist") or [],
        screener_thresholds=ScreenerThresholds.from_dict(config.get("screener_thresholds")),
        max_shortlist=analysis_config.get("max_shortlist", 15),
        max_decision_keep=analysis_config.get("max_decision_keep", 10),
        rss_feeds=rss_feeds,
        on_progress=lambda message: console.print(f"[dim]{message}[/dim]"),
    ))

    run_id = persistence.save_result(result)

    if notify and result.setups:
        asyncio.run(create_telegram_service(settings).send_setups(result))

    logger.info(
        f"Analysis complete. Run: {run_id}, "
        f"Setups: {result.setup_count}, Errors: {len(result.errors)}"
    )
    return result


def display_result(result: AnalysisResult) -> None:
    """Display an analysis result in the terminal."""
    console.print("\n" + "=" * 60)
    console.print(f"[bold blue]SignalSynth {result.intent.value.replace('_', ' ').title()}[/bold blue]")
    console.print("=" * 60 + "\n")
    console.print(
        f"{result.total_candidates} candidates → {result.tradeable_count} tradeable → "
        f"{result.setup_count} setups\n"
    )

    if result.global_notes:
        console.print("[bold]Notes[/bold]")
        for note in result.global_notes:
            console.print(f"  • {note}")
        console.print()

    if result.setups:
        table = Table(title="Setups")
        table.add_column("Symbol", style="cyan")
        table.add_column("Type")
        table.add_column("Bias")
        table.add_column("Trigger", justify="right")
        table.add_column("Stop", justify="right")
        table.add_column("Target", justify="right")
        table.add_column("Conf", justify="right")
        table.add_column("Source", style="dim")

        for setup in result.setups:
            bias = setup.setup_bias or ""
            color = BIAS_COLORS.get(bias.lower(), "white")
            confidence = setup.decision_confidence or setup.confidence
            table.add_row(
                setup.symbol + (" ⚠️" if setup.must_review else ""),
                setup.setup_type,
                f"[{color}]{bias}[/{color}]",
                f"{setup.trigger_price:.2f}",
                f"{setup.stop_loss:.2f}",
                f"{setup.target_price:.2f}",
                f"{confidence:.0%}",
                setup.source.value,
            )
        console.print(table)
        console.print()

    synthesis = result.fundamentals_news_synthesis
    if synthesis is not None:
        console.print("[bold]Review List[/bold]")
        for item in synthesis.ranked_review_list:
            console.print(f"  [cyan]{item.symbol}[/cyan] {item.one_paragraph_brief}")
        guidance = synthesis.portfolio_guidance
        console.print(
            f"\n  Positions: {guidance.position_count}, posture: {guidance.risk_posture}"
        )
        for note in guidance.notes:
            console.print(f"  • {note}")
        console.print()

    if result.errors:
        console.print("[bold yellow]Errors[/bold yellow]")
        for error in result.errors:
            console.print(f"  ⚠️ [{error.get('stage')}] {error.get('error')}")
        console.print()


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(__version__)
def cli(verbose: bool) -> None:
    """SignalSynth - LLM-gated trade setup discovery"""
    setup_logging(log_level="DEBUG" if verbose else None)


@cli.command()
@click.option("--intent", type=click.Choice([i.value for i in TradingIntent]), default="swing")
@click.option("--risk", type=click.Choice([r.value for r in RiskTolerance]), default="moderate")
@click.option("--asset-class", type=click.Choice([a.value for a in AssetClass]), default="stocks")
@click.option("--discovery", type=click.Choice([d.value for d in DiscoveryMode]), default="static")
@click.option("--ticker", "-t", "tickers", multiple=True, help="Pin a ticker (repeatable)")
@click.option("--llm-provider", type=click.Choice([p.value for p in LlmProvider]), default=None,
              help="Route every LLM stage to this provider")
@click.option("--llm-model", default=None, help="Model to use with --llm-provider")
@click.option("--no-rss", is_flag=True, help="Skip the RSS digest")
@click.option("--no-notify", is_flag=True, help="Skip Telegram notification")
def analyze(
    intent: str,
    risk: str,
    asset_class: str,
    discovery: str,
    tickers: tuple[str, ...],
    llm_provider: Optional[str],
    llm_model: Optional[str],
    no_rss: bool,
    no_notify: bool,
) -> None:
    """Run one analysis."""
    console.print("[bold]Running SignalSynth analysis...[/bold]\n")
    try:
        result = run_analysis_once(
            TradingIntent(intent),
            RiskTolerance(risk),
            AssetClass(asset_class),
            DiscoveryMode(discovery),
            custom_tickers=list(tickers),
            llm_provider=llm_provider,
            llm_model=llm_model,
            with_rss=not no_rss,
            notify=not no_notify,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)
    display_result(result)


@cli.command()
def status() -> None:
    """Show system status."""
    settings = get_settings()
    config = _load_config()

    console.print("\n[bold]SignalSynth System Status[/bold]\n")

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Environment", settings.signalsynth_env)
    table.add_row("Timezone", settings.timezone)
    table.add_row("Log Level", settings.log_level)
    table.add_row("Database", settings.database_url)
    table.add_row("Mock data", str(settings.use_mock_data))

    console.print(table)
    console.print()

    table = Table(title="API Keys")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")

    def check_key(key: Optional[str]) -> str:
        if key and len(key) > 5:
            return "[green]✓ Configured[/green]"
        return "[red]✗ Missing[/red]"

    table.add_row("Alpaca", check_key(settings.alpaca_api_key))
    table.add_row("Polygon", check_key(settings.polygon_api_key))
    table.add_row("Twelve Data", check_key(settings.twelve_data_api_key))
    table.add_row("Finnhub", check_key(settings.finnhub_api_key))
    table.add_row("FMP", check_key(settings.fmp_api_key))
    for provider in LlmProvider:
        if provider.requires_api_key:
            table.add_row(provider.value.title(), check_key(settings.llm_key(provider.value)))
    table.add_row("Telegram", check_key(settings.telegram_bot_token))

    console.print(table)
    console.print()

    routing = RoutingTable.from_config(config.get("llm_routing"))
    table = Table(title="LLM Routing")
    table.add_column("Stage", style="cyan")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Timeout", justify="right")
    for stage, stage_config in routing.resolved().items():
        table.add_row(
            stage.value,
            stage_config.provider.value,
            stage_config.model,
            f"{stage_config.timeout_seconds:g}s",
        )
    console.print(table)
    console.print()

    health = ProviderHealthRegistry(store=BlacklistStore(settings.database_url))
    blacklisted = health.blacklisted_providers()
    if blacklisted:
        console.print("[bold yellow]Providers in cool-down[/bold yellow]")
        for name, until in blacklisted.items():
            console.print(f"  {name} until {until:.0f}")
        console.print()

    persistence = create_persistence_service(settings)
    recent = persistence.list_history(limit=5)
    if recent:
        table = Table(title="Recent Runs")
        table.add_column("Run ID", style="cyan")
        table.add_column("Time")
        table.add_column("Intent")
        table.add_column("Setups", justify="right")
        table.add_column("Errors", justify="right")

        for run in recent:
            table.add_row(
                run["run_id"][:12],
                run["timestamp"][:19],
                run["intent"],
                str(run["setup_count"]),
                str(run["error_count"]),
            )
        console.print(table)


@cli.group()
def watchlist() -> None:
    """Manage pinned tickers."""


@watchlist.command("add")
@click.argument("symbols", nargs=-1, required=True)
def watchlist_add(symbols: tuple[str, ...]) -> None:
    """Pin one or more tickers."""
    persistence = create_persistence_service()
    for symbol in symbols:
        if persistence.add_to_watchlist(symbol):
            console.print(f"[green]Added[/green] {symbol.upper()}")
        else:
            console.print(f"[yellow]Already watching[/yellow] {symbol.upper()}")


@watchlist.command("remove")
@click.argument("symbols", nargs=-1, required=True)
def watchlist_remove(symbols: tuple[str, ...]) -> None:
    """Unpin one or more tickers."""
    persistence = create_persistence_service()
    for symbol in symbols:
        if persistence.remove_from_watchlist(symbol):
            console.print(f"[green]Removed[/green] {symbol.upper()}")
        else:
            console.print(f"[yellow]Not on watchlist[/yellow] {symbol.upper()}")


@watchlist.command("list")
def watchlist_list() -> None:
    """Show pinned tickers."""
    symbols = create_persistence_service().list_watchlist()
    if not symbols:
        console.print("[dim]Watchlist is empty[/dim]")
        return
    console.print(", ".join(symbols))


@cli.command()
@click.option("--limit", default=10, show_default=True)
@click.option("--clear", is_flag=True, help="Delete all saved results")
def history(limit: int, clear: bool) -> None:
    """List or clear saved analysis results."""
    persistence = create_persistence_service()
    if clear:
        deleted = persistence.clear_history()
        console.print(f"Deleted {deleted} results")
        return

    runs = persistence.list_history(limit=limit)
    if not runs:
        console.print("[dim]No saved results[/dim]")
        return

    table = Table(title="History")
    table.add_column("Run ID", style="cyan")
    table.add_column("Time")
    table.add_column("Intent")
    table.add_column("Setups", justify="right")
    table.add_column("Symbols")
    for run in runs:
        table.add_row(
            run["run_id"][:12],
            run["timestamp"][:19],
            run["intent"],
            str(run["setup_count"]),
            ", ".join(run["symbols"]),
        )
    console.print(table)


def find_saved_setup(persistence: PersistenceService, symbol: str, limit: int = 20) -> Optional[dict[str, Any]]:
    """Most recent saved setup for a symbol, searching the last `limit` runs."""
    symbol = symbol.upper()
    for run in persistence.list_history(limit=limit):
        if symbol not in run["symbols"]:
            continue
        result = persistence.load_result(run["run_id"]) or {}
        for setup in result.get("setups") or []:
            if str(setup.get("symbol", "")).upper() == symbol:
                return setup
    return None


def run_deep_dive_once(symbol: str, intent: Optional[TradingIntent] = None) -> DeepDive:
    """
    Deep dive on one symbol.

    Uses the latest saved setup for the snapshot when there is one.

    Raises:
        ConfigurationError: No API key for the deep dive provider
    """
    settings = get_settings()
    researcher = create_deep_dive_researcher(settings, _load_config())
    researcher.stage.router.ensure_key(AnalysisStage.DEEP_DIVE)

    saved = find_saved_setup(create_persistence_service(settings), symbol)
    if saved is not None:
        subject = DeepDiveSubject.from_setup_dict(saved)
    else:
        subject = DeepDiveSubject(symbol=symbol.upper(), snapshot=build_snapshot())
    if intent is not None:
        subject = replace(subject, intent=intent)

    return asyncio.run(researcher.research(subject))


def display_deep_dive(symbol: str, deep_dive: DeepDive) -> None:
    console.print(f"\n[bold blue]Deep dive: {symbol.upper()}[/bold blue]\n")
    console.print(deep_dive.summary)
    console.print()

    if deep_dive.drivers:
        table = Table(title="Drivers")
        table.add_column("Type", style="cyan")
        table.add_column("Direction")
        table.add_column("Detail")
        for driver in deep_dive.drivers:
            color = BIAS_COLORS.get(driver.direction.lower(), "white")
            table.add_row(driver.type, f"[{color}]{driver.direction}[/{color}]", driver.detail)
        console.print(table)
        console.print()

    for title, lines in (("Risks", deep_dive.risks), ("What changes my mind", deep_dive.what_changes_my_mind)):
        if lines:
            console.print(f"[bold]{title}[/bold]")
            for line in lines:
                console.print(f"  • {line}")
            console.print()

    if deep_dive.sources:
        console.print("[bold]Sources[/bold]")
        for source in deep_dive.sources:
            console.print(f"  {source.title or source.url} [dim]{source.url}[/dim]")
        console.print()


@cli.command("deep-dive")
@click.argument("symbol")
@click.option("--intent", type=click.Choice([i.value for i in TradingIntent]), default=None)
def deep_dive(symbol: str, intent: Optional[str]) -> None:
    """Search recent news for one ticker."""
    console.print(f"[bold]Researching {symbol.upper()}...[/bold]")
    try:
        result = run_deep_dive_once(symbol, TradingIntent(intent) if intent else None)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)
    display_deep_dive(symbol, result)


@cli.group()
def rss() -> None:
    """RSS feed tools."""


def run_rss_verify_once(url: str) -> RssVerification:
    """
    Raises:
        ConfigurationError: No API key for the verification provider
    """
    verifier = create_rss_verifier(get_settings(), _load_config())
    verifier.router.ensure_key(AnalysisStage.RSS_VERIFY)
    return asyncio.run(verifier.verify(url))


@rss.command("verify")
@click.argument("url")
def rss_verify(url: str) -> None:
    """Check that URL serves a usable feed. Exits 1 if it does not."""
    try:
        verification = run_rss_verify_once(url)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(2)

    if verification.is_valid:
        console.print(f"[green]✓ Valid feed[/green] {verification.title}")
        console.print(f"  {verification.description}")
        return
    console.print(f"[red]✗ Not a usable feed[/red] ({verification.title})")
    console.print(f"  {verification.description}")
    sys.exit(1)


@cli.command("clear-cache")
def clear_cache() -> None:
    """Reset provider cool-downs and the stored RSS items."""
    settings = get_settings()
    ProviderHealthRegistry(store=BlacklistStore(settings.database_url)).clear()
    items, feeds = RssStore(settings.rss_database_url).clear()
    console.print("[green]Provider cool-downs cleared[/green]")
    console.print(f"[green]Removed {items} RSS items and {feeds} feed validators[/green]")


def check_alerts_once() -> int:
    """Run the watchlist alert rules once and notify. Returns alerts sent."""
    settings = get_settings()
    config = _load_config()
    alert_settings = AlertSettings.from_dict(config.get("alerts"))
    persistence = create_persistence_service(settings)
    symbols = persistence.list_watchlist()
    if not alert_settings.enabled or not symbols:
        return 0

    checker = MarketAlertChecker(
        create_market_data_gateway(settings, config), alert_settings, store=persistence,
    )

    async def _run() -> int:
        alerts = await checker.check(symbols)
        return await create_telegram_service(settings).send_alerts([a.to_dict() for a in alerts])

    return asyncio.run(_run())


@cli.command()
@click.option("--intent", type=click.Choice([i.value for i in TradingIntent]), default="day_trade")
@click.option("--risk", type=click.Choice([r.value for r in RiskTolerance]), default="moderate")
def schedule(intent: str, risk: str) -> None:
    """Run analysis and watchlist alerts on the configured schedule."""
    console.print("[bold]Starting SignalSynth scheduler...[/bold]")
    console.print("Press Ctrl+C to stop\n")

    def analysis_job() -> None:
        try:
            run_analysis_once(TradingIntent(intent), RiskTolerance(risk))
        except Exception as e:
            logger.error(f"Scheduled analysis failed: {e}", exc_info=True)

    def alert_job() -> None:
        try:
            check_alerts_once()
        except Exception as e:
            logger.error(f"Scheduled alert check failed: {e}", exc_info=True)

    scheduler = create_scheduler_service(config=_load_config())
    scheduler.setup_from_config(analysis_job, alert_job)
    scheduler.start()

    jobs = scheduler.get_jobs()
    if jobs:
        table = Table(title="Scheduled Jobs")
        table.add_column("Job", style="cyan")
        table.add_column("Next Run")

        for job in jobs:
            table.add_row(job["name"], job["next_run"] or "N/A")

        console.print(table)
    else:
        console.print("[yellow]No jobs scheduled. Check config/config.yaml[/yellow]")

    def shutdown(signum, frame):
        console.print("\n[yellow]Shutting down...[/yellow]")
        scheduler.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        while True:
            signal.pause()
    except AttributeError:
        # Windows doesn't have signal.pause
        import time
        while True:
            time.sleep(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
