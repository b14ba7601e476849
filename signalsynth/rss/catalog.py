"""
RSS feed catalog and per-run feed resolution.

The catalog lists topic feeds and per-ticker URL templates. The resolver
turns the user's topic selection plus the decision stage's rss flags into
the concrete feed URLs for one digest build.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml

from signalsynth.core.config import find_project_root
from signalsynth.core.logging import get_logger
from signalsynth.domain.models import TickerSource

logger = get_logger("rss.catalog")

CORE_TOPIC_KEYS = [
    "reuters:top_news",
    "cnbc:top_news",
    "cnbc:business",
    "cnbc:earnings",
    "marketwatch:top_stories",
    "yahoo_finance:top_stories",
]

EXPANDED_TOPIC_PRIORITY = [
    "seeking_alpha:all_news",
    "nasdaq:markets",
    "wsj:markets_news",
    "ft:news",
    "fortune:breaking_business_news",
    "zacks:all_commentary_articles",
    "cnn_money:top_stories",
]
EXPANDED_TOPIC_KEYS = set(EXPANDED_TOPIC_PRIORITY)

TICKER_SOURCE_PRIORITY = ["yahoo_finance", "seeking_alpha", "nasdaq", "reddit"]
DEFAULT_TICKER_SOURCES = ["yahoo_finance", "seeking_alpha"]


@dataclass(frozen=True)
class RssCatalogEntry:
    source_id: str
    source_label: str
    topic_id: str
    topic_label: str
    url: str
    is_ticker_template: bool = False

    @property
    def topic_key(self) -> str:
        return f"{self.source_id}:{self.topic_id}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RssCatalogEntry":
        return cls(
            source_id=str(data["source_id"]),
            source_label=str(data.get("source_label") or data["source_id"]),
            topic_id=str(data["topic_id"]),
            topic_label=str(data.get("topic_label") or data["topic_id"]),
            url=str(data["url"]),
            is_ticker_template=bool(data.get("is_ticker_template", False)),
        )


class RssCatalog:
    def __init__(self, entries: list[RssCatalogEntry]):
        self.entries = list(entries)
        self._by_key = {e.topic_key: e for e in reversed(self.entries)}

    def entry(self, topic_key: str) -> Optional[RssCatalogEntry]:
        return self._by_key.get(topic_key)

    def sources(self) -> dict[str, list[RssCatalogEntry]]:
        """source_id -> entries, both sorted by label."""
        grouped: dict[str, list[RssCatalogEntry]] = {}
        for entry in self.entries:
            grouped.setdefault(entry.source_id, []).append(entry)
        return {
            source_id: sorted(items, key=lambda e: e.topic_label.lower())
            for source_id, items in sorted(
                grouped.items(), key=lambda kv: kv[1][0].source_label.lower()
            )
        }

    @classmethod
    def from_list(cls, data: Optional[list[dict[str, Any]]]) -> "RssCatalog":
        entries = []
        for raw in data or []:
            try:
                entries.append(RssCatalogEntry.from_dict(raw))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed catalog entry {raw}: {e}")
        return cls(entries)


def load_catalog(path: Optional[str] = None) -> RssCatalog:
    """
    Load the feed catalog from config/rss_feeds.yaml.

    A missing or unreadable file yields an empty catalog.
    """
    if path is None:
        root = find_project_root()
        path = str((root or Path(".")) / "config" / "rss_feeds.yaml")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load RSS catalog {path}: {e}")
        return RssCatalog([])
    return RssCatalog.from_list(data.get("feeds"))


@dataclass(frozen=True)
class RssFeedSelection:
    enabled_topic_keys: frozenset[str] = frozenset(CORE_TOPIC_KEYS)
    enabled_ticker_source_ids: frozenset[str] = frozenset(DEFAULT_TICKER_SOURCES)
    use_ticker_feeds_for_final_stage: bool = True
    force_expanded_for_all: bool = False

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "RssFeedSelection":
        if not data:
            return cls()
        return cls(
            enabled_topic_keys=frozenset(data.get("enabled_topic_keys") or CORE_TOPIC_KEYS),
            enabled_ticker_source_ids=frozenset(
                data.get("enabled_ticker_source_ids") or DEFAULT_TICKER_SOURCES
            ),
            use_ticker_feeds_for_final_stage=bool(data.get("use_ticker_feeds_for_final_stage", True)),
            force_expanded_for_all=bool(data.get("force_expanded_for_all", False)),
        )


@dataclass(frozen=True)
class RssTickerInput:
    symbol: str
    source: TickerSource
    rss_needed: bool = False
    expanded_rss_needed: bool = False


class RssFeedStage(str, Enum):
    ANALYSIS = "analysis"
    DEEP_DIVE = "deep_dive"


@dataclass(frozen=True)
class RssFeedResolution:
    feed_urls: list[str] = field(default_factory=list)
    expanded_applied: bool = False


def apply_ticker_template(url: str, symbol: str) -> str:
    normalized = symbol.strip().upper()
    if "{}" in url:
        return url.replace("{}", normalized)
    if "{symbol}" in url:
        return url.replace("{symbol}", normalized)
    return url


class RssFeedResolver:
    """
    Resolve feed URLs for a run.

    - Core topics always apply
    - Expanded topics apply only when some ticker needs them (or, on deep
      dives, when forced), in priority order, capped
    - Ticker feeds apply to pinned tickers, and to tickers flagged
      rss_needed when ticker feeds are enabled
    """

    def __init__(
        self,
        max_ticker_sources_per_symbol: int = 2,
        max_expanded_topics: int = 6,
    ):
        self.max_ticker_sources_per_symbol = max_ticker_sources_per_symbol
        self.max_expanded_topics = max_expanded_topics

    def resolve(
        self,
        catalog: RssCatalog,
        selection: RssFeedSelection,
        tickers: list[RssTickerInput],
        stage: RssFeedStage = RssFeedStage.ANALYSIS,
    ) -> RssFeedResolution:
        enabled = set(selection.enabled_topic_keys)
        expanded_keys = enabled & EXPANDED_TOPIC_KEYS
        core_keys = sorted(enabled - expanded_keys, key=_core_order)

        expanded_needed = any(t.expanded_rss_needed for t in tickers)
        if stage == RssFeedStage.DEEP_DIVE:
            expanded_needed = expanded_needed or selection.force_expanded_for_all

        limited_expanded: list[str] = []
        if expanded_needed:
            prioritized = [k for k in EXPANDED_TOPIC_PRIORITY if k in expanded_keys]
            limited_expanded = prioritized[:self.max_expanded_topics]

        topic_urls = []
        for key in core_keys + limited_expanded:
            entry = catalog.entry(key)
            if entry is not None and not entry.is_ticker_template:
                topic_urls.append(entry.url)

        templates = sorted(
            (
                e for e in catalog.entries
                if e.is_ticker_template and e.source_id in selection.enabled_ticker_source_ids
            ),
            key=_ticker_source_order,
        )[:self.max_ticker_sources_per_symbol]

        ticker_urls = []
        for ticker in tickers:
            if stage == RssFeedStage.ANALYSIS:
                include = ticker.source == TickerSource.CUSTOM or (
                    selection.use_ticker_feeds_for_final_stage and ticker.rss_needed
                )
            else:
                include = ticker.source == TickerSource.CUSTOM or selection.use_ticker_feeds_for_final_stage
            if include:
                ticker_urls.extend(apply_ticker_template(t.url, ticker.symbol) for t in templates)

        urls = list(dict.fromkeys(topic_urls + ticker_urls))
        logger.info(
            f"Resolved {len(urls)} feeds ({len(topic_urls)} topic, {len(ticker_urls)} ticker, "
            f"expanded={expanded_needed})"
        )
        return RssFeedResolution(feed_urls=urls, expanded_applied=expanded_needed)


def _core_order(key: str) -> tuple[int, str]:
    return (CORE_TOPIC_KEYS.index(key) if key in CORE_TOPIC_KEYS else len(CORE_TOPIC_KEYS), key)


def _ticker_source_order(entry: RssCatalogEntry) -> int:
    if entry.source_id in TICKER_SOURCE_PRIORITY:
        return TICKER_SOURCE_PRIORITY.index(entry.source_id)
    return len(TICKER_SOURCE_PRIORITY)
