"""
RSS module - Headline digests for shortlisted tickers

Feeds are fetched with conditional GETs, cached in SQLite and matched
to tickers by symbol.
"""

from signalsynth.rss.catalog import (
    RssCatalog,
    RssCatalogEntry,
    RssFeedResolution,
    RssFeedResolver,
    RssFeedSelection,
    RssFeedStage,
    RssTickerInput,
    load_catalog,
)
from signalsynth.rss.client import RssFeedClient
from signalsynth.rss.digest import RssDigestBuilder, match_items
from signalsynth.rss.parser import parse_feed
from signalsynth.rss.store import RssStore

__all__ = [
    "RssCatalog",
    "RssCatalogEntry",
    "RssFeedResolution",
    "RssFeedResolver",
    "RssFeedSelection",
    "RssFeedStage",
    "RssTickerInput",
    "load_catalog",
    "RssFeedClient",
    "RssDigestBuilder",
    "match_items",
    "parse_feed",
    "RssStore",
]
