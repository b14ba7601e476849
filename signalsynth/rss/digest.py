"""
Per-ticker headline digest.

Refreshes the selected feeds, then matches recent items to tickers by
cashtag or whole-word symbol in the title or snippet.
"""

import re
from typing import Callable, Optional

from signalsynth.core.logging import LoggerMixin
from signalsynth.core.timeutil import now_ms
from signalsynth.domain.news import RssDigest, RssHeadline, RssItem
from signalsynth.rss.client import RssFeedClient
from signalsynth.rss.store import RssStore

DEFAULT_LOOKBACK_HOURS = 48
DEFAULT_MAX_ITEMS_PER_TICKER = 3


def ticker_pattern(symbol: str) -> re.Pattern:
    """Matches $SYM or SYM as a whole word, case-insensitive."""
    escaped = re.escape(symbol.upper())
    return re.compile(rf"(?:\${escaped}\b|\b{escaped}\b)", re.IGNORECASE)


def match_items(
    items: list[RssItem],
    tickers: list[str],
    max_items_per_ticker: int = DEFAULT_MAX_ITEMS_PER_TICKER,
) -> dict[str, list[RssHeadline]]:
    """
    Assign items to tickers.

    Items are de-duplicated by guid hash and taken newest first.
    """
    unique: dict[str, RssItem] = {}
    for item in items:
        unique.setdefault(item.guid_hash, item)
    ordered = sorted(unique.values(), key=lambda i: i.published_at, reverse=True)

    matched: dict[str, list[RssHeadline]] = {}
    for ticker in tickers:
        pattern = ticker_pattern(ticker)
        headlines = []
        for item in ordered:
            if pattern.search(item.title) or pattern.search(item.snippet):
                headlines.append(RssHeadline(
                    title=item.title,
                    link=item.link,
                    published_at=item.published_at,
                    snippet=item.snippet,
                ))
                if len(headlines) >= max_items_per_ticker:
                    break
        if headlines:
            matched[ticker.upper()] = headlines
    return matched


class RssDigestBuilder(LoggerMixin):
    def __init__(
        self,
        client: RssFeedClient,
        store: RssStore,
        *,
        clock: Callable[[], int] = now_ms,
    ):
        self.client = client
        self.store = store
        self.clock = clock

    async def build(
        self,
        tickers: list[str],
        feed_urls: list[str],
        lookback_hours: int = DEFAULT_LOOKBACK_HOURS,
        max_items_per_ticker: int = DEFAULT_MAX_ITEMS_PER_TICKER,
    ) -> Optional[RssDigest]:
        """
        Build a digest for tickers from the given feeds.

        Returns None when there are no tickers or feeds.
        """
        if not tickers or not feed_urls:
            return None

        await self.client.refresh_all(feed_urls)

        since = self.clock() - lookback_hours * 60 * 60 * 1000
        items = self.store.items_since(feed_urls, since)
        digest = RssDigest(items_by_ticker=match_items(items, tickers, max_items_per_ticker))
        self.logger.info(
            f"RSS digest: {len(items)} recent items, "
            f"{len(digest.items_by_ticker)}/{len(tickers)} tickers matched"
        )
        return digest
