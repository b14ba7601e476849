"""
Conditional-GET feed fetcher.

Sends If-None-Match / If-Modified-Since from the stored feed state so
unchanged feeds cost a 304 and no parsing.
"""

import asyncio
from typing import Callable, Optional

from signalsynth.core.errors import ProviderError
from signalsynth.core.http import HttpClient
from signalsynth.core.logging import LoggerMixin
from signalsynth.core.timeutil import now_ms
from signalsynth.domain.news import RssFeedState
from signalsynth.rss.parser import parse_feed
from signalsynth.rss.store import RssStore

USER_AGENT = "signalsynth-rss/0.1"


class RssFeedClient(LoggerMixin):
    def __init__(
        self,
        http_client: HttpClient,
        store: RssStore,
        *,
        clock: Callable[[], int] = now_ms,
    ):
        self.http = http_client
        self.store = store
        self.clock = clock

    async def refresh(self, feed_url: str) -> int:
        """
        Fetch one feed and store its items.

        Returns:
            Number of new items (0 on 304 or skipped response)
        """
        state = self.store.get_feed_state(feed_url)
        headers = {"User-Agent": USER_AGENT}
        if state is not None:
            if state.etag:
                headers["If-None-Match"] = state.etag
            if state.last_modified:
                headers["If-Modified-Since"] = state.last_modified

        response = await self.http.aget_response(feed_url, headers=headers, provider_name="rss")
        fetched_at = self.clock()

        if response.status_code == 304:
            self.logger.debug(f"Feed not modified: {feed_url}")
            self.store.touch_feed(feed_url, fetched_at)
            return 0
        if not 200 <= response.status_code < 300:
            self.logger.warning(f"Feed {feed_url} returned HTTP {response.status_code}, skipping")
            return 0

        items = parse_feed(response.content, feed_url, fetched_at)
        inserted = self.store.upsert_items(items)
        self.store.save_feed_state(RssFeedState(
            feed_url=feed_url,
            etag=response.headers.get("ETag"),
            last_modified=response.headers.get("Last-Modified"),
            last_fetched_at=fetched_at,
        ))
        self.logger.info(f"Feed {feed_url}: {len(items)} items, {inserted} new")
        return inserted

    async def refresh_all(self, feed_urls: list[str]) -> dict[str, Optional[int]]:
        """
        Refresh feeds concurrently.

        A failing feed is logged and maps to None; the others still refresh.
        """
        results = await asyncio.gather(*(self.refresh(u) for u in feed_urls), return_exceptions=True)
        out: dict[str, Optional[int]] = {}
        for url, result in zip(feed_urls, results):
            if isinstance(result, Exception):
                self.logger.warning(f"Feed refresh failed for {url}: {result}")
                out[url] = None
            else:
                out[url] = result
        return out

    async def fetch_raw(self, feed_url: str) -> Optional[str]:
        """Body of a feed URL as text, or None on a network error or non-2xx status."""
        try:
            response = await self.http.aget_response(
                feed_url, headers={"User-Agent": USER_AGENT}, provider_name="rss",
            )
        except ProviderError as e:
            self.logger.warning(f"Could not fetch {feed_url}: {e}")
            return None
        if not 200 <= response.status_code < 300:
            self.logger.warning(f"Feed {feed_url} returned HTTP {response.status_code}")
            return None
        return response.text
