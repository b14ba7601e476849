"""
RSS item and feed-state storage.

SQLite via SQLAlchemy. Items are keyed by guid hash so re-fetching a feed
never duplicates headlines. Items older than the retention window are
pruned before each query.
"""

from pathlib import Path
from typing import Callable, Optional

from sqlalchemy import BigInteger, Column, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from signalsynth.core.logging import get_logger
from signalsynth.core.timeutil import now_ms
from signalsynth.domain.news import RssFeedState, RssItem

logger = get_logger("rss.store")

Base = declarative_base()

RETENTION_MS = 7 * 24 * 60 * 60 * 1000


class RssItemRow(Base):
    __tablename__ = "rss_items"

    guid_hash = Column(String(64), primary_key=True)
    feed_url = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False)
    link = Column(Text, nullable=False)
    published_at = Column(BigInteger, nullable=False, index=True)
    snippet = Column(Text, nullable=False, default="")
    fetched_at = Column(BigInteger, nullable=False)

    def to_item(self) -> RssItem:
        return RssItem(
            guid_hash=self.guid_hash,
            feed_url=self.feed_url,
            title=self.title,
            link=self.link,
            published_at=self.published_at,
            snippet=self.snippet or "",
            fetched_at=self.fetched_at,
        )


class RssFeedStateRow(Base):
    __tablename__ = "rss_feed_state"

    feed_url = Column(Text, primary_key=True)
    etag = Column(Text, nullable=True)
    last_modified = Column(Text, nullable=True)
    last_fetched_at = Column(BigInteger, nullable=True)


class RssStore:
    """
    Persistent RSS cache.

    Use database_url="sqlite://" for an in-memory store (tests).
    """

    def __init__(
        self,
        database_url: str = "sqlite://",
        *,
        clock: Callable[[], int] = now_ms,
        retention_ms: int = RETENTION_MS,
    ):
        self.database_url = database_url
        self.clock = clock
        self.retention_ms = retention_ms

        if database_url in ("sqlite://", "sqlite:///:memory:"):
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            if database_url.startswith("sqlite:///"):
                Path(database_url.replace("sqlite:///", "")).parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(database_url)

        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        logger.info(f"Initialized RSS store: {database_url}")

    # ==============================================
    # Feed state
    # ==============================================

    def get_feed_state(self, feed_url: str) -> Optional[RssFeedState]:
        session = self.Session()
        try:
            row = session.get(RssFeedStateRow, feed_url)
            if row is None:
                return None
            return RssFeedState(
                feed_url=row.feed_url,
                etag=row.etag,
                last_modified=row.last_modified,
                last_fetched_at=row.last_fetched_at,
            )
        finally:
            session.close()

    def save_feed_state(self, state: RssFeedState) -> None:
        session = self.Session()
        try:
            row = session.get(RssFeedStateRow, state.feed_url)
            if row is None:
                row = RssFeedStateRow(feed_url=state.feed_url)
                session.add(row)
            row.etag = state.etag
            row.last_modified = state.last_modified
            row.last_fetched_at = state.last_fetched_at
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def touch_feed(self, feed_url: str, fetched_at: Optional[int] = None) -> None:
        """Record a fetch without changing validators (HTTP 304)."""
        state = self.get_feed_state(feed_url) or RssFeedState(feed_url=feed_url)
        state.last_fetched_at = fetched_at if fetched_at is not None else self.clock()
        self.save_feed_state(state)

    # ==============================================
    # Items
    # ==============================================

    def upsert_items(self, items: list[RssItem]) -> int:
        """
        Insert or update items by guid hash.

        Returns:
            Number of new items
        """
        if not items:
            return 0
        session = self.Session()
        inserted = 0
        try:
            for item in items:
                row = session.get(RssItemRow, item.guid_hash)
                if row is None:
                    session.add(RssItemRow(
                        guid_hash=item.guid_hash,
                        feed_url=item.feed_url,
                        title=item.title,
                        link=item.link,
                        published_at=item.published_at,
                        snippet=item.snippet,
                        fetched_at=item.fetched_at,
                    ))
                    inserted += 1
                else:
                    row.title = item.title
                    row.link = item.link
                    row.snippet = item.snippet
                    row.fetched_at = item.fetched_at
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to upsert RSS items: {e}")
            raise
        finally:
            session.close()
        return inserted

    def prune(self) -> int:
        """Delete items published before the retention window."""
        cutoff = self.clock() - self.retention_ms
        session = self.Session()
        try:
            deleted = session.query(RssItemRow).filter(RssItemRow.published_at < cutoff).delete()
            session.commit()
            if deleted:
                logger.debug(f"Pruned {deleted} RSS items")
            return deleted
        finally:
            session.close()

    def items_since(self, feed_urls: list[str], since_ms: int) -> list[RssItem]:
        """Items from the given feeds published at or after since_ms, newest first."""
        self.prune()
        if not feed_urls:
            return []
        session = self.Session()
        try:
            rows = (
                session.query(RssItemRow)
                .filter(RssItemRow.feed_url.in_(feed_urls))
                .filter(RssItemRow.published_at >= since_ms)
                .order_by(RssItemRow.published_at.desc())
                .all()
            )
            return [r.to_item() for r in rows]
        finally:
            session.close()

    def count(self) -> int:
        session = self.Session()
        try:
            return session.query(RssItemRow).count()
        finally:
            session.close()

    def clear(self) -> tuple[int, int]:
        """Delete every item and feed validator. Returns (items, feeds) deleted."""
        session = self.Session()
        try:
            items = session.query(RssItemRow).delete()
            feeds = session.query(RssFeedStateRow).delete()
            session.commit()
            logger.info(f"Cleared {items} RSS items and {feeds} feed states")
            return items, feeds
        finally:
            session.close()
