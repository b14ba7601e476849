"""
Provider health registry.

Tracks providers placed in cool-down after auth/quota failures.
Entries are lazily expired on read (no timer thread) and can be persisted
to a SQLite table so cool-downs survive restarts.
"""

import threading
import time
from pathlib import Path
from typing import Callable, Optional

from sqlalchemy import Column, Float, String, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from signalsynth.core.logging import LoggerMixin

# Cool-down applied after 401/402/403 responses
ENFORCED_COOLDOWN_SECONDS = 10 * 60

Base = declarative_base()


class BlacklistRow(Base):
    __tablename__ = "provider_blacklist"

    provider = Column(String(64), primary_key=True)
    until = Column(Float, nullable=False)


class BlacklistStore(LoggerMixin):
    """
    SQLAlchemy persistence for blacklist entries (provider -> until epoch seconds).

    Each change is its own transaction on a single row.
    Use database_url="sqlite://" for an in-memory store.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url

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

    def load(self, now: float) -> dict[str, float]:
        """Active entries; expired rows are deleted."""
        session = self.Session()
        try:
            session.query(BlacklistRow).filter(BlacklistRow.until < now).delete()
            session.commit()
            return {row.provider: row.until for row in session.query(BlacklistRow).all()}
        finally:
            session.close()

    def put(self, provider: str, until: float) -> None:
        session = self.Session()
        try:
            session.merge(BlacklistRow(provider=provider, until=until))
            session.commit()
        except Exception as e:
            session.rollback()
            self.logger.error(f"Failed to persist blacklist entry for {provider}: {e}")
            raise
        finally:
            session.close()

    def clear(self) -> int:
        session = self.Session()
        try:
            deleted = session.query(BlacklistRow).delete()
            session.commit()
            return deleted
        finally:
            session.close()


class ProviderHealthRegistry(LoggerMixin):
    """
    Injectable registry of providers in cool-down.

    One instance is shared by reference between the gateway and anything
    reporting on provider health. Tests construct their own with a fake clock.
    """

    def __init__(
        self,
        *,
        store: Optional[BlacklistStore] = None,
        clock: Callable[[], float] = time.time,
        on_blacklisted: Optional[Callable[[str, float], None]] = None,
    ):
        self._store = store
        self._clock = clock
        self._on_blacklisted = on_blacklisted
        self._lock = threading.Lock()
        self._entries: dict[str, float] = store.load(clock()) if store is not None else {}

    def blacklist(self, provider: str, duration: float = ENFORCED_COOLDOWN_SECONDS) -> float:
        """
        Put a provider in cool-down.

        Blocks on the store write; async callers should run it in a thread.

        Args:
            provider: Provider name
            duration: Cool-down length in seconds

        Returns:
            Epoch seconds until which the provider is blacklisted
        """
        until = self._clock() + duration
        with self._lock:
            self._entries[provider] = until
        if self._store is not None:
            self._store.put(provider, until)

        self.logger.warning(f"Provider {provider} blacklisted for {duration:.0f}s")
        if self._on_blacklisted is not None:
            self._on_blacklisted(provider, until)
        return until

    def is_blacklisted(self, provider: str) -> bool:
        """
        Check membership, dropping the entry first if it has expired.

        Memory only; expired rows are removed from the store on the next load.
        """
        now = self._clock()
        with self._lock:
            until = self._entries.get(provider)
            if until is None:
                return False
            if now > until:
                del self._entries[provider]
                expired = True
            else:
                expired = False
        if expired:
            self.logger.info(f"Provider {provider} cool-down expired")
            return False
        return True

    def blacklisted_providers(self) -> dict[str, float]:
        """Active entries (provider -> until), with expired ones purged."""
        now = self._clock()
        with self._lock:
            self._entries = {k: v for k, v in self._entries.items() if v >= now}
            return dict(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        if self._store is not None:
            self._store.clear()
