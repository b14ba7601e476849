"""
Watchlist and analysis history persistence.

SQLite via SQLAlchemy. History rows keep the full AnalysisResult as JSON
plus a few summary columns for listing.
"""

import json
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from signalsynth.core.config import Settings, get_settings
from signalsynth.core.logging import get_logger
from signalsynth.core.timeutil import now_utc
from signalsynth.domain.models import AnalysisResult

logger = get_logger("persistence")

Base = declarative_base()


class WatchlistEntry(Base):
    __tablename__ = "watchlist"

    symbol = Column(String(20), primary_key=True)
    added_at = Column(DateTime, nullable=False)
    note = Column(Text, nullable=True)


class AlertCooldown(Base):
    """Last time an alert of a given type fired for a symbol."""

    __tablename__ = "alert_cooldowns"

    symbol = Column(String(20), primary_key=True)
    alert_type = Column(String(32), primary_key=True)
    sent_at = Column(Float, nullable=False)


class AnalysisRun(Base):
    """Database model for saved analysis results."""

    __tablename__ = "analysis_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(64), unique=True, nullable=False, index=True)
    timestamp = Column(DateTime, nullable=False, index=True)
    intent = Column(String(20), nullable=False)
    setup_count = Column(Integer, default=0)
    error_count = Column(Integer, default=0)
    symbols = Column(Text, nullable=False, default="")
    result_json = Column(Text, nullable=False)


class PersistenceService(ABC):
    """Watchlist and history store."""

    @abstractmethod
    def add_to_watchlist(self, symbol: str, note: Optional[str] = None) -> bool:
        """Add a symbol. Returns False if already present."""
        pass

    @abstractmethod
    def remove_from_watchlist(self, symbol: str) -> bool:
        """Remove a symbol. Returns False if absent."""
        pass

    @abstractmethod
    def list_watchlist(self) -> list[str]:
        pass

    @abstractmethod
    def save_result(self, result: AnalysisResult, run_id: Optional[str] = None) -> str:
        pass

    @abstractmethod
    def list_history(self, limit: int = 10) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    def load_result(self, run_id: str) -> Optional[dict[str, Any]]:
        pass

    @abstractmethod
    def clear_history(self) -> int:
        pass

    @abstractmethod
    def last_alert_at(self, symbol: str, alert_type: str) -> Optional[float]:
        """Epoch seconds of the last alert sent for (symbol, type), if any."""
        pass

    @abstractmethod
    def record_alert(self, symbol: str, alert_type: str, sent_at: float) -> None:
        pass


class SQLitePersistence(PersistenceService):
    """
    SQLite-based persistence.

    Use database_url="sqlite://" for an in-memory store.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        if database_url is None:
            settings = settings or get_settings()
            database_url = settings.database_url
        self.database_url = database_url

        if self.database_url in ("sqlite://", "sqlite:///:memory:"):
            self.engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            # Ensure data directory exists
            if self.database_url.startswith("sqlite:///"):
                db_path = Path(self.database_url.replace("sqlite:///", ""))
                db_path.parent.mkdir(parents=True, exist_ok=True)
            self.engine = create_engine(self.database_url)

        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)

        logger.info(f"Initialized SQLite persistence: {self.database_url}")

    # ==============================================
    # Watchlist
    # ==============================================

    def add_to_watchlist(self, symbol: str, note: Optional[str] = None) -> bool:
        symbol = symbol.strip().upper()
        if not symbol:
            return False
        session = self.Session()
        try:
            if session.get(WatchlistEntry, symbol) is not None:
                return False
            session.add(WatchlistEntry(symbol=symbol, added_at=now_utc(), note=note))
            session.commit()
            logger.info(f"Added {symbol} to watchlist")
            return True
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to add {symbol} to watchlist: {e}")
            raise
        finally:
            session.close()

    def remove_from_watchlist(self, symbol: str) -> bool:
        symbol = symbol.strip().upper()
        session = self.Session()
        try:
            entry = session.get(WatchlistEntry, symbol)
            if entry is None:
                return False
            session.delete(entry)
            session.commit()
            logger.info(f"Removed {symbol} from watchlist")
            return True
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to remove {symbol} from watchlist: {e}")
            raise
        finally:
            session.close()

    def list_watchlist(self) -> list[str]:
        session = self.Session()
        try:
            rows = session.query(WatchlistEntry).order_by(WatchlistEntry.added_at, WatchlistEntry.symbol).all()
            return [r.symbol for r in rows]
        finally:
            session.close()

    # ==============================================
    # History
    # ==============================================

    def save_result(self, result: AnalysisResult, run_id: Optional[str] = None) -> str:
        """
        Save an analysis result.

        Returns:
            run_id of the saved result
        """
        run_id = run_id or uuid.uuid4().hex
        data = result.to_dict()

        session = self.Session()
        try:
            existing = session.query(AnalysisRun).filter_by(run_id=run_id).first()
            row = existing or AnalysisRun(run_id=run_id)
            row.timestamp = result.generated_at
            row.intent = result.intent.value
            row.setup_count = result.setup_count
            row.error_count = len(result.errors)
            row.symbols = ",".join(s.symbol for s in result.setups)
            row.result_json = json.dumps(data, default=str)
            if existing is None:
                session.add(row)
            session.commit()
            logger.info(f"Saved analysis result: {run_id}")
            return run_id
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to save analysis result: {e}")
            raise
        finally:
            session.close()

    def list_history(self, limit: int = 10) -> list[dict[str, Any]]:
        """List recent results (metadata only), newest first."""
        session = self.Session()
        try:
            rows = (
                session.query(AnalysisRun)
                .order_by(AnalysisRun.timestamp.desc(), AnalysisRun.id.desc())
                .limit(limit)
                .all()
            )
            return [
                {
                    "run_id": r.run_id,
                    "timestamp": r.timestamp.isoformat(),
                    "intent": r.intent,
                    "setup_count": r.setup_count,
                    "error_count": r.error_count,
                    "symbols": [s for s in r.symbols.split(",") if s],
                }
                for r in rows
            ]
        finally:
            session.close()

    def load_result(self, run_id: str) -> Optional[dict[str, Any]]:
        session = self.Session()
        try:
            row = session.query(AnalysisRun).filter_by(run_id=run_id).first()
            return json.loads(row.result_json) if row else None
        finally:
            session.close()

    def clear_history(self) -> int:
        session = self.Session()
        try:
            deleted = session.query(AnalysisRun).delete()
            session.commit()
            logger.info(f"Cleared {deleted} history entries")
            return deleted
        finally:
            session.close()

    # ==============================================
    # Alert cooldowns
    # ==============================================

    def last_alert_at(self, symbol: str, alert_type: str) -> Optional[float]:
        session = self.Session()
        try:
            row = session.get(AlertCooldown, (symbol, alert_type))
            return row.sent_at if row else None
        finally:
            session.close()

    def record_alert(self, symbol: str, alert_type: str, sent_at: float) -> None:
        session = self.Session()
        try:
            session.merge(AlertCooldown(symbol=symbol, alert_type=alert_type, sent_at=sent_at))
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to record {alert_type} alert for {symbol}: {e}")
            raise
        finally:
            session.close()


def create_persistence_service(
    settings: Optional[Settings] = None,
) -> PersistenceService:
    """Create persistence service from settings."""
    settings = settings or get_settings()
    return SQLitePersistence(settings=settings)
