"""
Core data models for SignalSynth.

All models use dataclass and provide to_dict() for JSON serialization.
Market facts are frozen snapshots; TradeSetup is mutable because the
decision stage annotates it in place.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


class TradingIntent(str, Enum):
    """Time-horizon bucket for an analysis run."""
    DAY_TRADE = "day_trade"
    SWING = "swing"
    LONG_TERM = "long_term"


class RiskTolerance(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class AssetClass(str, Enum):
    STOCKS = "stocks"
    FOREX = "forex"
    METALS = "metals"
    ALL = "all"

    @property
    def includes_stocks(self) -> bool:
        return self in (AssetClass.STOCKS, AssetClass.ALL)

    @property
    def includes_forex(self) -> bool:
        return self in (AssetClass.FOREX, AssetClass.ALL)

    @property
    def includes_metals(self) -> bool:
        return self in (AssetClass.METALS, AssetClass.ALL)


class DiscoveryMode(str, Enum):
    STATIC = "static"
    LIVE = "live"


class TickerSource(str, Enum):
    """Provenance: why a symbol entered the candidate set."""
    PREDEFINED = "predefined"
    SCREENER = "screener"
    CUSTOM = "custom"
    LIVE_GAINER = "live_gainer"
    LIVE_LOSER = "live_loser"
    LIVE_ACTIVE = "live_active"


class AnalysisStage(str, Enum):
    """Independently model-routed LLM stages."""
    SHORTLIST = "shortlist"
    DECISION_UPDATE = "decision_update"
    FUNDAMENTALS_NEWS_SYNTHESIS = "fundamentals_news_synthesis"
    DEEP_DIVE = "deep_dive"
    RSS_VERIFY = "rss_verify"


class SetupType(str, Enum):
    HIGH_PROBABILITY = "High Probability"
    SPECULATIVE = "Speculative"


# ===========================================
# Market facts
# ===========================================

@dataclass(frozen=True)
class Quote:
    symbol: str
    price: float
    volume: int
    timestamp: datetime
    change_percent: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class IntradayBar:
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: int


@dataclass(frozen=True)
class DailyBar:
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int


@dataclass(frozen=True)
class CompanyProfile:
    name: str
    sector: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def is_complete(self) -> bool:
        return bool(self.sector and self.industry and self.description)

    def merge(self, other: "CompanyProfile") -> "CompanyProfile":
        """Fill our missing fields from `other`."""
        return CompanyProfile(
            name=self.name or other.name,
            sector=self.sector or other.sector,
            industry=self.industry or other.industry,
            description=self.description or other.description,
        )


@dataclass(frozen=True)
class FinancialMetrics:
    market_cap: Optional[float] = None
    pe_ratio: Optional[float] = None
    eps: Optional[float] = None
    earnings_date: Optional[date] = None
    dividend_yield: Optional[float] = None
    pb_ratio: Optional[float] = None
    debt_to_equity: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.earnings_date is not None:
            data["earnings_date"] = self.earnings_date.isoformat()
        return data

    def is_complete(self) -> bool:
        return all(v is not None for v in (self.market_cap, self.pe_ratio, self.eps))

    def merge(self, other: "FinancialMetrics") -> "FinancialMetrics":
        """Fill our missing fields from `other`."""
        def pick(a, b):
            return a if a is not None else b

        return FinancialMetrics(
            market_cap=pick(self.market_cap, other.market_cap),
            pe_ratio=pick(self.pe_ratio, other.pe_ratio),
            eps=pick(self.eps, other.eps),
            earnings_date=pick(self.earnings_date, other.earnings_date),
            dividend_yield=pick(self.dividend_yield, other.dividend_yield),
            pb_ratio=pick(self.pb_ratio, other.pb_ratio),
            debt_to_equity=pick(self.debt_to_equity, other.debt_to_equity),
        )


@dataclass(frozen=True)
class SentimentData:
    score: float            # -1 (bearish) to 1 (bullish)
    label: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def sentiment_label(score: float) -> str:
    if score > 0.2:
        return "Bullish"
    if score < -0.2:
        return "Bearish"
    return "Neutral"


@dataclass(frozen=True)
class SearchResult:
    symbol: str
    name: str
    exchange: Optional[str] = None


@dataclass(frozen=True)
class IntradayStats:
    vwap: Optional[float] = None
    rsi14: Optional[float] = None
    atr14: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EodStats:
    sma50: Optional[float] = None
    sma200: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScreenerThresholds:
    """Volume/price floors per risk tier for LIVE discovery."""
    conservative_min_price: float = 10.0
    conservative_min_volume: int = 2_000_000
    moderate_min_price: float = 5.0
    moderate_min_volume: int = 1_000_000
    aggressive_min_price: float = 1.0
    aggressive_min_volume: int = 500_000

    def for_risk(self, risk: RiskTolerance) -> tuple[float, int]:
        """(min_price, min_volume) for a risk tier."""
        if risk == RiskTolerance.CONSERVATIVE:
            return self.conservative_min_price, self.conservative_min_volume
        if risk == RiskTolerance.AGGRESSIVE:
            return self.aggressive_min_price, self.aggressive_min_volume
        return self.moderate_min_price, self.moderate_min_volume

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "ScreenerThresholds":
        if not data:
            return cls()
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


# ===========================================
# Derived entities
# ===========================================

@dataclass
class TradeSetup:
    """
    A scored trade idea for one symbol.

    Created once per run by the ranker and annotated by the decision stage.
    """
    symbol: str
    setup_type: str
    trigger_price: float
    stop_loss: float
    target_price: float
    confidence: float
    reasons: list[str]
    valid_until: datetime
    intent: TradingIntent

    source: TickerSource = TickerSource.PREDEFINED
    setup_bias: Optional[str] = None
    must_review: bool = False
    rss_needed: bool = False
    expanded_rss_needed: bool = False
    expanded_rss_reason: Optional[str] = None
    decision_confidence: Optional[float] = None

    # Context carried into the decision prompt
    intraday_stats: Optional[IntradayStats] = None
    eod_stats: Optional[EodStats] = None
    profile: Optional[CompanyProfile] = None
    metrics: Optional[FinancialMetrics] = None
    sentiment: Optional[SentimentData] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "setup_type": self.setup_type,
            "trigger_price": self.trigger_price,
            "stop_loss": self.stop_loss,
            "target_price": self.target_price,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
            "valid_until": self.valid_until.isoformat(),
            "intent": self.intent.value,
            "source": self.source.value,
            "setup_bias": self.setup_bias,
            "must_review": self.must_review,
            "rss_needed": self.rss_needed,
            "expanded_rss_needed": self.expanded_rss_needed,
            "expanded_rss_reason": self.expanded_rss_reason,
            "decision_confidence": self.decision_confidence,
            "intraday_stats": self.intraday_stats.to_dict() if self.intraday_stats else None,
            "eod_stats": self.eod_stats.to_dict() if self.eod_stats else None,
            "profile": self.profile.to_dict() if self.profile else None,
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
        }


@dataclass
class AnalysisResult:
    """Final output of one pipeline run."""
    intent: TradingIntent
    total_candidates: int
    tradeable_count: int
    setup_count: int
    setups: list[TradeSetup]
    generated_at: datetime
    global_notes: list[str] = field(default_factory=list)
    rss_digest: Optional[Any] = None                    # RssDigest
    decision_update: Optional[Any] = None               # DecisionUpdate
    fundamentals_news_synthesis: Optional[Any] = None   # FundamentalsNewsSynthesis
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "intent": self.intent.value,
            "total_candidates": self.total_candidates,
            "tradeable_count": self.tradeable_count,
            "setup_count": self.setup_count,
            "setups": [s.to_dict() for s in self.setups],
            "generated_at": self.generated_at.isoformat(),
            "global_notes": list(self.global_notes),
            "rss_digest": self.rss_digest.to_dict() if self.rss_digest else None,
            "decision_update": self.decision_update.to_dict() if self.decision_update else None,
            "fundamentals_news_synthesis": (
                self.fundamentals_news_synthesis.to_dict()
                if self.fundamentals_news_synthesis else None
            ),
            "errors": list(self.errors),
        }
