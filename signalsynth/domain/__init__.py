"""
Domain module - Business models

Contains pure business models without external dependencies.
All models are JSON-serializable via to_dict() for history persistence.
"""

from signalsynth.domain.models import (
    AnalysisResult,
    AnalysisStage,
    AssetClass,
    CompanyProfile,
    DailyBar,
    DiscoveryMode,
    EodStats,
    FinancialMetrics,
    IntradayBar,
    IntradayStats,
    Quote,
    RiskTolerance,
    ScreenerThresholds,
    SearchResult,
    SentimentData,
    SetupType,
    TickerSource,
    TradeSetup,
    TradingIntent,
)
from signalsynth.domain.plans import (
    DecisionUpdate,
    FundamentalsNewsSynthesis,
    ShortlistPlan,
    extract_first_json_object,
)
from signalsynth.domain.news import RssDigest, RssHeadline, RssItem

__all__ = [
    "AnalysisResult",
    "AnalysisStage",
    "AssetClass",
    "CompanyProfile",
    "DailyBar",
    "DiscoveryMode",
    "EodStats",
    "FinancialMetrics",
    "IntradayBar",
    "IntradayStats",
    "Quote",
    "RiskTolerance",
    "ScreenerThresholds",
    "SearchResult",
    "SentimentData",
    "SetupType",
    "TickerSource",
    "TradeSetup",
    "TradingIntent",
    "DecisionUpdate",
    "FundamentalsNewsSynthesis",
    "ShortlistPlan",
    "extract_first_json_object",
    "RssDigest",
    "RssHeadline",
    "RssItem",
]
