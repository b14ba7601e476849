"""
LLM stage output models.

Each plan is parsed from the JSON an LLM returns. Parsing is lenient about
types (LLMs drift) but strict about shape: anything that is not an object
where an object is expected yields None / empty.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Optional


def extract_first_json_object(text: Optional[str]) -> Optional[dict[str, Any]]:
    """
    Pull the outermost JSON object out of free text.

    Takes everything from the first '{' to the last '}', which tolerates
    markdown fences and chatty preambles around the payload.
    """
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        data = json.loads(text[start:end + 1])
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return []


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _normalize_symbol(value: Any) -> str:
    return str(value or "").strip().upper()


def _objects(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


# ===========================================
# Shortlist
# ===========================================

@dataclass
class ShortlistItem:
    symbol: str
    priority: float = 0.0
    reasons: list[str] = field(default_factory=list)
    requested_enrichment: list[str] = field(default_factory=list)
    avoid: bool = False
    risk_flags: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShortlistItem":
        return cls(
            symbol=_normalize_symbol(data.get("symbol")),
            priority=_as_float(data.get("priority")),
            reasons=_str_list(data.get("reasons")),
            requested_enrichment=[t.upper() for t in _str_list(data.get("requested_enrichment"))],
            avoid=_as_bool(data.get("avoid", False)),
            risk_flags=_str_list(data.get("risk_flags")),
        )


@dataclass
class ShortlistPlan:
    shortlist: list[ShortlistItem] = field(default_factory=list)
    global_notes: list[str] = field(default_factory=list)
    limits_applied: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.shortlist

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any], max_items: Optional[int] = None) -> "ShortlistPlan":
        items = [ShortlistItem.from_dict(d) for d in _objects(data.get("shortlist"))]
        items = [i for i in items if i.symbol]
        if max_items is not None:
            items = items[:max_items]
        limits = data.get("limits_applied")
        return cls(
            shortlist=items,
            global_notes=_str_list(data.get("global_notes")),
            limits_applied=limits if isinstance(limits, dict) else {},
        )


# ===========================================
# Decision update
# ===========================================

@dataclass
class KeepItem:
    symbol: str
    confidence: float = 0.0
    setup_bias: Optional[str] = None
    must_review: bool = False
    rss_needed: bool = False
    expanded_rss_needed: bool = False
    expanded_rss_reason: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "KeepItem":
        bias = data.get("setup_bias")
        reason = data.get("expanded_rss_reason")
        return cls(
            symbol=_normalize_symbol(data.get("symbol")),
            confidence=_as_float(data.get("confidence")),
            setup_bias=str(bias) if bias else None,
            must_review=_as_bool(data.get("must_review", False)),
            rss_needed=_as_bool(data.get("rss_needed", False)),
            expanded_rss_needed=_as_bool(data.get("expanded_rss_needed", False)),
            expanded_rss_reason=str(reason) if reason else None,
        )


@dataclass
class DropItem:
    symbol: str
    reasons: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DropItem":
        return cls(
            symbol=_normalize_symbol(data.get("symbol")),
            reasons=_str_list(data.get("reasons")),
        )


@dataclass
class DecisionUpdate:
    keep: list[KeepItem] = field(default_factory=list)
    drop: list[DropItem] = field(default_factory=list)
    limits_applied: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.keep and not self.drop

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any], max_keep: Optional[int] = None) -> "DecisionUpdate":
        keep = [k for k in (KeepItem.from_dict(d) for d in _objects(data.get("keep"))) if k.symbol]
        if max_keep is not None:
            keep = keep[:max_keep]
        drop = [d for d in (DropItem.from_dict(x) for x in _objects(data.get("drop"))) if d.symbol]
        limits = data.get("limits_applied")
        return cls(
            keep=keep,
            drop=drop,
            limits_applied=limits if isinstance(limits, dict) else {},
        )


# ===========================================
# Fundamentals + news synthesis
# ===========================================

@dataclass
class ReviewItem:
    symbol: str
    what_to_review: list[str] = field(default_factory=list)
    risk_summary: list[str] = field(default_factory=list)
    one_paragraph_brief: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewItem":
        return cls(
            symbol=_normalize_symbol(data.get("symbol")),
            what_to_review=_str_list(data.get("what_to_review")),
            risk_summary=_str_list(data.get("risk_summary")),
            one_paragraph_brief=str(data.get("one_paragraph_brief") or ""),
        )


@dataclass
class PortfolioGuidance:
    position_count: int = 0
    risk_posture: str = "moderate"
    notes: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "PortfolioGuidance":
        if not isinstance(data, dict):
            return cls()
        return cls(
            position_count=_as_int(data.get("position_count")),
            risk_posture=str(data.get("risk_posture") or "moderate"),
            notes=_str_list(data.get("notes")),
        )


@dataclass
class FundamentalsNewsSynthesis:
    ranked_review_list: list[ReviewItem] = field(default_factory=list)
    portfolio_guidance: PortfolioGuidance = field(default_factory=PortfolioGuidance)

    @property
    def is_empty(self) -> bool:
        return not self.ranked_review_list

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FundamentalsNewsSynthesis":
        items = [ReviewItem.from_dict(d) for d in _objects(data.get("ranked_review_list"))]
        return cls(
            ranked_review_list=[i for i in items if i.symbol],
            portfolio_guidance=PortfolioGuidance.from_dict(data.get("portfolio_guidance")),
        )


# ===========================================
# Deep dive
# ===========================================

NO_ACTIONABLE_NEWS = (
    "No actionable recent news found for this ticker within the last 72 hours "
    "that would significantly alter the current thesis."
)


@dataclass
class DeepDiveDriver:
    type: str = ""
    direction: str = ""
    detail: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeepDiveDriver":
        return cls(
            type=str(data.get("type") or ""),
            direction=str(data.get("direction") or ""),
            detail=str(data.get("detail") or ""),
        )


@dataclass
class DeepDiveSource:
    title: str = ""
    url: str = ""
    publisher: str = ""
    published_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeepDiveSource":
        return cls(
            title=str(data.get("title") or ""),
            url=str(data.get("url") or ""),
            publisher=str(data.get("publisher") or ""),
            published_at=str(data.get("published_at") or ""),
        )


@dataclass
class DeepDive:
    """Per-symbol research note from the tool-enabled deep dive stage."""
    summary: str = ""
    drivers: list[DeepDiveDriver] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    what_changes_my_mind: list[str] = field(default_factory=list)
    sources: list[DeepDiveSource] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.summary.strip() and not self.drivers

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeepDive":
        return cls(
            summary=str(data.get("summary") or ""),
            drivers=[DeepDiveDriver.from_dict(d) for d in _objects(data.get("drivers"))],
            risks=_str_list(data.get("risks")),
            what_changes_my_mind=_str_list(data.get("what_changes_my_mind")),
            sources=[DeepDiveSource.from_dict(d) for d in _objects(data.get("sources"))],
        )

    @classmethod
    def no_actionable_news(cls) -> "DeepDive":
        return cls(summary=NO_ACTIONABLE_NEWS)


# ===========================================
# RSS feed verification
# ===========================================

@dataclass
class RssVerification:
    is_valid: bool
    title: str = "Unknown"
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RssVerification":
        return cls(
            is_valid=_as_bool(data.get("is_valid", data.get("isValid", False))),
            title=str(data.get("title") or "Unknown"),
            description=str(data.get("description") or "No description"),
        )
