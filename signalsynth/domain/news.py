"""
RSS news models.

Feeds are normalized into one item shape regardless of RSS 2.0 or Atom.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class RssItem:
    guid_hash: str          # sha256 of guid, falling back to link
    feed_url: str
    title: str
    link: str
    published_at: int       # epoch millis
    snippet: str
    fetched_at: int         # epoch millis


@dataclass
class RssFeedState:
    """Conditional-GET cursor for one feed."""
    feed_url: str
    etag: Optional[str] = None
    last_modified: Optional[str] = None
    last_fetched_at: Optional[int] = None


@dataclass(frozen=True)
class RssHeadline:
    title: str
    link: str
    published_at: int
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RssDigest:
    """symbol -> headlines, newest first."""
    items_by_ticker: dict[str, list[RssHeadline]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(self.items_by_ticker.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            symbol: [h.to_dict() for h in headlines]
            for symbol, headlines in self.items_by_ticker.items()
        }

    def to_prompt_text(self, max_snippet: int = 200) -> str:
        """Compact text block for LLM prompts."""
        if self.is_empty:
            return "No recent headlines."
        lines = []
        for symbol, headlines in self.items_by_ticker.items():
            lines.append(f"{symbol}:")
            for h in headlines:
                snippet = h.snippet[:max_snippet]
                lines.append(f"- {h.title} ({h.link}) {snippet}".rstrip())
        return "\n".join(lines)
