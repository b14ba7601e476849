"""
RSS 2.0 / Atom parsing.

Both formats normalize into RssItem. Snippets are stripped of HTML and
dates accept RFC-822 (RSS) or ISO-8601 (Atom), falling back to now.
"""

import hashlib
import html
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Union

from signalsynth.core.logging import get_logger
from signalsynth.core.timeutil import now_ms, to_epoch_ms
from signalsynth.domain.news import RssItem

logger = get_logger("rss.parser")

ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}
MAX_SNIPPET_CHARS = 500

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def strip_html(text: Optional[str]) -> str:
    if not text:
        return ""
    text = _TAG_RE.sub(" ", html.unescape(text))
    return _WS_RE.sub(" ", text).strip()


def parse_date(value: Optional[str], fallback_ms: Optional[int] = None) -> int:
    """Epoch millis from an RFC-822 or ISO-8601 string."""
    fallback = fallback_ms if fallback_ms is not None else now_ms()
    if not value:
        return fallback
    value = value.strip()

    try:
        dt = parsedate_to_datetime(value)
        if dt is not None:
            return to_epoch_ms(dt)
    except (TypeError, ValueError, IndexError):
        pass

    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return to_epoch_ms(dt)
    except ValueError:
        logger.debug(f"Unparseable date: {value}")
        return fallback


def guid_hash(guid: Optional[str], link: Optional[str]) -> str:
    key = (guid or "").strip() or (link or "").strip()
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def _text(elem: Optional[ET.Element]) -> str:
    if elem is None or elem.text is None:
        return ""
    return elem.text.strip()


def _parse_rss_item(elem: ET.Element, feed_url: str, fetched_at: int) -> Optional[RssItem]:
    title = strip_html(_text(elem.find("title")))
    link = _text(elem.find("link"))
    guid = _text(elem.find("guid"))
    if not title and not link:
        return None
    description = _text(elem.find("description"))
    return RssItem(
        guid_hash=guid_hash(guid, link),
        feed_url=feed_url,
        title=title,
        link=link,
        published_at=parse_date(_text(elem.find("pubDate")), fetched_at),
        snippet=strip_html(description)[:MAX_SNIPPET_CHARS],
        fetched_at=fetched_at,
    )


def _parse_atom_entry(elem: ET.Element, feed_url: str, fetched_at: int) -> Optional[RssItem]:
    title = strip_html(_text(elem.find("atom:title", ATOM_NS)))

    link = ""
    for link_elem in elem.findall("atom:link", ATOM_NS):
        rel = link_elem.get("rel", "alternate")
        if rel == "alternate":
            link = link_elem.get("href", "")
            break
    if not title and not link:
        return None

    guid = _text(elem.find("atom:id", ATOM_NS))
    summary = _text(elem.find("atom:summary", ATOM_NS)) or _text(elem.find("atom:content", ATOM_NS))
    published = _text(elem.find("atom:published", ATOM_NS)) or _text(elem.find("atom:updated", ATOM_NS))
    return RssItem(
        guid_hash=guid_hash(guid, link),
        feed_url=feed_url,
        title=title,
        link=link,
        published_at=parse_date(published, fetched_at),
        snippet=strip_html(summary)[:MAX_SNIPPET_CHARS],
        fetched_at=fetched_at,
    )


def parse_feed(content: Union[bytes, str], feed_url: str, fetched_at: Optional[int] = None) -> list[RssItem]:
    """
    Parse an RSS 2.0 or Atom document.

    Returns an empty list for malformed XML.
    """
    fetched_at = fetched_at if fetched_at is not None else now_ms()
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        logger.warning(f"Malformed feed {feed_url}: {e}")
        return []

    items: list[RssItem] = []
    if root.tag == f"{{{ATOM_NS['atom']}}}feed":
        for entry in root.findall("atom:entry", ATOM_NS):
            item = _parse_atom_entry(entry, feed_url, fetched_at)
            if item is not None:
                items.append(item)
    else:
        for elem in root.iter("item"):
            item = _parse_rss_item(elem, feed_url, fetched_at)
            if item is not None:
                items.append(item)

    logger.debug(f"Parsed {len(items)} items from {feed_url}")
    return items
