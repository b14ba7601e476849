"""
Prompt templates for the LLM stages.

Templates use str.format; literal JSON braces are doubled.
"""

SYSTEM_ANALYST = "You are a senior trading analyst. Respond with JSON only."

SHORTLIST_TEMPLATE = """Act as a senior trading analyst screening a tradeable universe before any
expensive data is fetched. Pick at most {max_shortlist} symbols worth deeper analysis
for a {intent} trader with {risk} risk tolerance.

For each pick, list which enrichment you need. Allowed tags:
INTRADAY (VWAP/RSI/ATR from 5-minute bars), EOD (SMA-50/SMA-200),
FUNDAMENTALS, PROFILE, METRICS, SENTIMENT, NEWS.
Request only what matters; every tag costs an API call.
Set "avoid": true for symbols you considered but recommend skipping.

Output schema:
{{
  "shortlist": [
    {{"symbol": "AAPL", "priority": 1, "reasons": ["..."],
      "requested_enrichment": ["INTRADAY"], "avoid": false, "risk_flags": ["..."]}}
  ],
  "global_notes": ["..."],
  "limits_applied": {{"max_shortlist": {max_shortlist}}}
}}

Universe ({count} symbols):
{quote_digest}
"""

DECISION_TEMPLATE = """Act as a senior trading analyst reviewing ranked setups for a {intent} trader
with {risk} risk tolerance. Keep at most {max_keep} setups. Drop anything whose
indicators or context contradict the setup.

For every kept setup give a bias (bullish/bearish/neutral), your own confidence (0-1),
whether it must be reviewed manually, and whether headlines should be checked
(rss_needed). Ask for the expanded news sources only when the core feeds are
unlikely to cover the name, and say why.

Output schema:
{{
  "keep": [
    {{"symbol": "AAPL", "confidence": 0.7, "setup_bias": "bullish", "must_review": false,
      "rss_needed": true, "expanded_rss_needed": false, "expanded_rss_reason": null}}
  ],
  "drop": [{{"symbol": "XYZ", "reasons": ["..."]}}],
  "limits_applied": {{"max_keep": {max_keep}}}
}}

Setups:
{setups}
"""

SYNTHESIS_TEMPLATE = """Act as a senior trading analyst preparing a review list. For each setup below,
combine its fundamentals with the recent headlines. Rank them by what most
deserves the trader's attention, then give portfolio-level guidance for a
{intent} trader with {risk} risk tolerance.

Output schema:
{{
  "ranked_review_list": [
    {{"symbol": "AAPL", "what_to_review": ["..."], "risk_summary": ["..."],
      "one_paragraph_brief": "..."}}
  ],
  "portfolio_guidance": {{"position_count": 3, "risk_posture": "moderate", "notes": ["..."]}}
}}

Setups:
{setups}

Recent headlines:
{headlines}
"""



DEEP_DIVE_TEMPLATE = """Act as a senior trading analyst doing a focused news check on {symbol}
for a {intent} trader. Search the web for developments from the last 72 hours that
could change the thesis: earnings, guidance, analyst actions, regulation, macro.
Use the snapshot and headlines below as a starting point. Cite every source you use.

Output schema:
{{
  "summary": "...",
  "drivers": [{{"type": "earnings", "direction": "bullish", "detail": "..."}}],
  "risks": ["..."],
  "what_changes_my_mind": ["..."],
  "sources": [{{"title": "...", "publisher": "...", "published_at": "...", "url": "..."}}]
}}

Snapshot:
{snapshot}

Recent headlines:
{headlines}
"""

RSS_VERIFY_SYSTEM = "You are a technical validator. Respond with JSON only."

RSS_VERIFY_TEMPLATE = """Is the following content a valid RSS or Atom feed? If it is, give the feed's
title and a one-sentence description of what it covers.

Output schema:
{{"isValid": true, "title": "...", "description": "..."}}

URL: {url}
Content (truncated):
{snippet}
"""


def format_quote_line(symbol: str, price: float, change_percent, volume: int) -> str:
    change = f"{change_percent:.2f}" if change_percent is not None else "n/a"
    return f"{symbol}: Price={price:.2f}, Change={change}%, Vol={volume}"
