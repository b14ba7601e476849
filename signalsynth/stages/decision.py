"""
Decision update: the LLM reviews ranked setups and keeps, drops or
annotates them.
"""

import json
from typing import Any

from signalsynth.domain.models import AnalysisStage, RiskTolerance, TradeSetup, TradingIntent
from signalsynth.domain.plans import DecisionUpdate
from signalsynth.llm.prompts import DECISION_TEMPLATE
from signalsynth.stages.base import LlmStage


def setup_prompt_payload(setup: TradeSetup) -> dict[str, Any]:
    """Compact view of a setup for prompts; drops presentation-only fields."""
    data = setup.to_dict()
    for key in ("valid_until", "intent", "setup_bias", "must_review", "rss_needed",
                "expanded_rss_needed", "expanded_rss_reason", "decision_confidence"):
        data.pop(key, None)
    if setup.profile is not None:
        data["profile"] = {k: v for k, v in setup.profile.to_dict().items() if k != "description"}
    return data


def apply_decision(setups: list[TradeSetup], update: DecisionUpdate) -> list[TradeSetup]:
    """
    Filter and annotate setups in place.

    - keep non-empty: retain only kept symbols
    - else drop non-empty: remove dropped symbols
    - else: pass through
    """
    if update.keep:
        by_symbol = {k.symbol: k for k in update.keep}
        retained = []
        for setup in setups:
            item = by_symbol.get(setup.symbol.upper())
            if item is None:
                continue
            setup.setup_bias = item.setup_bias
            setup.must_review = item.must_review
            setup.rss_needed = item.rss_needed or item.expanded_rss_needed
            setup.expanded_rss_needed = item.expanded_rss_needed
            setup.expanded_rss_reason = (item.expanded_rss_reason or "").strip() or None
            if item.confidence > 0:
                setup.decision_confidence = item.confidence
            retained.append(setup)
        return retained

    if update.drop:
        dropped = {d.symbol for d in update.drop}
        return [s for s in setups if s.symbol.upper() not in dropped]

    return list(setups)


class DecisionUpdater(LlmStage[DecisionUpdate]):
    stage = AnalysisStage.DECISION_UPDATE
    schema_id = "decision_update_v1"

    def build_prompt(
        self,
        *,
        setups: list[TradeSetup],
        intent: TradingIntent,
        risk: RiskTolerance,
        max_keep: int,
        **_: Any,
    ) -> str:
        payload = [setup_prompt_payload(s) for s in setups]
        return DECISION_TEMPLATE.format(
            intent=intent.value,
            risk=risk.value,
            max_keep=max_keep,
            setups=json.dumps(payload, indent=1, default=str),
        )

    def parse(self, data: dict[str, Any], *, max_keep: int, **_: Any) -> DecisionUpdate:
        return DecisionUpdate.from_dict(data, max_keep=max_keep)

    def is_empty(self, value: DecisionUpdate) -> bool:
        return value.is_empty
