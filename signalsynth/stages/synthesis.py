"""Fundamentals + news synthesis: a ranked review list with portfolio guidance."""

import json
from typing import Any, Optional

from signalsynth.domain.models import AnalysisStage, RiskTolerance, TradeSetup, TradingIntent
from signalsynth.domain.news import RssDigest
from signalsynth.domain.plans import FundamentalsNewsSynthesis
from signalsynth.llm.prompts import SYNTHESIS_TEMPLATE
from signalsynth.stages.base import LlmStage
from signalsynth.stages.decision import setup_prompt_payload


class FundamentalsNewsSynthesizer(LlmStage[FundamentalsNewsSynthesis]):
    stage = AnalysisStage.FUNDAMENTALS_NEWS_SYNTHESIS
    schema_id = "fundamentals_news_synthesis_v1"

    def build_prompt(
        self,
        *,
        setups: list[TradeSetup],
        intent: TradingIntent,
        risk: RiskTolerance,
        digest: Optional[RssDigest] = None,
        **_: Any,
    ) -> str:
        payload = []
        for setup in setups:
            data = setup_prompt_payload(setup)
            data["setup_bias"] = setup.setup_bias
            data["decision_confidence"] = setup.decision_confidence
            payload.append(data)
        headlines = digest.to_prompt_text() if digest is not None else "No recent headlines."
        return SYNTHESIS_TEMPLATE.format(
            intent=intent.value,
            risk=risk.value,
            setups=json.dumps(payload, indent=1, default=str),
            headlines=headlines,
        )

    def parse(self, data: dict[str, Any], **_: Any) -> FundamentalsNewsSynthesis:
        return FundamentalsNewsSynthesis.from_dict(data)

    def is_empty(self, value: FundamentalsNewsSynthesis) -> bool:
        return value.is_empty
