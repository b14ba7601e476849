"""Shortlist gate: one cheap LLM call to pick which symbols deserve enrichment."""

from typing import Any

from signalsynth.domain.models import AnalysisStage, Quote, RiskTolerance, TradingIntent
from signalsynth.domain.plans import ShortlistPlan
from signalsynth.llm.prompts import SHORTLIST_TEMPLATE, format_quote_line
from signalsynth.stages.base import LlmStage


class ShortlistGate(LlmStage[ShortlistPlan]):
    stage = AnalysisStage.SHORTLIST
    schema_id = "shortlist_plan_v1"

    def build_prompt(
        self,
        *,
        symbols: list[str],
        quotes: dict[str, Quote],
        intent: TradingIntent,
        risk: RiskTolerance,
        max_shortlist: int,
        **_: Any,
    ) -> str:
        lines = []
        for symbol in symbols:
            quote = quotes.get(symbol)
            if quote is not None:
                lines.append(format_quote_line(symbol, quote.price, quote.change_percent, quote.volume))
        return SHORTLIST_TEMPLATE.format(
            max_shortlist=max_shortlist,
            intent=intent.value,
            risk=risk.value,
            count=len(lines),
            quote_digest="\n".join(lines),
        )

    def parse(self, data: dict[str, Any], *, max_shortlist: int, **_: Any) -> ShortlistPlan:
        return ShortlistPlan.from_dict(data, max_items=max_shortlist)

    def is_empty(self, value: ShortlistPlan) -> bool:
        return value.is_empty
