"""
Stages module - Pipeline steps

Data stages (discover, filter, enrich, rank) work through the gateway.
LLM stages (shortlist, decision, synthesis, deep dive, RSS verify) return
tagged StageOutcomes.
"""

from signalsynth.stages.base import LlmStage, OutcomeStatus, StageOutcome
from signalsynth.stages.decision import DecisionUpdater, apply_decision
from signalsynth.stages.deep_dive import DeepDiveResearcher, DeepDiveStage, DeepDiveSubject
from signalsynth.stages.discover import CandidateDiscoverer, static_candidates
from signalsynth.stages.enrich import EnrichmentResult, TargetedEnricher, plan_targets
from signalsynth.stages.filter import TradeabilityFilter
from signalsynth.stages.rank import SetupRanker
from signalsynth.stages.rss_verify import RssFeedVerifier
from signalsynth.stages.shortlist import ShortlistGate
from signalsynth.stages.synthesis import FundamentalsNewsSynthesizer

__all__ = [
    "LlmStage",
    "OutcomeStatus",
    "StageOutcome",
    "DecisionUpdater",
    "apply_decision",
    "DeepDiveResearcher",
    "DeepDiveStage",
    "DeepDiveSubject",
    "CandidateDiscoverer",
    "static_candidates",
    "EnrichmentResult",
    "TargetedEnricher",
    "plan_targets",
    "TradeabilityFilter",
    "SetupRanker",
    "RssFeedVerifier",
    "ShortlistGate",
    "FundamentalsNewsSynthesizer",
]
