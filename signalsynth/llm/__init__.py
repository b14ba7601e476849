"""
LLM module - Stage-to-model routing

Each pipeline stage is routed independently to a provider/model/tool
configuration and executed through a uniform StageRunner interface.
"""

from signalsynth.llm.models import (
    LlmProvider,
    LlmSource,
    LlmStageRequest,
    LlmStageResponse,
    ReasoningDepth,
    RoutingTable,
    StageModelConfig,
    ToolsMode,
)
from signalsynth.llm.router import StageModelRouter, resolve_tools
from signalsynth.llm.runners import StageRunner, create_runner

__all__ = [
    "LlmProvider",
    "LlmSource",
    "LlmStageRequest",
    "LlmStageResponse",
    "ReasoningDepth",
    "RoutingTable",
    "StageModelConfig",
    "ToolsMode",
    "StageModelRouter",
    "resolve_tools",
    "StageRunner",
    "create_runner",
]
