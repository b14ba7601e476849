"""
Stage routing models.

A StageModelConfig says which provider/model/tool setup serves one
AnalysisStage. The RoutingTable holds user overrides from config.yaml
(`llm_routing`) and falls back to built-in defaults per stage.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from signalsynth.core.logging import get_logger
from signalsynth.domain.models import AnalysisStage

logger = get_logger("llm.models")


class LlmProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"
    GROQ = "groq"
    OPENROUTER = "openrouter"
    TOGETHER = "together"
    OLLAMA = "ollama"
    DASHSCOPE = "dashscope"

    @property
    def supports_web_tools(self) -> bool:
        return self in (LlmProvider.OPENAI, LlmProvider.GEMINI)

    @property
    def requires_api_key(self) -> bool:
        return self is not LlmProvider.OLLAMA


class ToolsMode(str, Enum):
    NONE = "none"
    WEB_SEARCH = "web_search"
    GOOGLE_SEARCH = "google_search"


class ReasoningDepth(str, Enum):
    """Maps to reasoning_effort (OpenAI) / thinking_level (Gemini 3)."""
    NONE = "none"
    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EXTRA = "extra"


@dataclass(frozen=True)
class StageModelConfig:
    provider: LlmProvider
    model: str
    tools: ToolsMode = ToolsMode.NONE
    temperature: float = 0.2
    max_output_tokens: int = 2000
    timeout_seconds: float = 30.0
    reasoning_depth: ReasoningDepth = ReasoningDepth.MEDIUM

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StageModelConfig":
        """
        Parse one stage entry from config.yaml.

        Accepts both snake_case keys and the camelCase keys used by exported
        routing settings (maxOutputTokens, timeoutMs, reasoningDepth).
        """
        def get(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        timeout = get("timeout_seconds")
        if timeout is None:
            timeout_ms = get("timeout_ms", "timeoutMs")
            timeout = float(timeout_ms) / 1000 if timeout_ms is not None else 30.0

        return cls(
            provider=LlmProvider(str(get("provider", default="openai")).lower()),
            model=str(get("model", default="")),
            tools=ToolsMode(str(get("tools", default="none")).lower()),
            temperature=float(get("temperature", default=0.2)),
            max_output_tokens=int(get("max_output_tokens", "maxOutputTokens", default=2000)),
            timeout_seconds=float(timeout),
            reasoning_depth=ReasoningDepth(
                str(get("reasoning_depth", "reasoningDepth", default="medium")).lower()
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "model": self.model,
            "tools": self.tools.value,
            "temperature": self.temperature,
            "max_output_tokens": self.max_output_tokens,
            "timeout_seconds": self.timeout_seconds,
            "reasoning_depth": self.reasoning_depth.value,
        }


DEFAULT_STAGE_CONFIGS: dict[AnalysisStage, StageModelConfig] = {
    AnalysisStage.SHORTLIST: StageModelConfig(
        provider=LlmProvider.OPENAI,
        model="gpt-5.2",
        temperature=0.2,
        reasoning_depth=ReasoningDepth.MEDIUM,
        max_output_tokens=1000,
    ),
    AnalysisStage.DECISION_UPDATE: StageModelConfig(
        provider=LlmProvider.OPENAI,
        model="gpt-5.2",
        temperature=0.2,
        reasoning_depth=ReasoningDepth.HIGH,
        max_output_tokens=1500,
    ),
    AnalysisStage.FUNDAMENTALS_NEWS_SYNTHESIS: StageModelConfig(
        provider=LlmProvider.OPENAI,
        model="gpt-5.2",
        temperature=0.3,
        reasoning_depth=ReasoningDepth.HIGH,
        max_output_tokens=2000,
    ),
    AnalysisStage.DEEP_DIVE: StageModelConfig(
        provider=LlmProvider.OPENAI,
        model="gpt-5.2",
        tools=ToolsMode.WEB_SEARCH,
        temperature=0.2,
        reasoning_depth=ReasoningDepth.HIGH,
        max_output_tokens=2000,
        timeout_seconds=60.0,
    ),
    AnalysisStage.RSS_VERIFY: StageModelConfig(
        provider=LlmProvider.OPENAI,
        model="gpt-5-mini",
        temperature=0.1,
        reasoning_depth=ReasoningDepth.MINIMAL,
        max_output_tokens=500,
    ),
}


@dataclass
class RoutingTable:
    """User overrides per stage; stages without one use the defaults."""
    by_stage: dict[AnalysisStage, StageModelConfig] = field(default_factory=dict)

    def config_for(self, stage: AnalysisStage) -> StageModelConfig:
        return self.by_stage.get(stage) or DEFAULT_STAGE_CONFIGS[stage]

    def resolved(self) -> dict[AnalysisStage, StageModelConfig]:
        """Effective config for every stage."""
        return {stage: self.config_for(stage) for stage in AnalysisStage}

    def with_provider(self, provider: LlmProvider, model: Optional[str] = None) -> "RoutingTable":
        """Copy with every stage moved to one provider (CLI --llm-provider)."""
        table = {}
        for stage in AnalysisStage:
            current = self.config_for(stage)
            table[stage] = replace(current, provider=provider, model=model or current.model)
        return RoutingTable(table)

    @classmethod
    def from_config(cls, section: Optional[dict[str, Any]]) -> "RoutingTable":
        """
        Build from the `llm_routing` section of config.yaml.

        Unknown stages and malformed entries are logged and ignored, so a bad
        override never blocks a run.
        """
        by_stage: dict[AnalysisStage, StageModelConfig] = {}
        for key, entry in (section or {}).items():
            try:
                stage = AnalysisStage(str(key).lower())
                by_stage[stage] = StageModelConfig.from_dict(entry or {})
            except (ValueError, TypeError) as e:
                logger.warning(f"Ignoring routing override for {key}: {e}")
        return cls(by_stage)


@dataclass(frozen=True)
class LlmStageRequest:
    system_prompt: str
    user_prompt: str
    stage: Optional[AnalysisStage] = None
    expected_schema_id: Optional[str] = None
    timeout_seconds: float = 30.0
    max_output_tokens: int = 2000
    tools: ToolsMode = ToolsMode.NONE
    temperature: Optional[float] = None
    reasoning_depth: ReasoningDepth = ReasoningDepth.MEDIUM


@dataclass(frozen=True)
class LlmSource:
    title: str
    url: str
    snippet: Optional[str] = None


@dataclass(frozen=True)
class LlmStageResponse:
    raw_text: str
    parsed_json: Optional[dict[str, Any]] = None
    sources: list[LlmSource] = field(default_factory=list)
    debug: Optional[str] = None
