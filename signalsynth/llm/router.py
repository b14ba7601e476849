"""
Stage-to-model router.

The single seam that makes every LLM stage provider-agnostic: resolve the
stage's config, gate tools, merge execution parameters, look up the key,
and dispatch to the provider's runner under a hard timeout.
"""

import asyncio
from dataclasses import replace
from typing import Callable, Optional

from signalsynth.core.config import KeyProvider
from signalsynth.core.errors import ConfigurationError, LLMTimeoutError
from signalsynth.core.logging import LoggerMixin
from signalsynth.domain.models import AnalysisStage
from signalsynth.llm.models import (
    LlmProvider,
    LlmStageRequest,
    LlmStageResponse,
    RoutingTable,
    StageModelConfig,
    ToolsMode,
)
from signalsynth.llm.runners import StageRunner, create_runner

RunnerFactory = Callable[[LlmProvider, str, str], StageRunner]


class StaticKeyProvider:
    """A single key passed in for one run; other lookups go to the fallback."""

    def __init__(self, key: str, fallback: Optional[KeyProvider] = None):
        self.key = key
        self.fallback = fallback

    def llm_key(self, provider: str) -> Optional[str]:
        if self.key:
            return self.key
        return self.fallback.llm_key(provider) if self.fallback is not None else None


def resolve_tools(stage: AnalysisStage, config: StageModelConfig) -> ToolsMode:
    """
    Translate the configured tool request for a stage.

    Only DEEP_DIVE may use tools, and only on providers with web tools.
    Gemini calls its web tool google_search.
    """
    if stage != AnalysisStage.DEEP_DIVE or not config.provider.supports_web_tools:
        return ToolsMode.NONE
    if config.provider == LlmProvider.GEMINI and config.tools == ToolsMode.WEB_SEARCH:
        return ToolsMode.GOOGLE_SEARCH
    if config.provider == LlmProvider.OPENAI and config.tools == ToolsMode.GOOGLE_SEARCH:
        return ToolsMode.WEB_SEARCH
    return config.tools


class StageModelRouter(LoggerMixin):
    """
    Route each AnalysisStage to its configured provider/model.

    Usage:
        router = StageModelRouter(RoutingTable.from_config(cfg["llm_routing"]), settings)
        response = await router.run(AnalysisStage.SHORTLIST, request)
    """

    def __init__(
        self,
        routing: Optional[RoutingTable] = None,
        keys: Optional[KeyProvider] = None,
        *,
        runner_factory: Optional[RunnerFactory] = None,
        ollama_base_url: str = "http://localhost:11434/v1",
    ):
        self.routing = routing or RoutingTable()
        self.keys = keys
        self._ollama_base_url = ollama_base_url
        self._runner_factory = runner_factory or self._default_factory

    def _default_factory(self, provider: LlmProvider, model: str, api_key: str) -> StageRunner:
        return create_runner(provider, model, api_key, ollama_base_url=self._ollama_base_url)

    def with_keys(self, keys: KeyProvider) -> "StageModelRouter":
        """Same routing and runners, different key source."""
        return StageModelRouter(
            self.routing,
            keys,
            runner_factory=self._runner_factory,
            ollama_base_url=self._ollama_base_url,
        )

    def api_key_for(self, provider: LlmProvider) -> Optional[str]:
        if self.keys is None:
            return None
        return self.keys.llm_key(provider.value)

    def prepare(self, stage: AnalysisStage, request: LlmStageRequest) -> tuple[StageModelConfig, LlmStageRequest]:
        """Resolve config and build the final request (config beats request hints)."""
        config = self.routing.config_for(stage)
        final = replace(
            request,
            stage=stage,
            tools=resolve_tools(stage, config),
            max_output_tokens=config.max_output_tokens,
            timeout_seconds=config.timeout_seconds,
            temperature=config.temperature,
            reasoning_depth=config.reasoning_depth,
        )
        return config, final

    def ensure_key(self, stage: AnalysisStage) -> str:
        """
        Return the API key for the stage's provider.

        Raises:
            ConfigurationError: When the provider needs a key and none is set
        """
        config = self.routing.config_for(stage)
        key = self.api_key_for(config.provider)
        if not key and config.provider.requires_api_key:
            raise ConfigurationError(
                f"No API key for LLM provider {config.provider.value} (stage {stage.value})",
                details={"provider": config.provider.value, "stage": stage.value},
            )
        return key or ""

    async def run(self, stage: AnalysisStage, request: LlmStageRequest) -> LlmStageResponse:
        """
        Execute one stage request.

        Raises:
            ConfigurationError: Missing API key
            LLMTimeoutError: Stage exceeded its timeout
            LLMError: Provider call failed
        """
        config, final = self.prepare(stage, request)
        api_key = self.ensure_key(stage)
        runner = self._runner_factory(config.provider, config.model, api_key)

        self.logger.info(
            f"Routing stage {stage.value} to {config.provider.value}/{config.model} "
            f"tools={final.tools.value} depth={final.reasoning_depth.value}"
        )
        try:
            return await asyncio.wait_for(runner.run(final), timeout=final.timeout_seconds)
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Stage {stage.value} timed out after {final.timeout_seconds}s")
            raise LLMTimeoutError(
                f"Stage {stage.value} timed out on {config.provider.value}/{config.model}",
                provider=config.provider.value,
                timeout=final.timeout_seconds,
                model=config.model,
            ) from e
