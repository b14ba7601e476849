"""
Provider-specific stage runners.

Every runner turns an LlmStageRequest into one vendor call and returns a
uniform LlmStageResponse. Runners raise LLMError on failure; timeouts are
enforced by the router.

Supports:
- OpenAI (chat completions; Responses API with the web_search tool)
- Anthropic (messages)
- Google Gemini (google-genai, optional google_search grounding)
- OpenAI-compatible endpoints (DeepSeek, Groq, OpenRouter, Together,
  Ollama, DashScope/Qwen)
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from anthropic import AsyncAnthropic
from google import genai
from google.genai import types
from openai import AsyncOpenAI

from signalsynth.core.errors import LLMError
from signalsynth.core.logging import get_logger
from signalsynth.domain.plans import extract_first_json_object
from signalsynth.llm.models import (
    LlmProvider,
    LlmSource,
    LlmStageRequest,
    LlmStageResponse,
    ReasoningDepth,
    ToolsMode,
)

logger = get_logger("llm.runners")

OPENAI_COMPATIBLE_BASE_URLS = {
    LlmProvider.DEEPSEEK: "https://api.deepseek.com/v1",
    LlmProvider.GROQ: "https://api.groq.com/openai/v1",
    LlmProvider.OPENROUTER: "https://openrouter.ai/api/v1",
    LlmProvider.TOGETHER: "https://api.together.xyz/v1",
    LlmProvider.DASHSCOPE: "https://dashscope.aliyuncs.com/compatible-mode/v1",
}

_OPENAI_EFFORT = {
    ReasoningDepth.NONE: "minimal",
    ReasoningDepth.MINIMAL: "minimal",
    ReasoningDepth.LOW: "low",
    ReasoningDepth.MEDIUM: "medium",
    ReasoningDepth.HIGH: "high",
    ReasoningDepth.EXTRA: "xhigh",
}


def is_reasoning_model(model: str) -> bool:
    """OpenAI reasoning families ignore temperature and accept reasoning_effort."""
    m = model.lower()
    return m.startswith(("o1", "o3", "o4", "gpt-5")) or "/gpt-5" in m


def _parsed(request: LlmStageRequest, text: str) -> Optional[dict[str, Any]]:
    return extract_first_json_object(text) if request.expected_schema_id else None


class StageRunner(ABC):
    """Uniform interface every provider runner implements."""

    provider: LlmProvider

    def __init__(self, model: str, api_key: str):
        self.model = model
        self.api_key = api_key

    @abstractmethod
    async def run(self, request: LlmStageRequest) -> LlmStageResponse:
        """Execute one stage request."""
        pass

    def _error(self, e: Exception) -> LLMError:
        logger.error(f"{self.provider.value} API error: {e}")
        return LLMError(
            f"{self.provider.value} generation failed: {e}",
            provider=self.provider.value,
            model=self.model,
        )


class OpenAIStageRunner(StageRunner):
    """OpenAI runner; web search goes through the Responses API."""

    provider = LlmProvider.OPENAI

    def __init__(self, model: str, api_key: str, client: Optional[AsyncOpenAI] = None):
        super().__init__(model, api_key)
        self.client = client or AsyncOpenAI(api_key=api_key)

    async def run(self, request: LlmStageRequest) -> LlmStageResponse:
        try:
            if request.tools == ToolsMode.WEB_SEARCH:
                return await self._run_with_web_search(request)
            return await self._run_chat(request)
        except LLMError:
            raise
        except Exception as e:
            raise self._error(e) from e

    async def _run_chat(self, request: LlmStageRequest) -> LlmStageResponse:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": request.system_prompt},
                {"role": "user", "content": request.user_prompt},
            ],
        }
        if is_reasoning_model(self.model):
            kwargs["max_completion_tokens"] = request.max_output_tokens
            kwargs["reasoning_effort"] = _OPENAI_EFFORT[request.reasoning_depth]
        else:
            kwargs["max_tokens"] = request.max_output_tokens
            if request.temperature is not None:
                kwargs["temperature"] = request.temperature
        if request.expected_schema_id:
            kwargs["response_format"] = {"type": "json_object"}

        response = await self.client.chat.completions.create(**kwargs)
        text = (response.choices[0].message.content or "") if response.choices else ""
        logger.debug(f"OpenAI generated {len(text)} chars")
        return LlmStageResponse(
            raw_text=text,
            parsed_json=_parsed(request, text),
            debug=f"model={self.model}, depth={request.reasoning_depth.value}",
        )

    async def _run_with_web_search(self, request: LlmStageRequest) -> LlmStageResponse:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "instructions": request.system_prompt,
            "input": request.user_prompt,
            "tools": [{"type": "web_search"}],
            "max_output_tokens": request.max_output_tokens,
        }
        if is_reasoning_model(self.model):
            kwargs["reasoning"] = {"effort": _OPENAI_EFFORT[request.reasoning_depth]}

        response = await self.client.responses.create(**kwargs)
        text = response.output_text or ""

        sources = []
        for item in response.output or []:
            for content in getattr(item, "content", None) or []:
                for annotation in getattr(content, "annotations", None) or []:
                    url = getattr(annotation, "url", None)
                    if url:
                        sources.append(LlmSource(
                            title=getattr(annotation, "title", None) or "Untitled",
                            url=url,
                        ))

        return LlmStageResponse(
            raw_text=text,
            parsed_json=_parsed(request, text),
            sources=sources,
            debug=f"model={self.model}, tool=web_search, depth={request.reasoning_depth.value}",
        )


class OpenAICompatibleStageRunner(StageRunner):
    """Chat completions against an OpenAI-compatible base URL."""

    def __init__(
        self,
        provider: LlmProvider,
        model: str,
        api_key: str,
        base_url: str,
        client: Optional[AsyncOpenAI] = None,
    ):
        super().__init__(model, api_key)
        self.provider = provider
        self.base_url = base_url
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def run(self, request: LlmStageRequest) -> LlmStageResponse:
        messages = [
            {"role": "system", "content": request.system_prompt},
            {"role": "user", "content": request.user_prompt},
        ]
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=request.temperature if request.temperature is not None else 0.2,
                max_tokens=request.max_output_tokens,
            )
        except Exception as e:
            raise self._error(e) from e

        text = (response.choices[0].message.content or "") if response.choices else ""
        logger.debug(f"{self.provider.value} generated {len(text)} chars")
        return LlmStageResponse(
            raw_text=text,
            parsed_json=_parsed(request, text),
            debug=f"provider={self.provider.value}, model={self.model}",
        )


class AnthropicStageRunner(StageRunner):
    """Claude via the Messages API."""

    provider = LlmProvider.ANTHROPIC

    def __init__(self, model: str, api_key: str, client: Optional[AsyncAnthropic] = None):
        super().__init__(model, api_key)
        self.client = client or AsyncAnthropic(api_key=api_key)

    async def run(self, request: LlmStageRequest) -> LlmStageResponse:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_output_tokens,
            "system": request.system_prompt,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        try:
            response = await self.client.messages.create(**kwargs)
        except Exception as e:
            raise self._error(e) from e

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        usage = getattr(response, "usage", None)
        debug = f"model={self.model}"
        if usage is not None:
            debug += f", in={usage.input_tokens}, out={usage.output_tokens}"
        return LlmStageResponse(raw_text=text, parsed_json=_parsed(request, text), debug=debug)


class GeminiStageRunner(StageRunner):
    """Gemini via google-genai, with optional Google Search grounding."""

    provider = LlmProvider.GEMINI

    def __init__(self, model: str, api_key: str, client: Optional[genai.Client] = None):
        super().__init__(model, api_key)
        self.client = client or genai.Client(api_key=api_key)

    def thinking_level(self, depth: ReasoningDepth) -> Optional[str]:
        """Only Gemini 3 models take a thinking level."""
        model = self.model.lower()
        if not model.startswith("gemini-3"):
            return None
        flash = "flash" in model
        if depth in (ReasoningDepth.NONE, ReasoningDepth.MINIMAL):
            return "minimal" if flash else "low"
        if depth == ReasoningDepth.LOW:
            return "low"
        if depth == ReasoningDepth.MEDIUM:
            return "medium" if flash else "high"
        return "high"

    async def run(self, request: LlmStageRequest) -> LlmStageResponse:
        config_kwargs: dict[str, Any] = {
            "system_instruction": request.system_prompt,
            "temperature": request.temperature if request.temperature is not None else 0.2,
            "max_output_tokens": request.max_output_tokens,
        }
        if request.tools == ToolsMode.GOOGLE_SEARCH:
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        level = self.thinking_level(request.reasoning_depth)
        if level is not None:
            config_kwargs["thinking_config"] = types.ThinkingConfig(thinking_level=level)

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=request.user_prompt,
                config=types.GenerateContentConfig(**config_kwargs),
            )
        except Exception as e:
            raise self._error(e) from e

        text = response.text or ""
        sources = []
        for candidate in response.candidates or []:
            metadata = getattr(candidate, "grounding_metadata", None)
            for chunk in getattr(metadata, "grounding_chunks", None) or []:
                web = getattr(chunk, "web", None)
                if web is not None and web.uri:
                    sources.append(LlmSource(title=web.title or "Untitled", url=web.uri))

        return LlmStageResponse(
            raw_text=text,
            parsed_json=_parsed(request, text),
            sources=sources,
            debug=f"model={self.model}, depth={request.reasoning_depth.value}, level={level}",
        )


def create_runner(
    provider: LlmProvider,
    model: str,
    api_key: str,
    *,
    ollama_base_url: str = "http://localhost:11434/v1",
) -> StageRunner:
    """Instantiate the runner for a provider."""
    if provider == LlmProvider.OPENAI:
        return OpenAIStageRunner(model, api_key)
    if provider == LlmProvider.ANTHROPIC:
        return AnthropicStageRunner(model, api_key)
    if provider == LlmProvider.GEMINI:
        return GeminiStageRunner(model, api_key)
    if provider == LlmProvider.OLLAMA:
        return OpenAICompatibleStageRunner(provider, model, api_key, ollama_base_url)
    return OpenAICompatibleStageRunner(
        provider, model, api_key, OPENAI_COMPATIBLE_BASE_URLS[provider]
    )
