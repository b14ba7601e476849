"""
Base classes for pipeline stages.

LLM stages never raise. Each returns a StageOutcome tagged SUCCESS, EMPTY
or ERROR, and the orchestrator decides what an empty result means for
that stage (end early, pass through, or omit).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from signalsynth.core.errors import MalformedResponseError
from signalsynth.core.logging import LoggerMixin
from signalsynth.domain.models import AnalysisStage
from signalsynth.domain.plans import extract_first_json_object
from signalsynth.llm.models import LlmStageRequest, LlmStageResponse
from signalsynth.llm.prompts import SYSTEM_ANALYST
from signalsynth.llm.router import StageModelRouter

T = TypeVar("T")


class OutcomeStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """
    Result of an LLM stage: a value, nothing, or a captured error.

    An EMPTY outcome may still carry the parsed value (e.g. a shortlist
    with no symbols but with global notes).
    """
    status: OutcomeStatus
    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, value: T) -> "StageOutcome[T]":
        return cls(OutcomeStatus.SUCCESS, value=value)

    @classmethod
    def empty(cls, value: Optional[T] = None) -> "StageOutcome[T]":
        return cls(OutcomeStatus.EMPTY, value=value)

    @classmethod
    def failed(cls, error: Exception) -> "StageOutcome[T]":
        return cls(OutcomeStatus.ERROR, error=error)

    @property
    def is_success(self) -> bool:
        return self.status == OutcomeStatus.SUCCESS

    def value_or(self, default: T) -> T:
        return self.value if self.value is not None else default

    def error_dict(self, stage: str) -> Optional[dict[str, Any]]:
        """Error entry for AnalysisResult.errors, or None."""
        if self.error is None:
            return None
        details = getattr(self.error, "to_dict", None)
        return {
            "stage": stage,
            "error": str(self.error),
            **({"details": details()} if callable(details) else {}),
        }


class LlmStage(ABC, LoggerMixin, Generic[T]):
    """
    Shared flow for LLM-backed stages.

    Subclasses:
    - Set `stage` and `schema_id`
    - Implement build_prompt(**context) and parse(data, **context)
    - Implement is_empty(value)
    - Optionally override system_prompt, or finalize(value, response) to
      fold response metadata (grounding sources) into the parsed value
    """

    stage: AnalysisStage
    schema_id: str = ""
    system_prompt: str = SYSTEM_ANALYST

    def __init__(self, router: StageModelRouter):
        self.router = router

    @abstractmethod
    def build_prompt(self, **context: Any) -> str:
        pass

    @abstractmethod
    def parse(self, data: dict[str, Any], **context: Any) -> T:
        pass

    @abstractmethod
    def is_empty(self, value: T) -> bool:
        pass

    def finalize(self, value: T, response: LlmStageResponse) -> T:
        return value

    async def execute(self, **context: Any) -> StageOutcome[T]:
        """
        Build the prompt, call the routed model and parse its JSON.

        Any failure (timeout, provider error, malformed JSON) is captured in
        the returned outcome instead of being raised.
        """
        self.logger.info(f"Stage {self.stage.value} starting")
        try:
            request = LlmStageRequest(
                system_prompt=self.system_prompt,
                user_prompt=self.build_prompt(**context),
                expected_schema_id=self.schema_id,
            )
            response = await self.router.run(self.stage, request)
            data = response.parsed_json or extract_first_json_object(response.raw_text)
            if data is None:
                raise MalformedResponseError(
                    f"No JSON object in {self.stage.value} response",
                    source=self.stage.value,
                    details={"preview": response.raw_text[:200]},
                )
            value = self.finalize(self.parse(data, **context), response)
        except Exception as e:
            self.logger.error(f"Stage {self.stage.value} failed: {e}", exc_info=True)
            return StageOutcome.failed(e)

        if self.is_empty(value):
            self.logger.info(f"Stage {self.stage.value} returned nothing")
            return StageOutcome.empty(value)

        self.logger.info(f"Stage {self.stage.value} completed")
        return StageOutcome.success(value)
