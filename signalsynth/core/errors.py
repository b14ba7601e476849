"""
Unified exception definitions for SignalSynth.

All custom exceptions inherit from SignalSynthError for easy catching.
"""

from typing import Any, Optional


class SignalSynthError(Exception):
    """Base exception for all SignalSynth errors."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "SIGNALSYNTH_ERROR"
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging/serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(SignalSynthError):
    """Configuration or user input errors (missing keys, bad settings)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="CONFIG_ERROR", **kwargs)


class ProviderError(SignalSynthError):
    """Data provider errors (API failures, network, bad status)."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        recoverable: bool = True,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["provider"] = provider
        details["recoverable"] = recoverable
        super().__init__(message, code="PROVIDER_ERROR", details=details, **kwargs)
        self.provider = provider
        self.recoverable = recoverable


class DataNotAvailableError(ProviderError):
    """Requested data is not available (missing, insufficient history, etc.)."""

    def __init__(self, message: str, *, provider: str, **kwargs):
        super().__init__(message, provider=provider, recoverable=False, **kwargs)
        self.code = "DATA_NOT_AVAILABLE"


class RateLimitError(ProviderError):
    """API rate limit exceeded."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["retry_after"] = retry_after
        super().__init__(message, provider=provider, recoverable=True, details=details, **kwargs)
        self.code = "RATE_LIMIT"
        self.retry_after = retry_after


class AuthenticationError(ProviderError):
    """API authentication failed."""

    def __init__(self, message: str, *, provider: str, **kwargs):
        super().__init__(message, provider=provider, recoverable=False, **kwargs)
        self.code = "AUTH_ERROR"


class QuotaExceededError(ProviderError):
    """Plan quota exhausted or access forbidden for this key."""

    def __init__(self, message: str, *, provider: str, **kwargs):
        super().__init__(message, provider=provider, recoverable=False, **kwargs)
        self.code = "QUOTA_EXCEEDED"


class StageExecutionError(SignalSynthError):
    """Error during a pipeline stage."""

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        cause: Optional[Exception] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["stage"] = stage
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, code="STAGE_ERROR", details=details, **kwargs)
        self.stage = stage
        self.cause = cause


class LLMError(SignalSynthError):
    """LLM invocation errors."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        model: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["llm_provider"] = provider
        details["model"] = model
        super().__init__(message, code="LLM_ERROR", details=details, **kwargs)
        self.provider = provider
        self.model = model


class LLMTimeoutError(LLMError):
    """LLM call exceeded the stage timeout."""

    def __init__(self, message: str, *, provider: str, timeout: float, **kwargs):
        details = kwargs.pop("details", {})
        details["timeout"] = timeout
        super().__init__(message, provider=provider, details=details, **kwargs)
        self.code = "LLM_TIMEOUT"
        self.timeout = timeout


class MalformedResponseError(SignalSynthError):
    """Response body could not be parsed into the expected shape."""

    def __init__(self, message: str, *, source: str, **kwargs):
        details = kwargs.pop("details", {})
        details["source"] = source
        super().__init__(message, code="MALFORMED_RESPONSE", details=details, **kwargs)
        self.source = source


# Errors that should put a provider into cool-down instead of being retried.
BLACKLISTABLE_ERRORS = (AuthenticationError, QuotaExceededError)
