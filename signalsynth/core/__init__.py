"""
Core module - Engineering foundation

Contains configuration, logging, HTTP client, caching, retry and
provider health tracking.
"""

from signalsynth.core.config import Settings, get_settings, load_yaml_config
from signalsynth.core.errors import (
    SignalSynthError,
    ProviderError,
    ConfigurationError,
    DataNotAvailableError,
    RateLimitError,
    AuthenticationError,
    QuotaExceededError,
    LLMError,
)
from signalsynth.core.logging import setup_logging, get_logger

__all__ = [
    "Settings",
    "get_settings",
    "load_yaml_config",
    "SignalSynthError",
    "ProviderError",
    "ConfigurationError",
    "DataNotAvailableError",
    "RateLimitError",
    "AuthenticationError",
    "QuotaExceededError",
    "LLMError",
    "setup_logging",
    "get_logger",
]
