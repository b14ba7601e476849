"""
Configuration management for SignalSynth.

Supports:
- Credentials and runtime knobs: .env file / environment variables
- Business rules (routing overrides, TTLs, discovery lists): config/config.yaml
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Protocol

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class KeyProvider(Protocol):
    """Anything that can hand out an LLM API key for a provider name."""

    def llm_key(self, provider: str) -> Optional[str]:
        ...


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==============================================
    # Environment
    # ==============================================
    signalsynth_env: str = Field(default="local", description="Environment: local/cloud")
    log_level: str = Field(default="INFO")
    timezone: str = Field(default="America/New_York")

    # ==============================================
    # Market Data API Keys
    # ==============================================
    alpaca_api_key: Optional[str] = Field(default=None)
    alpaca_secret_key: Optional[str] = Field(default=None)
    polygon_api_key: Optional[str] = Field(default=None, description="Polygon.io/Massive API Key")
    twelve_data_api_key: Optional[str] = Field(default=None)
    finnhub_api_key: Optional[str] = Field(default=None)
    fmp_api_key: Optional[str] = Field(default=None, description="Financial Modeling Prep API Key")

    # ==============================================
    # LLM API Keys
    # ==============================================
    openai_api_key: Optional[str] = Field(default=None)
    anthropic_api_key: Optional[str] = Field(default=None)
    gemini_api_key: Optional[str] = Field(default=None)
    deepseek_api_key: Optional[str] = Field(default=None)
    groq_api_key: Optional[str] = Field(default=None)
    openrouter_api_key: Optional[str] = Field(default=None)
    together_api_key: Optional[str] = Field(default=None)
    dashscope_api_key: Optional[str] = Field(default=None, description="Qwen API Key")
    ollama_base_url: str = Field(default="http://localhost:11434/v1")

    # ==============================================
    # Storage
    # ==============================================
    database_url: str = Field(default="sqlite:///data/signalsynth.db")
    rss_database_url: str = Field(default="sqlite:///data/rss.db")

    # ==============================================
    # Telegram
    # ==============================================
    telegram_bot_token: Optional[str] = Field(default=None)
    telegram_chat_id: Optional[str] = Field(default=None)
    telegram_enabled: bool = Field(default=False)

    # ==============================================
    # Runtime Config
    # ==============================================
    http_timeout: int = Field(default=30, description="HTTP timeout in seconds")
    use_mock_data: bool = Field(default=False, description="Force the mock market data adapter")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.upper()
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v

    @property
    def is_local(self) -> bool:
        return self.signalsynth_env == "local"

    @property
    def has_market_data_keys(self) -> bool:
        """True if at least one real market data vendor is configured."""
        return any([
            self.alpaca_api_key and self.alpaca_secret_key,
            self.polygon_api_key,
            self.twelve_data_api_key,
            self.finnhub_api_key,
            self.fmp_api_key,
        ])

    def llm_key(self, provider: str) -> Optional[str]:
        """Look up the API key for an LLM provider name (e.g. "openai")."""
        provider = str(getattr(provider, "value", provider)).lower()
        if provider == "ollama":
            # Local server, no key required
            return "ollama"
        return getattr(self, f"{provider}_api_key", None)


class ConfigLoader:
    """
    Configuration loader that supports multiple sources.

    - local: Load from .env file
    - cloud: Environment variables injected by the platform
    """

    def __init__(self, env: Optional[str] = None):
        self.env = env or os.getenv("SIGNALSYNTH_ENV", "local")

    def load(self) -> Settings:
        """Load settings based on environment."""
        if self.env == "local":
            return self._load_from_dotenv()
        return self._load_from_environment()

    def _load_from_dotenv(self) -> Settings:
        return Settings()

    def _load_from_environment(self) -> Settings:
        return Settings(_env_file=None)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    loader = ConfigLoader()
    return loader.load()


def find_project_root() -> Optional[Path]:
    """Locate the directory holding pyproject.toml, if any."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def load_yaml_config(config_path: Optional[str] = None) -> dict[str, Any]:
    """
    Load YAML configuration file.

    Args:
        config_path: Path to config file. Defaults to config/config.yaml

    Returns:
        Configuration dictionary
    """
    if config_path is None:
        root = find_project_root()
        if root is not None:
            config_path = str(root / "config" / "config.yaml")
        else:
            config_path = "config/config.yaml"

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}
