"""
Configuration Management
========================

Process-wide configuration, read once from the environment (and a `.env`
file when present) into typed, frozen dataclasses.

Only the entry point reads this module. The orchestrator and the tools get
their settings passed in explicitly (`InvocationConfig`, `ToolSettings`),
so tests never need environment variables.

Usage:
    from botsmith.utils.config import get_config

    config = get_config()
    print(config.completion.model)
    print(config.tools.http_timeout_seconds)
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from botsmith.errors import ConfigError
from botsmith.utils.logger import Logger

logger = Logger("Config")


def _required(name: str) -> str:
    """
    Get a required environment variable.

    Raises:
        ConfigError: If the variable is not set
    """
    value = os.getenv(name)
    if not value:
        raise ConfigError(
            f"Missing required environment variable: {name}\n"
            f"Please ensure {name} is set in your .env file."
        )
    return value


def _optional(name: str, default: str) -> str:
    return os.getenv(name, default)


def _optional_float(name: str, default: float) -> float:
    """Get a numeric environment variable, falling back on bad input."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"{name} is not a valid number, using default: {default}")
        return default


# ==============================================================================
# Configuration Dataclasses
# ==============================================================================

@dataclass(frozen=True)
class CompletionConfig:
    """Chat completion service (any OpenAI-compatible endpoint)."""
    api_key: str
    base_url: str | None    # None means api.openai.com
    model: str
    timeout_seconds: float


@dataclass(frozen=True)
class EmbeddingConfig:
    """Embedding service used by semantic profile search."""
    api_key: str | None
    base_url: str | None
    model: str


@dataclass(frozen=True)
class StorageConfig:
    """PostgREST endpoint of the dashboard database."""
    url: str | None          # https://<project>.supabase.co
    service_key: str | None


@dataclass(frozen=True)
class ToolsConfig:
    """Settings for the built-in capabilities."""
    tavily_api_key: str | None
    http_timeout_seconds: float
    image_scoring_url: str | None
    image_scoring_api_key: str | None
    claim_base_url: str


@dataclass(frozen=True)
class TracingConfig:
    """LangSmith run tracing (disabled without an API key)."""
    api_key: str | None
    project: str


@dataclass(frozen=True)
class Config:
    """
    Root configuration object.

    Access via:
        config = get_config()
        config.completion.model
        config.storage.url
    """
    completion: CompletionConfig
    embedding: EmbeddingConfig
    storage: StorageConfig
    tools: ToolsConfig
    tracing: TracingConfig
    telegram_bot_token: str | None
    slack_bot_token: str | None
    log_level: str


def load_config() -> Config:
    """
    Load and validate all configuration from the environment.

    Raises:
        ConfigError: If required configuration is missing
    """
    load_dotenv()

    return Config(
        completion=CompletionConfig(
            api_key=_required("LLM_API_KEY"),
            base_url=os.getenv("LLM_BASE_URL"),
            model=_optional("LLM_MODEL", "google/gemini-2.5-flash"),
            timeout_seconds=_optional_float("LLM_TIMEOUT_SECONDS", 60.0),
        ),
        embedding=EmbeddingConfig(
            api_key=os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("EMBEDDING_BASE_URL"),
            model=_optional("EMBEDDING_MODEL", "text-embedding-3-small"),
        ),
        storage=StorageConfig(
            url=os.getenv("SUPABASE_URL"),
            service_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY"),
        ),
        tools=ToolsConfig(
            tavily_api_key=os.getenv("TAVILY_API_KEY"),
            http_timeout_seconds=_optional_float("HTTP_TIMEOUT_SECONDS", 15.0),
            image_scoring_url=os.getenv("IMAGE_SCORING_URL"),
            image_scoring_api_key=os.getenv("IMAGE_SCORING_API_KEY"),
            claim_base_url=_optional("CLAIM_BASE_URL", "https://bot-builder.app/claim"),
        ),
        tracing=TracingConfig(
            api_key=os.getenv("LANGSMITH_API_KEY"),
            project=_optional("LANGSMITH_PROJECT", "telegram-bot"),
        ),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN"),
        slack_bot_token=os.getenv("SLACK_BOT_TOKEN"),
        log_level=_optional("LOG_LEVEL", "info"),
    )


# ==============================================================================
# Singleton
# ==============================================================================

_config_instance: Config | None = None


def get_config() -> Config:
    """Get the configuration, loading it on first access."""
    global _config_instance
    if _config_instance is None:
        _config_instance = load_config()
    return _config_instance


def reset_config() -> None:
    """Forget the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
