"""
Configuration management for nswot.

Provides centralized, validated configuration from environment variables
with proper type checking and defaults.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


def _parse_bool(v) -> bool:
    if isinstance(v, str):
        return v.lower() in ("1", "true", "yes", "y")
    return bool(v)


class LLMConfig(BaseSettings):
    """LLM provider and request configuration."""

    provider: str = Field(default="openrouter", alias="NSWOT_LLM_PROVIDER")
    model: Optional[str] = Field(default=None, alias="NSWOT_MODEL")
    context_window: int = Field(default=128000, alias="NSWOT_CONTEXT_WINDOW")
    max_tokens: int = Field(default=4096, alias="NSWOT_MAX_TOKENS")
    temperature: Optional[float] = Field(default=0.2, alias="NSWOT_TEMPERATURE")
    thinking_budget: int = Field(default=0, alias="NSWOT_THINKING_BUDGET")

    # Transport
    connect_timeout: float = Field(default=30.0, alias="NSWOT_CONNECT_TIMEOUT")
    stream_idle_timeout: float = Field(default=120.0, alias="NSWOT_STREAM_IDLE_TIMEOUT")

    # Credentials
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openrouter_api_key: Optional[str] = Field(default=None, alias="OPENROUTER_API_KEY")

    @field_validator("provider", mode="before")
    @classmethod
    def parse_provider(cls, v):
        value = (v or "openrouter").strip().lower()
        if value not in PROVIDER_KEY_ENV:
            raise ValueError(f"Unknown LLM provider: {value}")
        return value

    @field_validator("context_window")
    @classmethod
    def validate_context_window(cls, v):
        if v <= 0:
            raise ValueError("context window must be positive")
        return v

    def api_key_for(self, provider: str) -> Optional[str]:
        return {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
        }.get(provider)

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


class ResilienceConfig(BaseSettings):
    """Retry and circuit breaker configuration."""

    max_retries: int = Field(default=3, alias="NSWOT_MAX_RETRIES")
    retry_base_delay: float = Field(default=1.0, alias="NSWOT_RETRY_BASE_DELAY")
    retry_max_delay: float = Field(default=10.0, alias="NSWOT_RETRY_MAX_DELAY")
    retry_jitter: bool = Field(default=True, alias="NSWOT_RETRY_JITTER")

    breaker_failure_threshold: int = Field(default=5, alias="NSWOT_BREAKER_THRESHOLD")
    breaker_recovery_timeout: float = Field(default=60.0, alias="NSWOT_BREAKER_COOLDOWN")

    model_cache_ttl: float = Field(default=300.0, alias="NSWOT_MODEL_CACHE_TTL")

    @field_validator("retry_jitter", mode="before")
    @classmethod
    def parse_retry_jitter(cls, v):
        return _parse_bool(v)

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


class PipelineConfig(BaseSettings):
    """Analysis pipeline configuration."""

    mode: str = Field(default="multi_step", alias="NSWOT_PIPELINE_MODE")
    role: str = Field(default="staff_engineer", alias="NSWOT_ROLE")

    @field_validator("mode", mode="before")
    @classmethod
    def parse_mode(cls, v):
        value = (v or "multi_step").strip().lower().replace("-", "_")
        if value not in ("single", "multi_step", "themes"):
            raise ValueError(f"Unknown pipeline mode: {value}")
        return value

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


class Settings(BaseSettings):
    """Main application settings."""

    environment: str = Field(default="production", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    llm: LLMConfig = Field(default_factory=LLMConfig)
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        return _parse_bool(v)

    def model_post_init(self, __context) -> None:
        # Sub-configurations read the environment on their own
        self.llm = LLMConfig()
        self.resilience = ResilienceConfig()
        self.pipeline = PipelineConfig()

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global settings
    settings = None


def validate_required_settings(provider: Optional[str] = None) -> List[str]:
    """
    Validate that required settings are present for an analysis run.

    Args:
        provider: Provider to check credentials for (defaults to the configured one)

    Returns:
        List of missing required settings
    """
    missing = []
    config = get_settings()
    active = provider or config.llm.provider

    if not config.llm.api_key_for(active):
        missing.append(PROVIDER_KEY_ENV[active])
    if not config.llm.model:
        missing.append("NSWOT_MODEL")

    return missing


def configuration_summary() -> Dict[str, str]:
    """Return a printable summary of the current configuration (no secrets)."""
    config = get_settings()
    return {
        "Environment": config.environment,
        "Debug": str(config.debug),
        "Provider": config.llm.provider,
        "Model": config.llm.model or "(not set)",
        "Context window": str(config.llm.context_window),
        "Max output tokens": str(config.llm.max_tokens),
        "Thinking budget": str(config.llm.thinking_budget),
        "API key": "✓" if config.llm.api_key_for(config.llm.provider) else "✗",
        "Pipeline mode": config.pipeline.mode,
        "Role": config.pipeline.role,
        "Max retries": str(config.resilience.max_retries),
        "Breaker threshold": str(config.resilience.breaker_failure_threshold),
    }
