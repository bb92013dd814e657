"""Application configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agent_master.errors import ConfigurationError
from agent_master.models import AiConfig

DEFAULT_PROVIDER = "openai"
DEFAULT_MAX_TOKENS = 2048
DEFAULT_TEMPERATURE = 0.2


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_path: Path = Field(default=Path("agent_master.db"), alias="DATABASE_PATH")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_chat_model: str = Field(default="gpt-4o-mini", alias="OPENAI_CHAT_MODEL")
    openai_base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL")
    # Base URL of the admin backend hosting the tool test execution endpoint.
    app_url: str = Field(default="http://localhost:3001", alias="APP_URL")
    request_timeout_seconds: float = Field(default=60.0, alias="REQUEST_TIMEOUT_SECONDS")
    default_tenant_id: str = Field(default="00000000-0000-0000-0000-000000000000", alias="DEFAULT_TENANT_ID")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    def provider_base_url(self, provider: str) -> str:
        """Return the OpenAI-compatible endpoint for a provider name."""

        urls = {
            "openai": self.openai_base_url,
            "openrouter": self.openrouter_base_url,
        }
        return urls.get(provider, self.openai_base_url)


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def resolve_ai_config(tenant_settings: dict[str, Any] | None, settings: Settings) -> AiConfig:
    """Build the generating-model config from a tenant's ``settings`` document.

    Reads ``ai.generating.{provider,model,maxTokens,temperature}`` and
    ``ai.providers.<provider>.apiKey``. The process-wide OpenAI key is only a
    fallback when the tenant generates with OpenAI.

    Raises:
        ConfigurationError: no API key can be found for the selected provider.
    """
    ai = (tenant_settings or {}).get("ai") or {}
    generating = ai.get("generating") or {}

    provider = str(generating.get("provider") or DEFAULT_PROVIDER).lower()
    model = generating.get("model") or settings.openai_chat_model
    provider_cfg = (ai.get("providers") or {}).get(provider) or {}
    api_key = provider_cfg.get("apiKey")
    if not api_key and provider == DEFAULT_PROVIDER:
        api_key = settings.openai_api_key
    if not api_key:
        raise ConfigurationError(f"No API key configured for provider: {provider}")

    max_tokens = generating.get("maxTokens")
    temperature = generating.get("temperature")
    return AiConfig(
        api_key=api_key,
        model=model,
        provider=provider,
        max_tokens=max_tokens if _is_number(max_tokens) else DEFAULT_MAX_TOKENS,
        temperature=temperature if _is_number(temperature) else DEFAULT_TEMPERATURE,
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
