import pytest

from agent_master.config import Settings, resolve_ai_config
from agent_master.errors import ConfigurationError


def _settings(**overrides) -> Settings:
    values = {"OPENAI_API_KEY": None, "OPENAI_CHAT_MODEL": "gpt-4o-mini"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_tenant_provider_key_and_generating_settings():
    tenant = {
        "ai": {
            "generating": {"provider": "OpenRouter", "model": "anthropic/claude", "maxTokens": 512, "temperature": 0.7},
            "providers": {"openrouter": {"apiKey": "or-key"}},
        }
    }

    config = resolve_ai_config(tenant, _settings())
    assert config.provider == "openrouter"
    assert config.model == "anthropic/claude"
    assert config.api_key == "or-key"
    assert config.max_tokens == 512
    assert config.temperature == 0.7


def test_defaults_fall_back_to_environment_key_for_openai():
    config = resolve_ai_config({}, _settings(OPENAI_API_KEY="env-key"))

    assert config.provider == "openai"
    assert config.model == "gpt-4o-mini"
    assert config.api_key == "env-key"
    assert config.max_tokens == 2048
    assert config.temperature == 0.2


def test_missing_tenant_settings_use_environment_key():
    config = resolve_ai_config(None, _settings(OPENAI_API_KEY="env-key"))
    assert config.api_key == "env-key"


def test_environment_key_is_not_used_for_other_providers():
    tenant = {"ai": {"generating": {"provider": "openrouter"}}}

    with pytest.raises(ConfigurationError, match="No API key configured for provider: openrouter"):
        resolve_ai_config(tenant, _settings(OPENAI_API_KEY="env-key"))


def test_missing_openai_key_raises():
    with pytest.raises(ConfigurationError, match="openai"):
        resolve_ai_config({"ai": {}}, _settings())


def test_non_numeric_generation_settings_use_defaults():
    tenant = {
        "ai": {
            "generating": {"maxTokens": "lots", "temperature": True},
            "providers": {"openai": {"apiKey": "tenant-key"}},
        }
    }

    config = resolve_ai_config(tenant, _settings(OPENAI_API_KEY="env-key"))
    assert config.api_key == "tenant-key"
    assert config.max_tokens == 2048
    assert config.temperature == 0.2


def test_provider_base_url_lookup():
    settings = _settings()
    assert settings.provider_base_url("openrouter") == "https://openrouter.ai/api/v1"
    assert settings.provider_base_url("unknown") == settings.openai_base_url
