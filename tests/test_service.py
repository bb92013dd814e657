from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_master.config import Settings
from agent_master.db import Database
from agent_master.errors import ConfigurationError, ConversationNotFoundError
from agent_master.main import build_service
from agent_master.models import LLMResponse, TokenUsage
from agent_master.service import AgentMasterService


def _service(tmp_path, openai_key: str | None = "env-key") -> AgentMasterService:
    settings = Settings(_env_file=None, DATABASE_PATH=tmp_path / "agent_master.db", OPENAI_API_KEY=openai_key)
    db = Database(settings.database_path)
    db.initialize()
    db.upsert_tenant("tenant-1", name="Acme")
    llm = MagicMock()
    llm.generate = AsyncMock(
        return_value=LLMResponse(content="Hello!", usage=TokenUsage(input_tokens=30, output_tokens=10, total_tokens=40))
    )
    return AgentMasterService(db, settings, llm=llm)


@pytest.mark.asyncio
async def test_chat_round_trip_through_service(tmp_path):
    service = _service(tmp_path)
    conversation_id = service.create_conversation("tenant-1", "user-1", "Support chat")

    result = await service.chat("tenant-1", "user-1", conversation_id, "hi")

    assert result.to_dict() == {
        "message": "Hello!",
        "function_calls": [],
        "total_function_calls": 0,
        "final_response": True,
        "test_results": [],
    }
    assert service.get_token_usage(conversation_id) == 40
    assert [m["role"] for m in service.get_recent_messages(conversation_id)] == ["user", "assistant"]
    summary = service.get_usage_summary(conversation_id)
    assert summary["total_operations"] == 1
    assert summary["by_provider"]["openai"]["tokens"] == 40
    assert service.get_tenant_usage_summary("tenant-1")["total_tokens"] == 40


@pytest.mark.asyncio
async def test_chat_without_credentials_fails_before_touching_conversation(tmp_path):
    service = _service(tmp_path, openai_key=None)
    conversation_id = service.create_conversation("tenant-1", "user-1", "Support chat")

    with pytest.raises(ConfigurationError):
        await service.chat("tenant-1", "user-1", conversation_id, "hi")

    assert service.get_conversation_messages(conversation_id) == []


def test_get_conversation_bundle(tmp_path):
    service = _service(tmp_path)
    conversation_id = service.create_conversation("tenant-1", "user-1", "Support chat", metadata={"channel": "web"})
    service.add_message(conversation_id, "user", "hello")

    bundle = service.get_conversation(conversation_id)
    assert bundle["conversation"]["metadata"] == {"channel": "web"}
    assert [m["content"] for m in bundle["messages"]] == ["hello"]
    assert bundle["memory"] == {}

    with pytest.raises(ConversationNotFoundError):
        service.get_conversation("missing")


def test_conversation_lifecycle(tmp_path):
    service = _service(tmp_path)
    conversation_id = service.create_conversation("tenant-1", "user-1", "Support chat")
    message_id = service.add_message(conversation_id, "assistant", "hi", tokens_used=12)
    service.log_ai_usage(
        conversation_id=conversation_id,
        message_id=message_id,
        tenant_id="tenant-1",
        provider="openai",
        model="gpt-4o",
        start_time="2024-01-01T00:00:00+00:00",
        end_time="2024-01-01T00:00:01+00:00",
        latency_ms=1000,
        total_tokens=12,
    )

    service.update_conversation(conversation_id, title="Renamed")
    assert service.list_conversations("tenant-1")[0]["title"] == "Renamed"
    service.archive_conversation(conversation_id)
    assert service.list_conversations_by_user("user-1")[0]["status"] == "archived"
    assert service.get_conversation_history(conversation_id)[0]["content"] == "hi"
    assert service.get_function_calls(conversation_id) == []

    service.delete_conversation(conversation_id)
    assert service.list_conversations("tenant-1") == []
    assert service.get_usage_summary(conversation_id)["total_operations"] == 0


def test_tenant_ai_config_prefers_tenant_key(tmp_path):
    service = _service(tmp_path)
    service._db.upsert_tenant(
        "tenant-2",
        settings={"ai": {"generating": {"model": "gpt-4o"}, "providers": {"openai": {"apiKey": "tenant-key"}}}},
    )

    config = service.get_tenant_ai_config("tenant-2")
    assert config.api_key == "tenant-key"
    assert config.model == "gpt-4o"
    assert service.get_tenant_ai_config("tenant-1").api_key == "env-key"


def test_build_service_seeds_default_tenant(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "seeded.db"))
    monkeypatch.setenv("DEFAULT_TENANT_ID", "tenant-default")

    service = build_service(Settings(_env_file=None))

    assert service._db.get_tenant_settings("tenant-default") == {}
    assert service.catalog.names()[0] == "get_agent"


@pytest.mark.asyncio
async def test_catalog_writes_use_default_tenant(tmp_path):
    service = _service(tmp_path)
    service._db.upsert_agent("support", "Support Bot", is_default=True)
    service._db.register_tool("core.time", "Clock", category="core")

    await service.catalog.execute("update_prompt", {"agent_key": "support", "content": "Be brief."})
    added = await service.catalog.execute("add_tool_to_agent", {"agent_key": "support", "tool_key": "core.time"})

    assert service._db.get_latest_prompt("support", "base")["tenant_id"] == "00000000-0000-0000-0000-000000000000"
    assert added["agent_tool"]["tenant_id"] == "00000000-0000-0000-0000-000000000000"
    assert [t["tenant_id"] for t in service._db.list_agent_tools("support")] == ["00000000-0000-0000-0000-000000000000"]
