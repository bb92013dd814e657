import pytest

from agent_master.conversation_store import ConversationStore
from agent_master.db import Database
from agent_master.usage_ledger import UsageLedger


def _setup(tmp_path):
    db = Database(tmp_path / "agent_master.db")
    db.initialize()
    store = ConversationStore(db)
    conversation_id = store.create_conversation("tenant-1", "user-1", "chat")
    message_id = store.add_message(conversation_id, role="assistant", content="hi")
    return db, UsageLedger(db), conversation_id, message_id


def _record(ledger: UsageLedger, conversation_id: str, message_id: int, **overrides) -> int:
    fields = {
        "conversation_id": conversation_id,
        "message_id": message_id,
        "tenant_id": "tenant-1",
        "provider": "openai",
        "model": "gpt-4o",
        "start_time": "2024-03-01T10:00:00+00:00",
        "end_time": "2024-03-01T10:00:01+00:00",
        "latency_ms": 1000,
        "total_tokens": 1000,
        "cost_total_usd": 0.005,
    }
    fields.update(overrides)
    return ledger.record(**fields)


def test_record_and_get_decodes_json_columns(tmp_path):
    _, ledger, conversation_id, message_id = _setup(tmp_path)
    usage_id = _record(
        ledger,
        conversation_id,
        message_id,
        function_calls=[{"name": "get_agent", "arguments": '{"agent_key": "a"}'}],
        metadata={"source": "test"},
    )

    row = ledger.get(usage_id)
    assert row["function_calls"] == [{"name": "get_agent", "arguments": '{"agent_key": "a"}'}]
    assert row["metadata"] == {"source": "test"}
    assert row["cost_currency"] == "USD"
    assert row["status"] == "success"


def test_record_rejects_unknown_operation_and_status(tmp_path):
    _, ledger, conversation_id, message_id = _setup(tmp_path)

    with pytest.raises(ValueError):
        _record(ledger, conversation_id, message_id, operation="completion")
    with pytest.raises(ValueError):
        _record(ledger, conversation_id, message_id, status="timeout")


def test_usage_summary_groups_by_provider_and_operation(tmp_path):
    _, ledger, conversation_id, message_id = _setup(tmp_path)
    _record(ledger, conversation_id, message_id)
    _record(ledger, conversation_id, message_id, total_tokens=500, cost_total_usd=0.001)
    _record(
        ledger,
        conversation_id,
        message_id,
        provider="openrouter",
        operation="function_call",
        total_tokens=200,
        cost_total_usd=0.0004,
    )

    summary = ledger.usage_summary(conversation_id)
    assert summary["total_operations"] == 3
    assert summary["total_tokens"] == 1700
    assert summary["total_cost"] == pytest.approx(0.0064)
    assert summary["by_provider"]["openai"] == {"cost": pytest.approx(0.006), "tokens": 1500, "operations": 2}
    assert summary["by_operation"]["function_call"]["operations"] == 1


def test_usage_summary_for_unknown_conversation_is_empty(tmp_path):
    _, ledger, _, _ = _setup(tmp_path)

    summary = ledger.usage_summary("missing")
    assert summary["total_operations"] == 0
    assert summary["total_cost"] == 0.0
    assert summary["by_provider"] == {}


def test_error_rows_without_cost_count_as_operations(tmp_path):
    _, ledger, conversation_id, message_id = _setup(tmp_path)
    _record(
        ledger,
        conversation_id,
        message_id,
        status="error",
        error_message="boom",
        total_tokens=None,
        cost_total_usd=None,
    )

    summary = ledger.usage_summary(conversation_id)
    assert summary["total_operations"] == 1
    assert summary["total_tokens"] == 0


def test_tenant_usage_summary_daily_trends(tmp_path):
    db, ledger, conversation_id, message_id = _setup(tmp_path)
    first = _record(ledger, conversation_id, message_id)
    second = _record(ledger, conversation_id, message_id)
    with db.connect() as conn:
        conn.execute("UPDATE ai_usage SET created_at = ? WHERE id = ?", ("2024-03-02T09:00:00+00:00", first))
        conn.execute("UPDATE ai_usage SET created_at = ? WHERE id = ?", ("2024-03-01T09:00:00+00:00", second))

    summary = ledger.tenant_usage_summary("tenant-1")
    assert [d["date"] for d in summary["daily_trends"]] == ["2024-03-01", "2024-03-02"]
    assert summary["daily_trends"][0]["operations"] == 1
    assert summary["total_operations"] == 2

    bounded = ledger.tenant_usage_summary("tenant-1", "2024-03-02", "2024-03-03")
    assert bounded["total_operations"] == 1

    # a single bound is ignored
    assert ledger.tenant_usage_summary("tenant-1", from_date="2024-03-02")["total_operations"] == 2


def test_delete_by_conversation(tmp_path):
    _, ledger, conversation_id, message_id = _setup(tmp_path)
    _record(ledger, conversation_id, message_id)

    ledger.delete_by_conversation(conversation_id)
    assert ledger.list_by_conversation(conversation_id) == []
    assert ledger.list_by_tenant("tenant-1") == []
