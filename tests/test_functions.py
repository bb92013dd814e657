from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent_master.db import Database
from agent_master.errors import FunctionExecutionError
from agent_master.functions.base import Function
from agent_master.functions.catalog import build_default_catalog
from agent_master.functions.registry import FunctionCatalog
from agent_master.functions.tools import AddToolToAgentFunction


def _db(tmp_path) -> Database:
    db = Database(tmp_path / "agent_master.db")
    db.initialize()
    db.upsert_agent("support", "Support Bot", public_description="Answers questions", is_default=True)
    db.upsert_agent("sales", "Sales Bot")
    db.register_tool(
        "skill.ragSearch",
        "Knowledge Search",
        category="skill",
        input_schema={
            "type": "object",
            "properties": {
                "text_query": {"type": "string"},
                "top_k": {"type": "integer"},
            },
            "required": ["text_query"],
        },
    )
    db.register_tool("core.time", "Clock", category="core")
    return db


def _tester(success: bool = True) -> MagicMock:
    tester = MagicMock()
    tester.test_agent_tool = AsyncMock(
        return_value={
            "success": success,
            "message": "Tool test successful" if success else "Tool test failed: HTTP 500: Server Error",
            "test_params": {"query": "test query"},
            "api_response": {"hits": []} if success else None,
        }
    )
    return tester


class _Echo(Function):
    name = "echo"
    description = "Echo the text back"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "text": {"type": "string"},
            "times": {"type": "integer", "default": 1},
        },
        "required": ["text"],
    }

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        return {"echo": kwargs["text"] * kwargs["times"]}


class _Broken(Function):
    name = "broken"
    description = "Always fails"
    parameters_schema: dict[str, Any] = {"type": "object", "properties": {}}

    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        raise self._exc


class TestFunctionCatalog:
    def test_rejects_duplicate_names(self):
        with pytest.raises(ValueError):
            FunctionCatalog([_Echo(), _Echo()])

    def test_tool_specs_follow_registration_order(self):
        catalog = FunctionCatalog([_Echo(), _Broken(RuntimeError("x"))])

        specs = catalog.list_tool_specs()
        assert [s["function"]["name"] for s in specs] == ["echo", "broken"]
        assert specs[0]["type"] == "function"
        assert specs[0]["function"]["parameters"]["required"] == ["text"]

    @pytest.mark.asyncio
    async def test_execute_validates_and_applies_defaults(self):
        catalog = FunctionCatalog([_Echo()])

        assert await catalog.execute("echo", {"text": "hi"}) == {"echo": "hi"}
        assert await catalog.execute("echo", {"text": "hi", "times": 2}) == {"echo": "hihi"}

    @pytest.mark.asyncio
    async def test_execute_reports_missing_required_argument(self):
        catalog = FunctionCatalog([_Echo()])

        result = await catalog.execute("echo", {})
        assert result["error"].startswith("Invalid arguments")

    @pytest.mark.asyncio
    async def test_execute_unknown_function(self):
        catalog = FunctionCatalog([_Echo()])

        assert await catalog.execute("nope", {}) == {"error": "Unknown function: nope"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc", [FunctionExecutionError("bad state"), RuntimeError("bad state")])
    async def test_execute_converts_exceptions(self, exc):
        catalog = FunctionCatalog([_Broken(exc)])

        assert await catalog.execute("broken", {}) == {"error": "bad state"}


def test_default_catalog_names(tmp_path):
    catalog = build_default_catalog(_db(tmp_path), _tester())

    assert catalog.names() == [
        "get_agent",
        "list_agents",
        "get_prompt",
        "update_prompt",
        "list_available_tools",
        "add_tool_to_agent",
    ]


@pytest.mark.asyncio
async def test_get_agent_and_list_agents(tmp_path):
    catalog = build_default_catalog(_db(tmp_path), _tester())

    agent = await catalog.execute("get_agent", {"agent_key": "support"})
    assert agent["name"] == "Support Bot"
    assert await catalog.execute("get_agent", {"agent_key": "ghost"}) == {"error": "Agent not found"}

    listed = await catalog.execute("list_agents", {})
    assert [a["agent_key"] for a in listed["agents"]] == ["support", "sales"]
    limited = await catalog.execute("list_agents", {"limit": 1})
    assert len(limited["agents"]) == 1


@pytest.mark.asyncio
async def test_update_prompt_three_times_keeps_history(tmp_path):
    db = _db(tmp_path)
    catalog = build_default_catalog(db, _tester())

    assert await catalog.execute("get_prompt", {"agent_key": "support"}) == {"error": "Prompt not found"}

    for n in range(1, 4):
        result = await catalog.execute("update_prompt", {"agent_key": "support", "content": f"Be helpful v{n}"})
        assert result["success"] is True
        assert result["message"] == f"Updated base prompt for agent support to version {n}"

    current = await catalog.execute("get_prompt", {"agent_key": "support"})
    assert current["version"] == 3
    assert current["content"] == "Be helpful v3"
    published = [v for v in db.list_prompt_versions("support", "base") if v["is_published"]]
    assert [v["version"] for v in published] == [3]


@pytest.mark.asyncio
async def test_list_available_tools(tmp_path):
    catalog = build_default_catalog(_db(tmp_path), _tester())

    everything = await catalog.execute("list_available_tools", {})
    assert [t["tool_key"] for t in everything["tools"]] == ["core.time", "skill.ragSearch"]
    skills = await catalog.execute("list_available_tools", {"category": "skill"})
    assert [t["tool_key"] for t in skills["tools"]] == ["skill.ragSearch"]


@pytest.mark.asyncio
async def test_add_tool_to_agent_wires_function_and_tests_it(tmp_path):
    db = _db(tmp_path)
    tester = _tester()
    function = AddToolToAgentFunction(db, tester)

    result = await function.run(agent_key="support", tool_key="skill.ragSearch")

    assert result["success"] is True
    assert result["message"].endswith("with AI function parameters and verified functionality")
    agent_tool = result["agent_tool"]
    assert agent_tool["alias"] == "Knowledge Search"
    assert agent_tool["position"] == 1
    assert agent_tool["function_name"] == "rag_search"
    assert agent_tool["parameter_mapping"] == {"query": "text_query", "param_2": "top_k"}
    assert agent_tool["function_parameters"]["required"] == ["query"]
    assert "Test Status: SUCCESS" in result["test_summary"]
    tester.test_agent_tool.assert_awaited_once()


@pytest.mark.asyncio
async def test_add_tool_to_agent_twice_keeps_one_row(tmp_path):
    db = _db(tmp_path)
    tester = _tester()
    function = AddToolToAgentFunction(db, tester)

    await function.run(agent_key="support", tool_key="skill.ragSearch", alias="kb")
    again = await function.run(agent_key="support", tool_key="skill.ragSearch", alias="kb")

    assert again["error"] == "Tool skill.ragSearch is already added to agent support"
    assert again["test_result"]["success"] is True
    assert "(Already Added)" in again["test_summary"]
    assert len(db.list_agent_tools("support")) == 1
    assert tester.test_agent_tool.await_count == 2


@pytest.mark.asyncio
async def test_add_tool_to_agent_reports_failed_test(tmp_path):
    db = _db(tmp_path)
    function = AddToolToAgentFunction(db, _tester(success=False))

    result = await function.run(agent_key="sales", tool_key="skill.ragSearch")

    assert result["success"] is True
    assert result["message"].endswith("but test failed")
    assert "Test Status: FAILED" in result["test_summary"]


@pytest.mark.asyncio
async def test_add_tool_to_agent_unknown_agent_or_tool(tmp_path):
    db = _db(tmp_path)
    tester = _tester()
    function = AddToolToAgentFunction(db, tester)
    catalog = build_default_catalog(db, tester)

    with pytest.raises(FunctionExecutionError, match="Agent not found: ghost"):
        await function.run(agent_key="ghost", tool_key="core.time")
    assert await catalog.execute("add_tool_to_agent", {"agent_key": "ghost", "tool_key": "core.time"}) == {
        "error": "Agent not found: ghost"
    }
    assert await catalog.execute("add_tool_to_agent", {"agent_key": "support", "tool_key": "core.nope"}) == {
        "error": "Tool not found: core.nope"
    }
    tester.test_agent_tool.assert_not_awaited()


@pytest.mark.asyncio
async def test_not_found_lookups_raise_and_catalog_reports_error(tmp_path):
    db = _db(tmp_path)
    catalog = build_default_catalog(db, _tester())

    with pytest.raises(FunctionExecutionError, match="Prompt not found"):
        await catalog.get("get_prompt").run(agent_key="support")
    with pytest.raises(FunctionExecutionError, match="Agent not found"):
        await catalog.get("get_agent").run(agent_key="ghost")
    assert await catalog.execute("get_prompt", {"agent_key": "support"}) == {"error": "Prompt not found"}


@pytest.mark.asyncio
async def test_catalog_writes_record_tenant(tmp_path):
    db = _db(tmp_path)
    catalog = build_default_catalog(db, _tester(), tenant_id="tenant-7")

    updated = await catalog.execute("update_prompt", {"agent_key": "support", "content": "Be brief."})
    added = await catalog.execute("add_tool_to_agent", {"agent_key": "support", "tool_key": "core.time"})

    assert updated["prompt"]["tenant_id"] == "tenant-7"
    assert added["agent_tool"]["tenant_id"] == "tenant-7"
