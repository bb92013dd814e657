"""Tool registry functions."""

from __future__ import annotations

import logging
from typing import Any

from agent_master.db import Database
from agent_master.errors import FunctionExecutionError
from agent_master.functions.base import Function
from agent_master.functions.wiring import format_test_summary, generate_ai_function_config
from agent_master.tool_tester import ToolTester

LOGGER = logging.getLogger(__name__)


class ListAvailableToolsFunction(Function):
    """List enabled registry tools."""

    name = "list_available_tools"
    description = "List all available tools that can be added to agents"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "category": {"type": "string", "description": "Filter tools by category (optional)"},
        },
    }

    def __init__(self, db: Database) -> None:
        self._db = db

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        return {"tools": self._db.list_enabled_tools(kwargs.get("category"))}


class AddToolToAgentFunction(Function):
    """Wire a registry tool onto an agent and smoke-test it.

    A given ``(agent_key, tool_key)`` pair is only ever inserted once; repeat
    requests re-run the test against the existing row and report an error.
    """

    name = "add_tool_to_agent"
    description = "Add a tool to a specific agent"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "agent_key": {"type": "string", "description": "The key of the agent to add the tool to"},
            "tool_key": {"type": "string", "description": "The key of the tool to add"},
            "alias": {"type": "string", "description": "Optional friendly name for the tool"},
            "arg_defaults": {"type": "object", "description": "Default parameter values for the tool"},
        },
        "required": ["agent_key", "tool_key"],
    }

    def __init__(self, db: Database, tester: ToolTester, tenant_id: str | None = None) -> None:
        self._db = db
        self._tester = tester
        self._tenant_id = tenant_id

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        agent_key = kwargs["agent_key"]
        tool_key = kwargs["tool_key"]
        alias = kwargs.get("alias")

        if self._db.get_agent(agent_key) is None:
            raise FunctionExecutionError(f"Agent not found: {agent_key}")

        tool = self._db.get_enabled_tool(tool_key)
        if tool is None:
            raise FunctionExecutionError(f"Tool not found: {tool_key}")

        existing = self._db.get_agent_tool(agent_key, tool_key)
        if existing is not None:
            test_result = await self._tester.test_agent_tool(existing, tool)
            return {
                "error": f"Tool {tool_key} is already added to agent {agent_key}",
                "agent_tool": existing,
                "test_result": test_result,
                "test_summary": format_test_summary(tool["name"], test_result, already_added=True),
            }

        config = generate_ai_function_config(tool, alias)
        created = self._db.insert_agent_tool(
            agent_key=agent_key,
            tool_key=tool_key,
            alias=alias or tool["name"],
            arg_defaults=kwargs.get("arg_defaults"),
            tenant_id=self._tenant_id,
            function_name=config.function_name,
            function_description=config.function_description,
            function_parameters=config.function_parameters,
            parameter_mapping=config.parameter_mapping,
        )
        LOGGER.info("Added tool %s to agent %s at position %s", tool_key, agent_key, created["position"])

        test_result = await self._tester.test_agent_tool(created, tool)
        verdict = " and verified functionality" if test_result["success"] else " but test failed"
        return {
            "success": True,
            "agent_tool": created,
            "test_result": test_result,
            "message": f"Successfully added tool {tool['name']} to agent {agent_key} with AI function parameters{verdict}",
            "test_summary": format_test_summary(tool["name"], test_result),
        }
