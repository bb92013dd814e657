"""Agent lookup functions."""

from __future__ import annotations

from typing import Any

from agent_master.db import Database
from agent_master.errors import FunctionExecutionError
from agent_master.functions.base import Function


class GetAgentFunction(Function):
    """Fetch a single agent row."""

    name = "get_agent"
    description = "Get details of a specific agent"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "agent_key": {"type": "string", "description": "The key of the agent to retrieve"},
        },
        "required": ["agent_key"],
    }

    def __init__(self, db: Database) -> None:
        self._db = db

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        agent = self._db.get_agent(kwargs["agent_key"])
        if agent is None:
            raise FunctionExecutionError("Agent not found")
        return agent


class ListAgentsFunction(Function):
    """List agents, default agent first."""

    name = "list_agents"
    description = "List all available agents"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "limit": {
                "type": "integer",
                "description": "Maximum number of agents to return",
                "default": 50,
            },
        },
    }

    def __init__(self, db: Database) -> None:
        self._db = db

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        limit = int(kwargs.get("limit") or 50)
        return {"agents": self._db.list_agents(limit=limit)}
