"""Agent prompt functions.

Prompts are versioned per ``(agent_key, category)``. Updates never edit a row:
the published version is superseded and a new one appended.
"""

from __future__ import annotations

from typing import Any

from agent_master.db import Database
from agent_master.errors import FunctionExecutionError
from agent_master.functions.base import Function

_CATEGORY_DESCRIPTION = "The category of prompt to {verb} (base, initial_system)"


class GetPromptFunction(Function):
    """Return the highest version of a prompt."""

    name = "get_prompt"
    description = "Get the current prompt for a specific agent"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "agent_key": {"type": "string", "description": "The key of the agent to get the prompt for"},
            "category": {
                "type": "string",
                "description": _CATEGORY_DESCRIPTION.format(verb="retrieve"),
                "default": "base",
            },
        },
        "required": ["agent_key"],
    }

    def __init__(self, db: Database) -> None:
        self._db = db

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        prompt = self._db.get_latest_prompt(kwargs["agent_key"], kwargs.get("category") or "base")
        if prompt is None:
            raise FunctionExecutionError("Prompt not found")
        return prompt


class UpdatePromptFunction(Function):
    """Publish a new prompt version, keeping all earlier versions."""

    name = "update_prompt"
    description = (
        "Update or create a prompt for a specific agent. This function will automatically handle "
        "existing prompts by updating them if they exist, or creating new ones if they don't."
    )
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "agent_key": {"type": "string", "description": "The key of the agent to update"},
            "category": {
                "type": "string",
                "description": _CATEGORY_DESCRIPTION.format(verb="update"),
                "default": "base",
            },
            "content": {"type": "string", "description": "The new prompt content"},
        },
        "required": ["agent_key", "content"],
    }

    def __init__(self, db: Database, tenant_id: str | None = None) -> None:
        self._db = db
        self._tenant_id = tenant_id

    async def run(self, **kwargs: Any) -> dict[str, Any]:
        agent_key = kwargs["agent_key"]
        category = kwargs.get("category") or "base"
        prompt = self._db.publish_prompt(agent_key, category, kwargs["content"], tenant_id=self._tenant_id)
        return {
            "success": True,
            "prompt": prompt,
            "message": f"Updated {category} prompt for agent {agent_key} to version {prompt['version']}",
        }
