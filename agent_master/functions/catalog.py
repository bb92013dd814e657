"""Default function catalog wiring."""

from __future__ import annotations

from agent_master.db import Database
from agent_master.functions.agents import GetAgentFunction, ListAgentsFunction
from agent_master.functions.prompts import GetPromptFunction, UpdatePromptFunction
from agent_master.functions.registry import FunctionCatalog
from agent_master.functions.tools import AddToolToAgentFunction, ListAvailableToolsFunction
from agent_master.tool_tester import ToolTester


def build_default_catalog(db: Database, tester: ToolTester, tenant_id: str | None = None) -> FunctionCatalog:
    """Agent, prompt and tool management functions in their advertised order."""

    return FunctionCatalog(
        [
            GetAgentFunction(db),
            ListAgentsFunction(db),
            GetPromptFunction(db),
            UpdatePromptFunction(db, tenant_id=tenant_id),
            ListAvailableToolsFunction(db),
            AddToolToAgentFunction(db, tester, tenant_id=tenant_id),
        ]
    )
