"""Post-creation smoke test for tools wired onto an agent."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from agent_master.functions.wiring import generate_test_parameters, generate_test_request_body

LOGGER = logging.getLogger(__name__)

TEST_EXECUTE_PATH = "/api/admin/tool-test/execute"


class ToolTester:
    """Calls the admin backend's tool test endpoint with synthesized arguments."""

    def __init__(self, app_url: str, timeout_seconds: float = 30.0) -> None:
        self._app_url = app_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    async def test_agent_tool(self, agent_tool: dict[str, Any], tool: dict[str, Any]) -> dict[str, Any]:
        """Exercise a freshly wired tool; never raises.

        Returns ``{success, message, test_params, api_response, error?}``.
        """
        try:
            test_params = generate_test_parameters(agent_tool.get("function_parameters"))
            if not test_params:
                return {
                    "success": True,
                    "message": "Tool created successfully - no parameters to test",
                    "test_params": {},
                    "api_response": None,
                }

            request_body = generate_test_request_body(test_params, agent_tool.get("parameter_mapping"))
            outcome = await self.execute(tool, request_body)
            result = {
                "success": outcome["success"],
                "message": "Tool test successful" if outcome["success"] else f"Tool test failed: {outcome.get('error')}",
                "test_params": test_params,
                "api_response": outcome.get("response"),
            }
            if outcome.get("error"):
                result["error"] = outcome["error"]
            return result
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Error testing tool %s after creation", tool.get("tool_key"))
            return {
                "success": False,
                "message": f"Tool test failed: {exc}",
                "test_params": {},
                "api_response": None,
                "error": str(exc),
            }

    async def execute(self, tool: dict[str, Any], request_body: dict[str, Any]) -> dict[str, Any]:
        """POST ``{toolId, testParams, toolConfig}`` and normalise the reply."""

        tool_config = {
            "id": f"temp-{int(time.time() * 1000)}",
            "tool_key": tool["tool_key"],
            "function_name": tool.get("name") or "testFunction",
            "parameter_mapping": None,
            "arg_defaults": {},
            "overrides": {},
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.post(
                    f"{self._app_url}{TEST_EXECUTE_PATH}",
                    headers={"Content-Type": "application/json", "X-User-ID": "test-user"},
                    json={"toolId": tool_config["id"], "testParams": request_body, "toolConfig": tool_config},
                )
                if resp.status_code != 200:
                    return {
                        "success": False,
                        "error": f"HTTP {resp.status_code}: {resp.reason_phrase}",
                        "response": None,
                    }
                data = resp.json()
        except httpx.HTTPError as exc:
            LOGGER.warning("Tool test request for %s failed: %s", tool["tool_key"], exc)
            return {"success": False, "error": str(exc) or type(exc).__name__, "response": None}

        return {
            "success": bool(data.get("success")),
            "response": data.get("result"),
            "execution_time": data.get("executionTime"),
            "parameter_mapping": data.get("parameterMapping"),
            "error": data.get("error"),
        }
