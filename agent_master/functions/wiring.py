"""Derive a model-facing function wrapper from a registry tool's input schema.

Tool parameters are renamed to short canonical names the model handles well
(``text_query`` -> ``query``); anything without a canonical name becomes
``param_<n>``. ``parameter_mapping`` records the way back.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

AI_PARAMETER_NAMES: dict[str, str] = {
    "text_query": "query",
    "csvData": "data",
    "newIntention": "intention",
    "targetAgent": "agent",
    "request_body": "body",
    "file_path": "path",
    "file_content": "content",
    "url": "url",
    "location": "location",
    "radius": "radius",
    "method": "method",
    "headers": "headers",
    "format": "format",
    "timezone": "timezone",
    "action": "action",
    "key": "key",
    "value": "value",
    "reason": "reason",
    "context": "context",
    "summary": "summary",
    "type": "type",
    "delimiter": "delimiter",
    "hasHeader": "has_header",
    "body": "body",
    "path": "path",
}

PARAMETER_DESCRIPTIONS: dict[str, str] = {
    "query": "The search query or question to process",
    "data": "The data to process or analyze",
    "intention": "The new intention or goal to set",
    "agent": "The target agent to transfer to",
    "body": "The request body or content to send",
    "path": "The file path or URL path to access",
    "content": "The content to write or process",
    "url": "The URL to access or process",
    "location": "The location or address to search",
    "radius": "The search radius in meters",
    "method": "The HTTP method to use",
    "headers": "HTTP headers to include",
    "format": "The format for the output",
    "timezone": "The timezone to use",
    "action": "The action to perform",
    "key": "The key or identifier",
    "value": "The value to set or retrieve",
    "reason": "The reason for the action",
    "context": "Additional context information",
    "summary": "A summary of the action",
    "type": "The type or category",
    "delimiter": "The delimiter character",
    "has_header": "Whether the data has a header row",
}

TEST_VALUES: dict[str, Any] = {
    "query": "test query",
    "data": "test data",
    "intention": "test intention",
    "agent": "test-agent",
    "body": {"test": "data"},
    "path": "/test/path",
    "content": "test content",
    "url": "https://example.com",
    "location": "test location",
    "radius": 1000,
    "method": "GET",
    "headers": {"Content-Type": "application/json"},
    "format": "json",
    "timezone": "UTC",
    "action": "get",
    "key": "test_key",
    "value": "test_value",
    "reason": "test reason",
    "context": "test context",
    "summary": "test summary",
    "type": "test",
    "delimiter": ",",
    "has_header": True,
}

_SUPPORTED_TYPES = {"string", "number", "boolean", "object", "array"}

# (substrings of tool_key, description suffix) checked in order for "skill" tools.
_SKILL_HINTS: list[tuple[tuple[str, ...], str]] = [
    (("rag", "search"), "Search and retrieve information from knowledge base"),
    (("http", "api"), "Make HTTP requests to external APIs"),
    (("file", "fs"), "Read or write files"),
    (("time",), "Get current time and date information"),
    (("text",), "Process and analyze text content"),
    (("data",), "Parse and process data formats"),
    (("geo", "location"), "Find locations and geographic information"),
    (("web",), "Browse web pages and extract content"),
]


@dataclass(slots=True, frozen=True)
class AIFunctionConfig:
    function_name: str
    function_description: str
    function_parameters: dict[str, Any]
    parameter_mapping: dict[str, str]


def generate_ai_function_config(tool: dict[str, Any], alias: str | None = None) -> AIFunctionConfig:
    tool_name = alias or tool["name"]
    tool_key = tool["tool_key"]
    input_schema = tool.get("input_schema") or {"type": "object", "properties": {}}
    return AIFunctionConfig(
        function_name=generate_function_name(tool_key),
        function_description=generate_function_description(tool_name, tool_key, input_schema),
        function_parameters=generate_function_parameters(input_schema),
        parameter_mapping=generate_parameter_mapping(input_schema),
    )


def generate_function_name(tool_key: str) -> str:
    """``skill.ragPlace`` -> ``rag_place``."""

    last_part = tool_key.split(".")[-1]
    return re.sub(r"([A-Z])", r"_\1", last_part).lower().lstrip("_")


def generate_function_description(tool_name: str, tool_key: str, input_schema: dict[str, Any]) -> str:
    category = tool_key.split(".")[0]
    if category == "skill":
        hint = next(
            (text for needles, text in _SKILL_HINTS if any(n in tool_key for n in needles)),
            "Execute specialized functionality",
        )
    elif category == "core":
        hint = "Core system functionality"
    elif category == "ui":
        hint = "User interface interaction"
    else:
        hint = "Tool functionality"

    description = f"{tool_name} - {hint}"
    param_count = len(input_schema.get("required") or [])
    if param_count > 0:
        description += f". Requires {param_count} parameter{'s' if param_count > 1 else ''}"
    return description


def generate_ai_parameter_name(param_name: str, index: int) -> str:
    return AI_PARAMETER_NAMES.get(param_name, f"param_{index + 1}")


def map_parameter_type(schema_type: Any) -> str:
    return schema_type if schema_type in _SUPPORTED_TYPES else "string"


def generate_parameter_description(param_name: str) -> str:
    return PARAMETER_DESCRIPTIONS.get(param_name, f"The {param_name} parameter")


def generate_function_parameters(input_schema: dict[str, Any]) -> dict[str, Any]:
    properties = input_schema.get("properties") or {}
    required = input_schema.get("required") or []

    ai_properties: dict[str, Any] = {}
    ai_required: list[str] = []
    for index, (param_name, param) in enumerate(properties.items()):
        ai_name = generate_ai_parameter_name(param_name, index)
        mapped_type = map_parameter_type(param.get("type"))
        entry: dict[str, Any] = {
            "type": mapped_type,
            "description": generate_parameter_description(param_name),
        }
        if mapped_type == "array":
            items = param.get("items") if isinstance(param.get("items"), dict) else {}
            item_type = map_parameter_type(items["type"]) if items.get("type") else "string"
            entry["items"] = {**items, "type": item_type}
        if param.get("enum"):
            entry["enum"] = param["enum"]
        ai_properties[ai_name] = entry
        if param_name in required:
            ai_required.append(ai_name)

    return {"type": "object", "properties": ai_properties, "required": ai_required}


def generate_parameter_mapping(input_schema: dict[str, Any]) -> dict[str, str]:
    properties = input_schema.get("properties") or {}
    return {
        generate_ai_parameter_name(param_name, index): param_name
        for index, param_name in enumerate(properties)
    }


def generate_test_parameters(function_parameters: dict[str, Any] | None) -> dict[str, Any]:
    """One plausible value per required AI parameter."""

    if not function_parameters or not function_parameters.get("properties"):
        return {}
    required = function_parameters.get("required") or []
    return {
        name: generate_test_value(name, param)
        for name, param in function_parameters["properties"].items()
        if name in required
    }


def generate_test_value(param_name: str, param: dict[str, Any]) -> Any:
    if param_name in TEST_VALUES:
        return TEST_VALUES[param_name]

    param_type = param.get("type")
    if param_type == "string":
        return param["enum"][0] if param.get("enum") else "test string"
    if param_type == "number":
        return 123
    if param_type == "boolean":
        return True
    if param_type == "object":
        return {"test": "object"}
    if param_type == "array":
        return ["test", "array"]
    return "test value"


def generate_test_request_body(test_params: dict[str, Any], parameter_mapping: dict[str, str] | None) -> dict[str, Any]:
    """Translate AI parameter names back to the tool's own parameter names."""

    if not parameter_mapping:
        return dict(test_params)
    return {parameter_mapping.get(name, name): value for name, value in test_params.items()}


def format_test_summary(tool_name: str, test_result: dict[str, Any], already_added: bool = False) -> str:
    """Human-readable block the assistant must relay to the user unchanged."""

    heading = "Tool Test Results (Already Added):" if already_added else "Tool Test Results:"
    status = "SUCCESS" if test_result.get("success") else "FAILED"
    return (
        f"🔧 {heading}\n"
        f"✅ Tool: {tool_name} - Test Status: {status}\n"
        f"📋 Test Parameters: {json.dumps(test_result.get('test_params') or {})}\n"
        f"📊 Test Outcome: {test_result.get('message')}\n"
        f"🎯 API Response: {json.dumps(test_result.get('api_response') or {})}"
    )
