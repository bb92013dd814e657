"""Fixed catalog of functions the model can call."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Iterable

from pydantic import ValidationError, create_model

from agent_master.errors import FunctionExecutionError
from agent_master.functions.base import Function

LOGGER = logging.getLogger(__name__)


class FunctionCatalog:
    """Immutable name -> function registry built once at startup.

    ``execute`` never raises: unknown names, invalid arguments and failures
    inside a function all come back as ``{"error": message}``.
    """

    def __init__(self, functions: Iterable[Function]) -> None:
        by_name: dict[str, Function] = {}
        for function in functions:
            if function.name in by_name:
                raise ValueError(f"Duplicate function name: {function.name}")
            by_name[function.name] = function
        self._functions = MappingProxyType(by_name)

    def names(self) -> list[str]:
        return list(self._functions)

    def get(self, name: str) -> Function | None:
        return self._functions.get(name)

    def list_tool_specs(self) -> list[dict[str, Any]]:
        return [{"type": "function", "function": function.spec()} for function in self._functions.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        function = self._functions.get(name)
        if function is None:
            LOGGER.warning("Model requested unknown function %r", name)
            return {"error": f"Unknown function: {name}"}

        try:
            validated = _validate_json_schema(function.parameters_schema, arguments)
            return await function.run(**validated)
        except (ValueError, FunctionExecutionError) as exc:
            LOGGER.warning("Function %s failed: %s", name, exc)
            return {"error": str(exc)}
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Error executing function %s", name)
            return {"error": str(exc)}


def _validate_json_schema(schema: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    props = schema.get("properties", {})
    required = set(schema.get("required", []))
    fields: dict[str, tuple[Any, Any]] = {}
    for name, config in props.items():
        typ = _python_type(config.get("type", "string"))
        if name in required:
            fields[name] = (typ, ...)
        else:
            fields[name] = (typ | None, config.get("default"))

    model = create_model("FunctionInputModel", **fields)
    try:
        value = model(**payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid arguments: {exc}") from exc
    return value.model_dump(exclude_none=True)


def _python_type(schema_type: str) -> type[Any]:
    mapping: dict[str, type[Any]] = {
        "string": str,
        "integer": int,
        "number": float,
        "boolean": bool,
        "object": dict,
        "array": list,
    }
    return mapping.get(schema_type, str)
