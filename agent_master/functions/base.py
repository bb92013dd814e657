"""Catalog function contracts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Function(ABC):
    """Base class for operations the model may invoke.

    ``parameters_schema`` is the JSON-schema object advertised to the model and
    used to validate arguments before ``run`` is called.
    """

    name: str
    description: str
    parameters_schema: dict[str, Any]

    @abstractmethod
    async def run(self, **kwargs: Any) -> dict[str, Any]:
        """Execute with validated arguments and return a JSON-serializable payload."""

    def spec(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters_schema}
