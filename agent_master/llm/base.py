"""LLM provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from agent_master.models import AiConfig, LLMResponse


class LLMProvider(ABC):
    """Abstract model gateway used by the orchestration loop."""

    @abstractmethod
    async def generate(
        self,
        messages: list[dict[str, Any]],
        config: AiConfig,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
    ) -> LLMResponse:
        """Generate a model response.

        Raises:
            ProviderError: the provider could not produce a response.
        """
