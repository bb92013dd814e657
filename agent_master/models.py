"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

MESSAGE_ROLES = ("user", "assistant", "system", "function")
CONVERSATION_STATUSES = ("active", "archived", "deleted")
USAGE_OPERATIONS = ("chat", "function_call", "embedding")
USAGE_STATUSES = ("success", "error", "rate_limited")


@dataclass(slots=True)
class AiConfig:
    """Tenant-resolved model provider configuration."""

    api_key: str
    model: str
    provider: str
    max_tokens: int = 2048
    temperature: float = 0.2


@dataclass(slots=True)
class LLMToolCall:
    """Function invocation requested by the model.

    ``raw_arguments`` keeps the provider's JSON string as received.
    """

    name: str
    arguments: dict[str, Any]
    raw_arguments: str = "{}"
    call_id: str | None = None


@dataclass(slots=True)
class TokenUsage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None


@dataclass(slots=True)
class LLMResponse:
    """Result from an LLM generation request."""

    content: str
    tool_calls: list[LLMToolCall] = field(default_factory=list)
    usage: TokenUsage | None = None
    raw: dict[str, Any] | None = None

    @property
    def function_call(self) -> LLMToolCall | None:
        """Only the first requested call is honoured per model turn."""

        return self.tool_calls[0] if self.tool_calls else None


@dataclass(slots=True)
class ExecutedCall:
    """Function call reconstructed from a persisted assistant message."""

    function_name: str
    function_args: dict[str, Any]
    function_result: Any
    status: str


@dataclass(slots=True)
class ChatResult:
    """Structured outcome of one chat turn."""

    message: str
    function_calls: list[ExecutedCall] = field(default_factory=list)
    total_function_calls: int = 0
    final_response: bool = True
    warning: str | None = None
    test_results: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if payload["warning"] is None:
            payload.pop("warning")
        return payload
