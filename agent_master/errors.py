"""Error taxonomy shared across layers."""

from __future__ import annotations


class AgentMasterError(Exception):
    """Base class for all agent master errors."""


class ConfigurationError(AgentMasterError):
    """Tenant has no usable model provider configuration."""


class ConversationNotFoundError(AgentMasterError):
    """Conversation does not exist or has been deleted."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class ProviderError(AgentMasterError):
    """Model provider call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


class FunctionExecutionError(AgentMasterError):
    """A catalog function could not complete; reported to the model as {"error": ...}."""
