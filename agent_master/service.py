"""Public facade composing storage, the function catalog and the chat loop."""

from __future__ import annotations

import logging
from typing import Any

from agent_master.config import Settings, resolve_ai_config
from agent_master.conversation_store import ConversationStore
from agent_master.db import Database
from agent_master.errors import ConversationNotFoundError
from agent_master.functions.catalog import build_default_catalog
from agent_master.functions.registry import FunctionCatalog
from agent_master.llm.base import LLMProvider
from agent_master.llm.openai_compat import OpenAICompatibleProvider
from agent_master.models import AiConfig, ChatResult
from agent_master.orchestrator import OrchestrationLoop
from agent_master.tool_tester import ToolTester
from agent_master.usage_ledger import UsageLedger

LOGGER = logging.getLogger(__name__)


class AgentMasterService:
    """Entry point used by the console and by any transport in front of it."""

    def __init__(
        self,
        db: Database,
        settings: Settings,
        llm: LLMProvider | None = None,
        catalog: FunctionCatalog | None = None,
    ) -> None:
        self._db = db
        self._settings = settings
        self.conversations = ConversationStore(db)
        self.usage = UsageLedger(db)
        self._llm = llm or OpenAICompatibleProvider(settings)
        self._catalog = catalog or build_default_catalog(
            db,
            ToolTester(settings.app_url, timeout_seconds=settings.request_timeout_seconds),
            tenant_id=settings.default_tenant_id,
        )
        self._loop = OrchestrationLoop(self.conversations, self.usage, self._llm, self._catalog)

    @property
    def catalog(self) -> FunctionCatalog:
        return self._catalog

    def get_tenant_ai_config(self, tenant_id: str) -> AiConfig:
        """Resolve the generating model and credential for a tenant.

        Raises:
            ConfigurationError: no API key is configured for the tenant's provider.
        """
        return resolve_ai_config(self._db.get_tenant_settings(tenant_id), self._settings)

    def create_conversation(
        self,
        tenant_id: str,
        user_id: str,
        title: str,
        session_id: str | None = None,
        agent_key: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        conversation_id = self.conversations.create_conversation(
            tenant_id, user_id, title, session_id=session_id, agent_key=agent_key, metadata=metadata
        )
        LOGGER.info("Created conversation %s for tenant %s", conversation_id, tenant_id)
        return conversation_id

    def get_conversation(self, conversation_id: str) -> dict[str, Any]:
        conversation = self.conversations.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return {
            "conversation": conversation,
            "messages": self.conversations.list_messages(conversation_id),
            "memory": {},
        }

    def get_conversation_messages(
        self, conversation_id: str, limit: int = 100, offset: int = 0
    ) -> list[dict[str, Any]]:
        return self.conversations.list_messages(conversation_id, limit=limit, offset=offset)

    async def chat(
        self,
        tenant_id: str,
        user_id: str,
        conversation_id: str,
        user_message: str,
        agent_key: str | None = None,
    ) -> ChatResult:
        ai_config = self.get_tenant_ai_config(tenant_id)
        return await self._loop.chat(
            tenant_id=tenant_id,
            user_id=user_id,
            conversation_id=conversation_id,
            user_message=user_message,
            ai_config=ai_config,
            agent_key=agent_key,
        )

    def add_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        function_name: str | None = None,
        function_args: Any = None,
        function_result: Any = None,
        tokens_used: int | None = None,
    ) -> int:
        return self.conversations.add_message(
            conversation_id,
            role=role,
            content=content,
            function_name=function_name,
            function_args=function_args,
            function_result=function_result,
            tokens_used=tokens_used,
        )

    def log_ai_usage(self, **fields: Any) -> int:
        """Append a usage row; see ``UsageLedger.record`` for the accepted fields."""

        return self.usage.record(**fields)

    def get_usage_summary(self, conversation_id: str) -> dict[str, Any]:
        return self.usage.usage_summary(conversation_id)

    def get_tenant_usage_summary(
        self, tenant_id: str, from_date: str | None = None, to_date: str | None = None
    ) -> dict[str, Any]:
        return self.usage.tenant_usage_summary(tenant_id, from_date=from_date, to_date=to_date)

    def list_conversations(self, tenant_id: str, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        return self.conversations.list_by_tenant(tenant_id, limit=limit, offset=offset)

    def list_conversations_by_user(self, user_id: str, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        return self.conversations.list_by_user(user_id, limit=limit, offset=offset)

    def update_conversation(self, conversation_id: str, **updates: Any) -> None:
        self.conversations.update_conversation(conversation_id, **updates)

    def archive_conversation(self, conversation_id: str) -> None:
        self.conversations.archive(conversation_id)

    def delete_conversation(self, conversation_id: str) -> None:
        self.conversations.delete_conversation(conversation_id)

    def get_conversation_history(self, conversation_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self.conversations.get_conversation_history(conversation_id, limit=limit)

    def get_recent_messages(self, conversation_id: str, count: int = 10) -> list[dict[str, Any]]:
        return self.conversations.get_recent_messages(conversation_id, count=count)

    def get_token_usage(self, conversation_id: str) -> int:
        return self.conversations.get_token_usage(conversation_id)

    def get_function_calls(self, conversation_id: str) -> list[dict[str, Any]]:
        return self.conversations.get_function_calls(conversation_id)
