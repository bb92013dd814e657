"""Bounded tool-calling conversation loop."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from agent_master.conversation_store import ConversationStore
from agent_master.errors import ConversationNotFoundError, ProviderError
from agent_master.functions.registry import FunctionCatalog
from agent_master.llm.base import LLMProvider
from agent_master.models import AiConfig, ChatResult, ExecutedCall, LLMResponse, LLMToolCall
from agent_master.pricing import estimate
from agent_master.prompts import build_system_prompt
from agent_master.usage_ledger import UsageLedger

LOGGER = logging.getLogger(__name__)

MAX_DEPTH = 10
MAX_FUNCTION_CALLS = 3
TOOLS_DISABLED_AFTER = 2
CONTEXT_WINDOW_MESSAGES = 10

DEPTH_MESSAGE = (
    "I've reached the maximum number of function calls. "
    "Please try a simpler request or break it down into smaller steps."
)
COMPLETION_MESSAGE = (
    "I've completed the task with the available functions. Please let me know if you need anything else."
)

WARNING_DEPTH = "Maximum recursive depth reached"
WARNING_HARD_LIMIT = "HARD LIMIT: Maximum 3 function calls reached"
WARNING_TOOLS_DISABLED = "HARD LIMIT: Function calling disabled after 2 calls"
WARNING_DUPLICATE = "Duplicate function call detected and skipped"
WARNING_PROVIDER = "Model provider error"


@dataclass(slots=True, frozen=True)
class LoopState:
    """Per-``chat()`` accumulator; each executed call yields a new state."""

    depth: int = 0
    executed_keys: frozenset[str] = frozenset()

    def after_call(self, key: str) -> LoopState:
        return LoopState(depth=self.depth + 1, executed_keys=self.executed_keys | {key})


@dataclass(slots=True, frozen=True)
class _Turn:
    """Assistant turn as persisted, or the provider failure that replaced it."""

    message_id: int
    response: LLMResponse | None
    error: ProviderError | None = None


class OrchestrationLoop:
    """Drives one user turn to a final answer through at most a few function calls."""

    def __init__(
        self,
        conversations: ConversationStore,
        usage: UsageLedger,
        llm: LLMProvider,
        catalog: FunctionCatalog,
        context_window_messages: int = CONTEXT_WINDOW_MESSAGES,
        max_depth: int = MAX_DEPTH,
        max_function_calls: int = MAX_FUNCTION_CALLS,
        tools_disabled_after: int = TOOLS_DISABLED_AFTER,
    ) -> None:
        self._conversations = conversations
        self._usage = usage
        self._llm = llm
        self._catalog = catalog
        self._context_window_messages = context_window_messages
        self._max_depth = max_depth
        self._max_function_calls = max_function_calls
        self._tools_disabled_after = tools_disabled_after

    async def chat(
        self,
        tenant_id: str,
        user_id: str,
        conversation_id: str,
        user_message: str,
        ai_config: AiConfig,
        agent_key: str | None = None,
    ) -> ChatResult:
        """Handle one user message and return the structured final answer.

        Raises:
            ConversationNotFoundError: the conversation is missing or deleted.
        """
        conversation = self._conversations.get_conversation(conversation_id)
        if conversation is None or conversation["status"] == "deleted":
            raise ConversationNotFoundError(conversation_id)
        agent_key = agent_key or conversation.get("agent_key")

        turn_start_id = self._conversations.add_message(conversation_id, role="user", content=user_message)
        LOGGER.info("Chat turn for conversation %s (tenant=%s user=%s)", conversation_id, tenant_id, user_id)

        state = LoopState()
        while True:
            if state.depth >= self._max_depth:
                LOGGER.warning("Maximum depth (%d) reached for conversation %s", self._max_depth, conversation_id)
                message = self._last_assistant_text(conversation_id, turn_start_id) or DEPTH_MESSAGE
                return self._result(conversation_id, message, WARNING_DEPTH)

            if len(state.executed_keys) >= self._max_function_calls:
                LOGGER.warning(
                    "Function call limit (%d) reached for conversation %s",
                    self._max_function_calls,
                    conversation_id,
                )
                return self._result(conversation_id, COMPLETION_MESSAGE, WARNING_HARD_LIMIT)

            tools_enabled = len(state.executed_keys) < self._tools_disabled_after
            turn = await self._call_model(conversation_id, tenant_id, ai_config, agent_key, tools_enabled)
            if turn.error is not None:
                return self._result(conversation_id, _provider_failure_text(turn.error), WARNING_PROVIDER)

            response = turn.response
            if not tools_enabled:
                return self._result(conversation_id, response.content, WARNING_TOOLS_DISABLED)

            call = response.function_call
            if call is None:
                return self._result(conversation_id, response.content)

            key = call_key(call)
            if key in state.executed_keys:
                LOGGER.warning("Duplicate function call detected: %s. Skipping.", key)
                return self._result(conversation_id, response.content, WARNING_DUPLICATE)

            state = state.after_call(key)
            await self._execute_call(conversation_id, turn.message_id, call)

    async def _call_model(
        self,
        conversation_id: str,
        tenant_id: str,
        ai_config: AiConfig,
        agent_key: str | None,
        tools_enabled: bool,
    ) -> _Turn:
        history = self._conversations.get_recent_messages(conversation_id, self._context_window_messages)
        messages = [{"role": "system", "content": build_system_prompt(agent_key)}, *to_provider_messages(history)]
        tools = self._catalog.list_tool_specs() if tools_enabled else None

        start = datetime.now(timezone.utc)
        started = time.perf_counter()
        try:
            response = await self._llm.generate(
                messages, ai_config, tools=tools, tool_choice="auto" if tools else None
            )
        except ProviderError as exc:
            LOGGER.error("Model call failed for conversation %s: %s", conversation_id, exc)
            message_id = self._conversations.add_message(
                conversation_id, role="assistant", content=_provider_failure_text(exc)
            )
            self._record_usage(
                conversation_id,
                message_id,
                tenant_id,
                ai_config,
                response=None,
                start=start,
                started=started,
                status="rate_limited" if exc.rate_limited else "error",
                error_message=str(exc),
            )
            return _Turn(message_id=message_id, response=None, error=exc)

        call = response.function_call if tools_enabled else None
        message_id = self._conversations.add_message(
            conversation_id,
            role="assistant",
            content=response.content,
            function_name=call.name if call else None,
            function_args=call.arguments if call else None,
            tokens_used=response.usage.total_tokens if response.usage else None,
        )
        if response.usage is not None:
            self._record_usage(conversation_id, message_id, tenant_id, ai_config, response, start, started)
        return _Turn(message_id=message_id, response=response)

    async def _execute_call(self, conversation_id: str, assistant_message_id: int, call: LLMToolCall) -> None:
        LOGGER.info("Executing function %s for conversation %s", call.name, conversation_id)
        result = await self._catalog.execute(call.name, dict(call.arguments))
        self._conversations.attach_function_result(assistant_message_id, result)
        self._conversations.add_message(
            conversation_id,
            role="function",
            content=json.dumps(result),
            function_name=call.name,
            function_result=result,
        )

    def _record_usage(
        self,
        conversation_id: str,
        message_id: int,
        tenant_id: str,
        ai_config: AiConfig,
        response: LLMResponse | None,
        start: datetime,
        started: float,
        status: str = "success",
        error_message: str | None = None,
    ) -> None:
        usage = response.usage if response else None
        cost = estimate(usage, ai_config.model)
        call = response.function_call if response else None
        try:
            self._usage.record(
                conversation_id=conversation_id,
                message_id=message_id,
                tenant_id=tenant_id,
                operation="chat",
                provider=ai_config.provider,
                model=ai_config.model,
                start_time=start.isoformat(),
                end_time=datetime.now(timezone.utc).isoformat(),
                latency_ms=int((time.perf_counter() - started) * 1000),
                input_tokens=usage.input_tokens if usage else None,
                output_tokens=usage.output_tokens if usage else None,
                total_tokens=usage.total_tokens if usage else None,
                pricing_input_per_1k=cost.rate_per_1k,
                pricing_output_per_1k=cost.rate_per_1k,
                pricing_total_per_1k=cost.rate_per_1k,
                cost_input_usd=cost.input_usd,
                cost_output_usd=cost.output_usd,
                cost_total_usd=cost.total_usd,
                status=status,
                error_message=error_message,
                function_calls=[{"name": call.name, "arguments": call.raw_arguments}] if call else None,
            )
        except Exception:  # noqa: BLE001
            LOGGER.exception("Error logging AI usage for conversation %s (continuing)", conversation_id)

    def _result(self, conversation_id: str, message: str, warning: str | None = None) -> ChatResult:
        messages = self._conversations.list_messages(conversation_id, limit=-1)
        function_calls = executed_calls(messages)
        return ChatResult(
            message=message,
            function_calls=function_calls,
            total_function_calls=len(function_calls),
            warning=warning,
            test_results=extract_test_results(messages),
        )

    def _last_assistant_text(self, conversation_id: str, after_message_id: int) -> str:
        """Latest non-empty assistant text produced after ``after_message_id``."""

        recent = self._conversations.get_recent_messages(conversation_id, self._context_window_messages)
        return next(
            (
                m["content"]
                for m in reversed(recent)
                if m["id"] > after_message_id and m["role"] == "assistant" and m["content"]
            ),
            "",
        )


def call_key(call: LLMToolCall) -> str:
    """Deduplication key: function name plus canonical JSON of its arguments."""

    return f"{call.name}_{json.dumps(call.arguments, sort_keys=True, separators=(',', ':'))}"


def to_provider_messages(history: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Map stored messages to chat-completions messages.

    Function results become ``tool`` messages tied to the preceding assistant
    request. Pairs split by the context window, and requests that were never
    executed, are sent as plain text so the provider sees a valid sequence.
    """
    out: list[dict[str, Any]] = []
    for index, msg in enumerate(history):
        role = msg["role"]
        if role == "function":
            prev = history[index - 1] if index > 0 else None
            if not _is_pair(prev, msg):
                continue
            out.append({"role": "tool", "tool_call_id": _tool_call_id(prev), "content": msg["content"]})
        elif role == "assistant" and msg.get("function_name"):
            nxt = history[index + 1] if index + 1 < len(history) else None
            if _is_pair(msg, nxt):
                out.append(
                    {
                        "role": "assistant",
                        "content": msg["content"] or None,
                        "tool_calls": [
                            {
                                "id": _tool_call_id(msg),
                                "type": "function",
                                "function": {
                                    "name": msg["function_name"],
                                    "arguments": json.dumps(msg.get("function_args") or {}),
                                },
                            }
                        ],
                    }
                )
            else:
                out.append({"role": "assistant", "content": msg["content"]})
        else:
            out.append({"role": role, "content": msg["content"]})
    return out


def executed_calls(messages: list[dict[str, Any]]) -> list[ExecutedCall]:
    """Every function request recorded on this conversation's assistant messages."""

    return [
        ExecutedCall(
            function_name=msg["function_name"],
            function_args=_as_dict(msg.get("function_args")),
            function_result=msg.get("function_result"),
            status="completed" if msg.get("function_result") is not None else "pending",
        )
        for msg in messages
        if msg["role"] == "assistant" and msg.get("function_name")
    ]


def extract_test_results(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Post-creation test outcomes reported by ``add_tool_to_agent`` calls."""

    results: list[dict[str, Any]] = []
    for msg in messages:
        if msg["role"] != "function" or msg.get("function_name") != "add_tool_to_agent":
            continue
        payload = msg.get("function_result")
        if not isinstance(payload, dict) or not payload.get("test_result"):
            continue
        test_result = payload["test_result"]
        results.append(
            {
                "tool_name": (payload.get("agent_tool") or {}).get("alias") or "Unknown Tool",
                "test_success": test_result.get("success"),
                "test_message": test_result.get("message"),
                "test_params": test_result.get("test_params"),
                "api_response": test_result.get("api_response"),
                "error": test_result.get("error"),
                "test_summary": payload.get("test_summary"),
            }
        )
    return results


def _is_pair(assistant: dict[str, Any] | None, function: dict[str, Any] | None) -> bool:
    return (
        assistant is not None
        and function is not None
        and assistant["role"] == "assistant"
        and function["role"] == "function"
        and assistant.get("function_name") == function.get("function_name")
    )


def _tool_call_id(assistant: dict[str, Any]) -> str:
    return f"call_{assistant['id']}"


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _provider_failure_text(exc: ProviderError) -> str:
    return f"I couldn't get a response from the language model: {exc}. Please try again shortly."
