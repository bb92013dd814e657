"""OpenAI-compatible chat completions implementation of LLMProvider."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx

from agent_master.config import Settings
from agent_master.errors import ProviderError
from agent_master.llm.base import LLMProvider
from agent_master.models import AiConfig, LLMResponse, LLMToolCall, TokenUsage

_LOGGER = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RETRY_BACKOFF_SECONDS = [5, 15, 45]


class OpenAICompatibleProvider(LLMProvider):
    """Provider speaking the ``/chat/completions`` protocol (OpenAI, OpenRouter)."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def generate(
        self,
        messages: list[dict[str, Any]],
        config: AiConfig,
        tools: list[dict[str, Any]] | None = None,
        tool_choice: str | None = None,
    ) -> LLMResponse:
        payload: dict[str, Any] = {
            "model": config.model,
            "messages": messages,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = tool_choice or "auto"

        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        base_url = self._settings.provider_base_url(config.provider)
        try:
            async with httpx.AsyncClient(base_url=base_url, timeout=timeout) as client:
                for attempt in range(_MAX_RETRIES + 1):
                    response = await client.post(
                        "/chat/completions",
                        headers={
                            "Authorization": f"Bearer {config.api_key}",
                            "Content-Type": "application/json",
                        },
                        json=payload,
                    )
                    if response.status_code == 429 and attempt < _MAX_RETRIES:
                        wait = _RETRY_BACKOFF_SECONDS[attempt]
                        _LOGGER.warning(
                            "%s rate limited (429), retrying in %ds (attempt %d/%d)",
                            config.provider,
                            wait,
                            attempt + 1,
                            _MAX_RETRIES,
                        )
                        await asyncio.sleep(wait)
                        continue
                    response.raise_for_status()
                    break
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"{config.provider} returned HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{config.provider} request failed: {exc}") from exc

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(f"No response from {config.provider}")

        choice = choices[0].get("message") or {}
        content = choice.get("content") or ""
        _LOGGER.info(
            "LLM response: finish_reason=%r content=%r tool_calls=%r",
            choices[0].get("finish_reason"),
            content[:200],
            choice.get("tool_calls"),
        )

        parsed_tool_calls: list[LLMToolCall] = []
        for tool_call in choice.get("tool_calls") or []:
            function_data = tool_call.get("function", {})
            raw_arguments = function_data.get("arguments") or "{}"
            parsed_tool_calls.append(
                LLMToolCall(
                    name=function_data.get("name", ""),
                    arguments=_safe_json_loads(raw_arguments),
                    raw_arguments=raw_arguments,
                    call_id=tool_call.get("id"),
                )
            )

        return LLMResponse(
            content=content,
            tool_calls=parsed_tool_calls,
            usage=_parse_usage(data.get("usage")),
            raw=data,
        )


def _parse_usage(usage: dict[str, Any] | None) -> TokenUsage | None:
    if not usage:
        return None
    return TokenUsage(
        input_tokens=usage.get("prompt_tokens"),
        output_tokens=usage.get("completion_tokens"),
        total_tokens=usage.get("total_tokens"),
    )


def _safe_json_loads(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
