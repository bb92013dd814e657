"""Best-effort cost estimates for model usage.

Rates are USD per 1k tokens and are never reconciled with provider invoices.
"""

from __future__ import annotations

from dataclasses import dataclass

from agent_master.models import TokenUsage

DEFAULT_RATE_PER_1K = 0.002

COST_PER_1K_TOKENS: dict[str, float] = {
    "gpt-4o": 0.005,
    "gpt-4o-mini": 0.00015,
    "gpt-4": 0.03,
    "gpt-3.5-turbo": 0.002,
}


@dataclass(slots=True, frozen=True)
class CostEstimate:
    rate_per_1k: float
    input_usd: float | None
    output_usd: float | None
    total_usd: float | None


def rate_for_model(model: str) -> float:
    return COST_PER_1K_TOKENS.get(model, DEFAULT_RATE_PER_1K)


def calculate_cost(total_tokens: int, model: str) -> float:
    """Return ``total_tokens / 1000 * rate`` for the model (default rate if unknown)."""

    return total_tokens / 1000 * rate_for_model(model)


def estimate(usage: TokenUsage | None, model: str) -> CostEstimate:
    rate = rate_for_model(model)
    if usage is None:
        return CostEstimate(rate_per_1k=rate, input_usd=None, output_usd=None, total_usd=None)
    return CostEstimate(
        rate_per_1k=rate,
        input_usd=_cost(usage.input_tokens, rate),
        output_usd=_cost(usage.output_tokens, rate),
        total_usd=_cost(usage.total_tokens, rate),
    )


def _cost(tokens: int | None, rate: float) -> float | None:
    if tokens is None:
        return None
    return tokens / 1000 * rate
