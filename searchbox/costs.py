"""
Cost estimation: know roughly what a turn costs.

Token counts are a character heuristic (~4 chars per token), not a real
tokenizer, so every figure here is approximate by construction. Rates are
per 1000 tokens, keyed by model display name (see catalog.display_name).
"""

from __future__ import annotations

import math
from dataclasses import dataclass

MODEL_COSTS: dict[str, dict[str, float]] = {
    "Mistral Small 3.1 24B": {"input": 0.0002, "output": 0.0006},
    "LLaMA-3 70B": {"input": 0.0003, "output": 0.0009},
    "OpenAI GPT-4.1": {"input": 0.001, "output": 0.003},
    "DeepSeek Reasoning R1": {"input": 0.0004, "output": 0.0012},
    "OpenAI O3 Reasoning": {"input": 0.0015, "output": 0.0045},
    "Qwen 2.5 Coder 32B": {"input": 0.0003, "output": 0.0009},
}

DEFAULT_RATES = {"input": 0.0001, "output": 0.0002}

# Flat per-image charge for successful image generations.
IMAGE_COST = 0.02


@dataclass(frozen=True)
class CostEstimate:
    input_tokens: int
    output_tokens: int
    cost: float

    def to_dict(self) -> dict:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "cost": self.cost,
        }


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 chars per token, rounded up."""
    return math.ceil(len(text or "") / 4)


def rates_for(model_name: str) -> dict[str, float]:
    return MODEL_COSTS.get(model_name, DEFAULT_RATES)


def estimate(model_name: str, input_text: str, output_text: str) -> CostEstimate:
    """Estimate token counts and cost for one request/response pair."""
    input_tokens = estimate_tokens(input_text)
    output_tokens = estimate_tokens(output_text)
    rates = rates_for(model_name)
    cost = (input_tokens / 1000) * rates["input"] + (output_tokens / 1000) * rates["output"]
    return CostEstimate(input_tokens=input_tokens, output_tokens=output_tokens, cost=cost)
