"""Token usage and cost bookkeeping for one review session."""

from dataclasses import dataclass
from typing import Dict

from mcpreview.host.schema import TokenUsage


@dataclass(frozen=True)
class ModelPricing:
    input_per_mtok: float
    output_per_mtok: float


MODEL_PRICING: Dict[str, ModelPricing] = {
    "claude-sonnet-4-20250514": ModelPricing(3, 15),
    "claude-opus-4-20250514": ModelPricing(15, 75),
    "claude-haiku-3-5-20241022": ModelPricing(0.8, 4),
}

DEFAULT_PRICING = ModelPricing(3, 15)


class UsageTracker:
    """Accumulates provider-reported token counts across every call in a session."""

    def __init__(self, model: str):
        self.model = model
        self.pricing = MODEL_PRICING.get(model, DEFAULT_PRICING)
        self.input_tokens = 0
        self.output_tokens = 0

    def add_usage(self, input_tokens: int, output_tokens: int) -> None:
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    def estimated_cost(self) -> float:
        return (
            self.input_tokens / 1_000_000 * self.pricing.input_per_mtok
            + self.output_tokens / 1_000_000 * self.pricing.output_per_mtok
        )

    def total(self) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            estimated_cost=self.estimated_cost(),
        )

    def format_usage(self) -> str:
        return (
            f"Tokens: {self.input_tokens:,} in / {self.output_tokens:,} out | "
            f"Estimated cost: ${self.estimated_cost():.2f}"
        )
