"""
Pricing calculations and rate management.

Handles cost computations for the models the gateway is allowed to call.
"""

from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from decimal import Decimal, ROUND_HALF_UP

from .errors import UnknownModelError
from .token_counter import TokenUsage

TOKENS_PER_MILLION = Decimal("1000000")
COST_QUANTUM = Decimal("0.0001")  # 4 decimal places


@dataclass(frozen=True)
class ModelPricing:
    """Per-token pricing for a specific model."""
    input_cost_per_million: Decimal  # USD per 1M prompt tokens
    output_cost_per_million: Decimal  # USD per 1M completion tokens

    def __post_init__(self):
        """Validate rates are non-negative."""
        if self.input_cost_per_million < 0 or self.output_cost_per_million < 0:
            raise ValueError("model pricing rates must be >= 0")


@dataclass(frozen=True)
class PricingTable:
    """Fixed pricing table for supported models."""
    prices: Dict[str, ModelPricing]

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a specific model.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the model

        Raises:
            UnknownModelError: If model is not registered
        """
        if model not in self.prices:
            raise UnknownModelError(model)
        return self.prices[model]

    def supports(self, model: str) -> bool:
        return model in self.prices

    def with_models(self, extra: Mapping[str, ModelPricing]) -> "PricingTable":
        """Return a new table with ``extra`` entries added or overridden."""
        merged = dict(self.prices)
        merged.update(extra)
        return PricingTable(merged)


# Fixed pricing table - no dynamic fetching, no defaults
PRICING_TABLE = PricingTable({
    "gpt-4o-mini": ModelPricing(
        input_cost_per_million=Decimal("0.15"),
        output_cost_per_million=Decimal("0.60")
    ),
    "gpt-4o": ModelPricing(
        input_cost_per_million=Decimal("2.50"),
        output_cost_per_million=Decimal("10.00")
    ),
    "gpt-4.1-nano": ModelPricing(
        input_cost_per_million=Decimal("0.10"),
        output_cost_per_million=Decimal("0.40")
    ),
    "gpt-4.1-mini": ModelPricing(
        input_cost_per_million=Decimal("0.40"),
        output_cost_per_million=Decimal("1.60")
    ),
    "gpt-4.1": ModelPricing(
        input_cost_per_million=Decimal("2.00"),
        output_cost_per_million=Decimal("8.00")
    ),
    "o3-mini": ModelPricing(
        input_cost_per_million=Decimal("1.10"),
        output_cost_per_million=Decimal("4.40")
    ),
    "o1": ModelPricing(
        input_cost_per_million=Decimal("15.00"),
        output_cost_per_million=Decimal("60.00")
    ),
})

MODEL_TIERS = {
    "fast": "gpt-4o-mini",
    "standard": "gpt-4o",
    "powerful": "o1",
}

DEFAULT_MODEL = MODEL_TIERS["standard"]


def calculate_cost(
    model: str,
    usage: TokenUsage,
    table: Optional[PricingTable] = None
) -> Decimal:
    """Calculate total cost for model usage.

    Args:
        model: Model identifier
        usage: Token usage data
        table: Pricing table to use (defaults to PRICING_TABLE)

    Returns:
        Total cost in USD rounded to 4 decimal places

    Raises:
        UnknownModelError: If model is not registered
    """
    pricing = (table or PRICING_TABLE).get_pricing(model)

    # (tokens / 1M) * cost_per_million
    input_cost = (Decimal(usage.prompt_tokens) / TOKENS_PER_MILLION) * pricing.input_cost_per_million
    output_cost = (Decimal(usage.completion_tokens) / TOKENS_PER_MILLION) * pricing.output_cost_per_million

    total_cost = input_cost + output_cost
    return total_cost.quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)
