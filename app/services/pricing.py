"""Model catalog, pricing table and message cost calculation.

Prices are in US dollars per million tokens and follow Anthropic's published
pricing. Cached input is billed at the discounted cache-read rate.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TOKENS_PER_MILLION = 1_000_000

GENERATIONS = ("Claude 4", "Claude 3.5", "Claude 3")


@dataclass(frozen=True)
class ModelPricing:
    id: str
    name: str
    input_price: float
    output_price: float
    cached_input_price: float
    generation: str
    context_window: int = 200_000
    max_tokens: int = 8192


MODEL_PRICING: dict[str, ModelPricing] = {
    pricing.id: pricing
    for pricing in (
        # Claude 4 family
        ModelPricing("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", 3.0, 15.0, 0.3, "Claude 4"),
        ModelPricing("claude-haiku-4-5-20251001", "Claude Haiku 4.5", 1.0, 5.0, 0.1, "Claude 4"),
        ModelPricing("claude-opus-4-1-20250514", "Claude Opus 4.1", 15.0, 75.0, 1.5, "Claude 4"),
        ModelPricing("claude-opus-4-20250514", "Claude Opus 4", 15.0, 75.0, 1.5, "Claude 4"),
        ModelPricing("claude-sonnet-4-20250514", "Claude Sonnet 4", 3.0, 15.0, 0.3, "Claude 4"),
        # Claude 3.5 family
        ModelPricing("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", 3.0, 15.0, 0.3, "Claude 3.5"),
        ModelPricing("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", 1.0, 5.0, 0.1, "Claude 3.5"),
        # Claude 3 family (legacy)
        ModelPricing("claude-3-opus-20240229", "Claude 3 Opus", 15.0, 75.0, 1.5, "Claude 3", max_tokens=4096),
        ModelPricing("claude-3-sonnet-20240229", "Claude 3 Sonnet", 3.0, 15.0, 0.3, "Claude 3", max_tokens=4096),
        ModelPricing("claude-3-haiku-20240307", "Claude 3 Haiku", 0.25, 1.25, 0.025, "Claude 3", max_tokens=4096),
    )
}


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str
    max_tokens: int = 8192
    context_window: int = 200_000


# Models offered in the model picker
AVAILABLE_MODELS: list[ModelInfo] = [
    ModelInfo("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", "Latest and most intelligent model"),
    ModelInfo("claude-opus-4-1-20250514", "Claude Opus 4.1", "Most capable model for complex reasoning"),
    ModelInfo("claude-opus-4-20250514", "Claude Opus 4", "Powerful model for complex tasks"),
    ModelInfo("claude-sonnet-4-20250514", "Claude Sonnet 4", "Balanced intelligence and speed"),
]


def calculate_message_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    cached_tokens: int = 0,
) -> float:
    """Calculate the cost of a message in dollars.

    Args:
        model: Model identifier.
        input_tokens: Uncached input tokens.
        output_tokens: Output tokens, thinking included.
        cached_tokens: Input tokens served from the prompt cache.

    Returns:
        Cost in dollars, or 0.0 for a model missing from the price table.
    """
    pricing = MODEL_PRICING.get(model)
    if pricing is None:
        logger.warning(
            f"Unknown model: {model}. Unable to calculate cost. "
            f"Available models: {', '.join(MODEL_PRICING)}"
        )
        return 0.0

    input_cost = input_tokens * pricing.input_price / TOKENS_PER_MILLION
    output_cost = output_tokens * pricing.output_price / TOKENS_PER_MILLION
    cached_cost = cached_tokens * pricing.cached_input_price / TOKENS_PER_MILLION
    return input_cost + output_cost + cached_cost


def get_model_pricing(model_id: str) -> ModelPricing | None:
    return MODEL_PRICING.get(model_id)


def get_all_model_pricing() -> list[ModelPricing]:
    return list(MODEL_PRICING.values())


def get_models_by_generation() -> dict[str, list[ModelPricing]]:
    grouped: dict[str, list[ModelPricing]] = {generation: [] for generation in GENERATIONS}
    for pricing in MODEL_PRICING.values():
        grouped.setdefault(pricing.generation, []).append(pricing)
    return grouped


def get_cheapest_model() -> str:
    """Return the model with the lowest input and output prices."""
    cheapest = min(MODEL_PRICING.values(), key=lambda p: (p.input_price, p.output_price))
    return cheapest.id


def format_cost(cost: float) -> str:
    return f"${cost:.4f}"


def format_price(price: float) -> str:
    return f"${price:.2f}"


def calculate_savings_percentage(regular_price: float, cached_price: float) -> int:
    if regular_price <= 0:
        return 0
    return round((regular_price - cached_price) / regular_price * 100)
