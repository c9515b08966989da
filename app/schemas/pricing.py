"""Model catalog and pricing schemas."""

from __future__ import annotations

from pydantic import Field

from .base import BaseSchema


class ModelInfoResponse(BaseSchema):
    """Model offered in the model picker."""

    id: str
    name: str
    description: str
    max_tokens: int
    context_window: int


class ModelPricingResponse(BaseSchema):
    """Prices of one model in dollars per million tokens."""

    id: str
    name: str
    input_price: float
    output_price: float
    cached_input_price: float
    generation: str
    context_window: int = 200_000
    max_tokens: int = 8192


class PricingMetadata(BaseSchema):
    last_updated: str
    source: str
    currency: str = "USD"
    unit: str = "per million tokens"


class PricingResponse(BaseSchema):
    """Pricing table, flat or grouped by model generation."""

    data: list[ModelPricingResponse] | dict[str, list[ModelPricingResponse]] = Field(default_factory=list)
    metadata: PricingMetadata
