"""Pricing service serving the local price table with optional live prices."""

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from app.schemas.pricing import ModelInfoResponse, ModelPricingResponse, PricingMetadata, PricingResponse
from app.services.pricing import (
    AVAILABLE_MODELS,
    GENERATIONS,
    TOKENS_PER_MILLION,
    get_all_model_pricing,
    get_models_by_generation,
)

logger = logging.getLogger(__name__)

OPENROUTER_MODELS_URL = "https://openrouter.ai/api/v1/models"
LOCAL_PRICING_UPDATED = "2025-01-30"
LOCAL_SOURCE = "Local Pricing Database"
LIVE_SOURCE = "OpenRouter API (Live)"
CACHED_INPUT_DISCOUNT = 0.1


def detect_generation(model_id: str) -> str:
    """Map an OpenRouter model id onto one of the known model generations."""
    if "claude-4" in model_id or "claude-sonnet-4" in model_id or "claude-opus-4" in model_id:
        return "Claude 4"
    if "3.5" in model_id or "3-5" in model_id:
        return "Claude 3.5"
    return "Claude 3"


def parse_openrouter_models(payload: dict[str, Any]) -> dict[str, list[ModelPricingResponse]]:
    """Convert the OpenRouter model list into per-million prices grouped by generation.

    OpenRouter quotes prices per token. Cache reads are assumed to cost a tenth
    of regular input.
    """
    grouped: dict[str, list[ModelPricingResponse]] = {generation: [] for generation in GENERATIONS}
    for model in payload.get("data", []):
        model_id = model.get("id", "")
        if "anthropic/claude" not in model_id:
            continue

        input_price = float(model["pricing"]["prompt"]) * TOKENS_PER_MILLION
        output_price = float(model["pricing"]["completion"]) * TOKENS_PER_MILLION
        top_provider = model.get("top_provider") or {}
        generation = detect_generation(model_id)

        grouped[generation].append(
            ModelPricingResponse(
                id=model_id.replace("anthropic/", ""),
                name=model.get("name") or model_id,
                input_price=input_price,
                output_price=output_price,
                cached_input_price=input_price * CACHED_INPUT_DISCOUNT,
                generation=generation,
                context_window=model.get("context_length") or 200_000,
                max_tokens=top_provider.get("max_completion_tokens") or 8192,
            )
        )
    return grouped


class PricingService:
    """Service class for the model catalog and pricing table."""

    def __init__(
        self,
        openrouter_api_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.openrouter_api_key = openrouter_api_key
        self.timeout = timeout
        self.transport = transport

    def list_models(self) -> list[ModelInfoResponse]:
        return [ModelInfoResponse.model_validate(model) for model in AVAILABLE_MODELS]

    async def get_pricing(self, grouped: bool = False, live: bool = False) -> PricingResponse:
        """Return live prices when requested and reachable, local prices otherwise."""
        if live:
            live_pricing = await self.fetch_live_pricing()
            if live_pricing is not None:
                return PricingResponse(
                    data=live_pricing,
                    metadata=PricingMetadata(last_updated=datetime.now(UTC).isoformat(), source=LIVE_SOURCE),
                )

        metadata = PricingMetadata(last_updated=LOCAL_PRICING_UPDATED, source=LOCAL_SOURCE)
        if grouped:
            data = {
                generation: [ModelPricingResponse.model_validate(pricing) for pricing in models]
                for generation, models in get_models_by_generation().items()
            }
            return PricingResponse(data=data, metadata=metadata)
        return PricingResponse(
            data=[ModelPricingResponse.model_validate(pricing) for pricing in get_all_model_pricing()],
            metadata=metadata,
        )

    async def fetch_live_pricing(self) -> dict[str, list[ModelPricingResponse]] | None:
        """Fetch current prices from OpenRouter.

        Returns None when no key is configured or the request fails.
        """
        if not self.openrouter_api_key:
            logger.info("No OpenRouter API key found, using local pricing")
            return None

        headers = {
            "Authorization": f"Bearer {self.openrouter_api_key}",
            "HTTP-Referer": "https://localhost:3000",
            "X-Title": "ClaudeLocal",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(OPENROUTER_MODELS_URL, headers=headers)
                response.raise_for_status()
                return parse_openrouter_models(response.json())
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"OpenRouter fetch failed, falling back to local pricing: {e}")
            return None
