"""Model catalog and pricing API controller."""

import logging

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.domains.pricing.service import PricingService
from app.schemas.base import ResponseSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["pricing"])


def get_pricing_service() -> PricingService:
    return PricingService(openrouter_api_key=settings.openrouter_api_key)


@router.get("/models", response_model=ResponseSchema)
async def list_models(service: PricingService = Depends(get_pricing_service)):
    """List the models offered for chat."""
    return ResponseSchema(
        status="success",
        message="Models retrieved successfully",
        data=[model.to_wire() for model in service.list_models()],
    )


@router.get("/pricing", response_model=ResponseSchema)
async def get_pricing(
    grouped: bool = Query(False, description="Group models by generation"),
    live: bool = Query(False, description="Fetch current prices from OpenRouter"),
    service: PricingService = Depends(get_pricing_service),
):
    """Return the pricing table in dollars per million tokens."""
    pricing = await service.get_pricing(grouped=grouped, live=live)
    return ResponseSchema(
        status="success",
        message="Pricing retrieved successfully",
        data=pricing.to_wire(),
    )
