"""
API tests for the model catalog and pricing endpoints.
"""

import pytest
from fastapi import status
from httpx import AsyncClient

from app.domains.pricing.service import LOCAL_SOURCE


class TestPricingController:
    """Test cases for Pricing API endpoints."""

    @pytest.mark.asyncio
    async def test_list_models(self, client: AsyncClient):
        response = await client.get("/api/models")

        assert response.status_code == status.HTTP_200_OK
        models = response.json()["data"]
        assert models[0]["id"] == "claude-sonnet-4-5-20250929"
        assert set(models[0]) == {"id", "name", "description", "maxTokens", "contextWindow"}

    @pytest.mark.asyncio
    async def test_pricing_flat(self, client: AsyncClient):
        response = await client.get("/api/pricing")

        assert response.status_code == status.HTTP_200_OK
        payload = response.json()["data"]
        haiku = next(item for item in payload["data"] if item["id"] == "claude-3-haiku-20240307")
        assert haiku["inputPrice"] == 0.25
        assert haiku["cachedInputPrice"] == 0.025
        assert payload["metadata"] == {
            "lastUpdated": "2025-01-30",
            "source": LOCAL_SOURCE,
            "currency": "USD",
            "unit": "per million tokens",
        }

    @pytest.mark.asyncio
    async def test_pricing_grouped(self, client: AsyncClient):
        response = await client.get("/api/pricing", params={"grouped": "true"})

        groups = response.json()["data"]["data"]
        assert list(groups) == ["Claude 4", "Claude 3.5", "Claude 3"]
        assert all(item["generation"] == "Claude 3.5" for item in groups["Claude 3.5"])

    @pytest.mark.asyncio
    async def test_live_pricing_without_key(self, client: AsyncClient):
        response = await client.get("/api/pricing", params={"live": "true"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["data"]["metadata"]["source"] == LOCAL_SOURCE
