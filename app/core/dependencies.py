# app/core/dependencies.py
import logging
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.database import get_db, get_session_factory
from app.services.provider import AnthropicStreamClient
from app.services.title import TitleGenerator

logger = logging.getLogger(__name__)

__all__ = ["get_db", "get_session_factory", "get_stream_client", "get_title_generator"]


@lru_cache
def _build_stream_client() -> AnthropicStreamClient:
    client = AnthropicStreamClient(
        api_key=settings.anthropic_api_key,
        timeout=settings.ai_request_timeout,
        thinking_max_tokens=settings.thinking_max_tokens,
        thinking_budget_tokens=settings.thinking_budget_tokens,
        cache_threshold=settings.cache_threshold,
    )
    logger.info("Anthropic stream client initialized")
    return client


def get_stream_client() -> AnthropicStreamClient:
    """Return the shared provider client.

    Raises:
        ProviderConfigurationError: If no API key is configured.
    """
    return _build_stream_client()


def get_title_generator(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client: AnthropicStreamClient = Depends(get_stream_client),
) -> TitleGenerator:
    return TitleGenerator(
        session_factory=session_factory,
        client=client,
        model=settings.title_model,
        max_tokens=settings.title_max_tokens,
        temperature=settings.title_temperature,
    )
