"""Anthropic Messages API client producing typed stream events.

The client opens one streaming request per chat turn and translates the SDK's
raw server events into a small closed set of event types consumed by the
stream relay. Provider failures surface as ``ProviderError`` subclasses.
"""

import enum
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Union

import anthropic

from app.exceptions.provider import ProviderConfigurationError, ProviderError, map_provider_exception

logger = logging.getLogger(__name__)

EPHEMERAL_CACHE = {"type": "ephemeral"}


class BlockKind(str, enum.Enum):
    """Kind of content block opened by the provider."""

    THINKING = "thinking"
    TEXT = "text"


@dataclass(frozen=True)
class MessageStart:
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0


@dataclass(frozen=True)
class ContentBlockStart:
    kind: BlockKind


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class ContentBlockStop:
    pass


@dataclass(frozen=True)
class UsageDelta:
    output_tokens: int | None = None
    stop_reason: str | None = None


@dataclass(frozen=True)
class MessageStop:
    pass


UpstreamEvent = Union[MessageStart, ContentBlockStart, ContentDelta, ContentBlockStop, UsageDelta, MessageStop]


def build_messages(history: Sequence[dict[str, str]], cache_threshold: int = 2) -> list[dict[str, Any]]:
    """Format a role-tagged history for the Messages API.

    Once the history is longer than ``cache_threshold`` messages, every message
    but the last is sent as a cache-annotated text segment.
    """
    formatted = []
    last_index = len(history) - 1
    for index, message in enumerate(history):
        should_cache = index != last_index and len(history) > cache_threshold
        if should_cache:
            content: Any = [{"type": "text", "text": message["content"], "cache_control": EPHEMERAL_CACHE}]
        else:
            content = message["content"]
        formatted.append({"role": message["role"], "content": content})
    return formatted


def build_system(instructions: str | None) -> list[dict[str, Any]]:
    """Wrap project instructions as a cache-annotated system segment."""
    if not instructions:
        return []
    return [{"type": "text", "text": instructions, "cache_control": EPHEMERAL_CACHE}]


def translate_event(raw: Any) -> UpstreamEvent | None:
    """Translate one raw SDK stream event; returns None for events the relay ignores."""
    event_type = getattr(raw, "type", None)

    if event_type == "message_start":
        usage = getattr(raw.message, "usage", None)
        if usage is None:
            return MessageStart()
        return MessageStart(
            input_tokens=usage.input_tokens or 0,
            output_tokens=usage.output_tokens or 0,
            cached_tokens=getattr(usage, "cache_read_input_tokens", None) or 0,
        )

    if event_type == "content_block_start":
        block_type = getattr(raw.content_block, "type", "text")
        if block_type in ("thinking", "redacted_thinking"):
            return ContentBlockStart(BlockKind.THINKING)
        return ContentBlockStart(BlockKind.TEXT)

    if event_type == "content_block_delta":
        delta = raw.delta
        if delta.type == "text_delta":
            return ContentDelta(delta.text)
        if delta.type == "thinking_delta":
            return ContentDelta(delta.thinking)
        # signature and tool input deltas carry no displayable text
        return None

    if event_type == "content_block_stop":
        return ContentBlockStop()

    if event_type == "message_delta":
        usage = getattr(raw, "usage", None)
        return UsageDelta(
            output_tokens=getattr(usage, "output_tokens", None) if usage is not None else None,
            stop_reason=getattr(raw.delta, "stop_reason", None),
        )

    if event_type == "message_stop":
        return MessageStop()

    return None


class AnthropicStreamClient:
    """Thin async adapter over ``anthropic.AsyncAnthropic``."""

    def __init__(
        self,
        api_key: str | None,
        timeout: float = 600.0,
        thinking_max_tokens: int = 16384,
        thinking_budget_tokens: int = 10000,
        cache_threshold: int = 2,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        if client is None:
            if not api_key:
                raise ProviderConfigurationError(
                    "Anthropic API key not found. Add it to secrets.json or set the ANTHROPIC_API_KEY environment variable."
                )
            client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
        self._client = client
        self.thinking_max_tokens = thinking_max_tokens
        self.thinking_budget_tokens = thinking_budget_tokens
        self.cache_threshold = cache_threshold

    def build_params(
        self,
        model: str,
        history: Sequence[dict[str, str]],
        temperature: float,
        max_tokens: int,
        instructions: str | None = None,
        thinking_enabled: bool = False,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": build_messages(history, self.cache_threshold),
        }
        system = build_system(instructions)
        if system:
            params["system"] = system
        if thinking_enabled:
            # max_tokens has to exceed the thinking budget, and thinking only runs at temperature 1
            params["max_tokens"] = self.thinking_max_tokens
            params["temperature"] = 1.0
            params["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget_tokens}
        return params

    async def open_stream(
        self,
        model: str,
        history: Sequence[dict[str, str]],
        temperature: float,
        max_tokens: int,
        instructions: str | None = None,
        thinking_enabled: bool = False,
    ) -> AsyncIterator[UpstreamEvent]:
        """Send the streaming request and return its translated event iterator.

        Raises:
            ProviderError: If the provider rejects the request before streaming.
        """
        params = self.build_params(model, history, temperature, max_tokens, instructions, thinking_enabled)
        try:
            raw_stream = await self._client.messages.create(**params, stream=True)
        except Exception as e:
            error = map_provider_exception(e)
            logger.error(f"Provider rejected stream request for {model}: {error.message}")
            raise error from e

        logger.info(f"Opened provider stream: model={model} messages={len(history)} thinking={thinking_enabled}")
        return self._iterate(raw_stream)

    async def _iterate(self, raw_stream) -> AsyncIterator[UpstreamEvent]:
        try:
            async for raw in raw_stream:
                event = translate_event(raw)
                if event is not None:
                    yield event
        except ProviderError:
            raise
        except anthropic.APIError as e:
            raise map_provider_exception(e) from e
        finally:
            await raw_stream.close()

    async def create_message(self, model: str, prompt: str, max_tokens: int, temperature: float) -> str | None:
        """Run a single non-streaming completion and return its first text block."""
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            raise map_provider_exception(e) from e

        for block in response.content:
            if block.type == "text":
                return block.text
        return None
