"""Stream relay between the provider stream and the browser.

``StreamRelay`` folds upstream provider events into running metrics, re-emits
them as SSE frames in arrival order and, once the provider signals the end of
the message, persists exactly one assistant message with its statistics.

State machine::

    IDLE -> STARTED -> (THINKING_BLOCK | CONTENT_BLOCK)* -> FINALIZING -> DONE
                         any state -> ERRORED

Partial text already streamed when an error occurs is not persisted; the user
sees it in the UI but it never lands in the conversation history.
"""

import enum
import json
import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from uuid import UUID

import anyio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domains.chat.sse import format_sse
from app.domains.conversation.store import ConversationStore
from app.schemas.base import BaseSchema
from app.schemas.stream import (
    ContentFrame,
    DoneFrame,
    ErrorFrame,
    StatisticsFrame,
    StreamStatistics,
    ThinkingDoneFrame,
    ThinkingFrame,
)
from app.services.pricing import calculate_message_cost
from app.services.provider import (
    BlockKind,
    ContentBlockStart,
    ContentBlockStop,
    ContentDelta,
    MessageStart,
    MessageStop,
    UpstreamEvent,
    UsageDelta,
)
from models import MessageRole, utcnow

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "Streaming failed"


class StreamState(str, enum.Enum):
    IDLE = "idle"
    STARTED = "started"
    THINKING_BLOCK = "thinking_block"
    CONTENT_BLOCK = "content_block"
    FINALIZING = "finalizing"
    DONE = "done"
    ERRORED = "errored"


class StreamIncompleteError(Exception):
    """Raised when the provider stream ends without a terminal event."""


@dataclass(frozen=True)
class TurnContext:
    """Settings of the chat turn being streamed."""

    conversation_id: UUID
    model: str
    temperature: float
    max_tokens: int

    def config_snapshot(self) -> str:
        return json.dumps({"model": self.model, "temperature": self.temperature, "maxTokens": self.max_tokens})


@dataclass
class StreamMetrics:
    """Running metrics of one stream; discarded once the message is persisted."""

    start_time: float
    first_token_time: float | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    total_tokens: int = 0
    stop_reason: str = ""
    thinking_fragments: list[str] = field(default_factory=list)
    response_fragments: list[str] = field(default_factory=list)

    @property
    def thinking_text(self) -> str:
        return "".join(self.thinking_fragments)

    @property
    def response_text(self) -> str:
        return "".join(self.response_fragments)

    def time_to_first_token(self) -> float:
        if self.first_token_time is None:
            return 0.0
        return self.first_token_time - self.start_time

    def tokens_per_second(self, duration: float) -> float:
        if self.total_tokens <= 0 or duration <= 0:
            return 0.0
        return self.total_tokens / duration


class StreamRelay:
    """Relay one provider stream to SSE frames and persist its result."""

    def __init__(
        self,
        context: TurnContext,
        session_factory: async_sessionmaker[AsyncSession],
        title_trigger: Callable[[UUID], None] | None = None,
        clock: Callable[[], float] = time.perf_counter,
        start_time: float | None = None,
        lease_token: str | None = None,
    ):
        self.context = context
        self.state = StreamState.IDLE
        self.metrics: StreamMetrics | None = None
        self._session_factory = session_factory
        self._title_trigger = title_trigger
        self._clock = clock
        self._start_time = start_time
        self._lease_token = lease_token
        self._block_kind: BlockKind | None = None

    async def relay(self, events: AsyncIterator[UpstreamEvent]) -> AsyncIterator[str]:
        """Consume ``events`` and yield SSE frames until the stream completes or fails."""
        self.metrics = StreamMetrics(start_time=self._start_time if self._start_time is not None else self._clock())
        conversation_id = self.context.conversation_id
        try:
            async for event in events:
                for frame in await self.handle_event(event):
                    yield format_sse(frame)
            if self.state is not StreamState.DONE:
                raise StreamIncompleteError("Provider stream ended before the message was complete")
        except Exception as e:
            self.state = StreamState.ERRORED
            logger.error(f"Streaming error for conversation {conversation_id}: {e}", exc_info=True)
            yield format_sse(ErrorFrame(error=STREAM_ERROR_MESSAGE))
        finally:
            # a client disconnect cancels the body; cleanup must still complete
            with anyio.CancelScope(shield=True):
                await self._close_upstream(events)
                await self._release_lease()

    async def handle_event(self, event: UpstreamEvent) -> list[BaseSchema]:
        """Apply one upstream event and return the frames it produces."""
        if self.state in (StreamState.DONE, StreamState.ERRORED):
            logger.warning(f"Ignoring {type(event).__name__} received in state {self.state.value}")
            return []

        metrics = self.metrics
        if isinstance(event, MessageStart):
            metrics.input_tokens = event.input_tokens
            metrics.output_tokens = event.output_tokens
            metrics.cached_tokens = event.cached_tokens
            self.state = StreamState.STARTED
            return []

        if isinstance(event, ContentBlockStart):
            self._block_kind = event.kind
            self.state = StreamState.THINKING_BLOCK if event.kind is BlockKind.THINKING else StreamState.CONTENT_BLOCK
            return []

        if isinstance(event, ContentDelta):
            if metrics.first_token_time is None:
                metrics.first_token_time = self._clock()
            if self._block_kind is BlockKind.THINKING:
                metrics.thinking_fragments.append(event.text)
                return [ThinkingFrame(content=event.text)]
            metrics.response_fragments.append(event.text)
            return [ContentFrame(content=event.text)]

        if isinstance(event, ContentBlockStop):
            closed_thinking = self._block_kind is BlockKind.THINKING
            self._block_kind = None
            self.state = StreamState.STARTED
            return [ThinkingDoneFrame()] if closed_thinking else []

        if isinstance(event, UsageDelta):
            if event.output_tokens:
                metrics.output_tokens = event.output_tokens
                metrics.total_tokens = metrics.input_tokens + metrics.output_tokens
            if event.stop_reason:
                metrics.stop_reason = event.stop_reason
            return []

        if isinstance(event, MessageStop):
            return await self._finalize()

        raise TypeError(f"Unhandled upstream event: {event!r}")

    async def _finalize(self) -> list[BaseSchema]:
        self.state = StreamState.FINALIZING
        metrics = self.metrics
        context = self.context
        duration = self._clock() - metrics.start_time

        statistics = StreamStatistics(
            tokens_per_second=metrics.tokens_per_second(duration),
            total_tokens=metrics.total_tokens,
            input_tokens=metrics.input_tokens,
            output_tokens=metrics.output_tokens,
            cached_tokens=metrics.cached_tokens,
            time_to_first_token=metrics.time_to_first_token(),
            stop_reason=metrics.stop_reason,
            config_snapshot=context.config_snapshot(),
            cost=calculate_message_cost(
                context.model, metrics.input_tokens, metrics.output_tokens, metrics.cached_tokens
            ),
            thinking_content=metrics.thinking_text,
        )

        async with self._session_factory() as session:
            store = ConversationStore(session)
            message = await store.create_message(
                context.conversation_id, MessageRole.ASSISTANT, metrics.response_text, metrics=statistics
            )
            await store.update_conversation(context.conversation_id, updated_at=utcnow())
            message_count = await store.count_messages(context.conversation_id)
            await session.commit()
            message_id = message.id

        logger.info(
            f"Stream complete for conversation {context.conversation_id}: "
            f"{statistics.total_tokens} tokens, {statistics.tokens_per_second:.1f} tok/s, "
            f"ttft {statistics.time_to_first_token:.3f}s, cost ${statistics.cost:.6f}"
        )

        if message_count == 2:
            self._schedule_title(context.conversation_id)

        self.state = StreamState.DONE
        return [
            StatisticsFrame(statistics=statistics),
            DoneFrame(message_id=message_id, conversation_id=context.conversation_id),
        ]

    def _schedule_title(self, conversation_id: UUID) -> None:
        if self._title_trigger is None:
            return
        try:
            self._title_trigger(conversation_id)
        except Exception as e:
            logger.error(f"Could not schedule title generation for {conversation_id}: {e}")

    async def _close_upstream(self, events: AsyncIterator[UpstreamEvent]) -> None:
        aclose = getattr(events, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.warning(f"Error closing provider stream: {e}")

    async def _release_lease(self) -> None:
        if self._lease_token is None:
            return
        try:
            async with self._session_factory() as session:
                await ConversationStore(session).release_generation_lease(
                    self.context.conversation_id, self._lease_token
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Could not release generation lease for {self.context.conversation_id}: {e}")
