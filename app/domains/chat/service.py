"""Chat service layer preparing streamed turns with the model provider."""

import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.domains.conversation.store import ConversationStore
from app.exceptions.conversation import (
    ConversationNotFoundError,
    GenerationInProgressError,
    MessageRequiredError,
    ProjectNotFoundError,
)
from app.exceptions.provider import ProviderError
from app.schemas.chat import ChatRequest
from app.services.provider import AnthropicStreamClient, UpstreamEvent
from models import DEFAULT_CONVERSATION_TITLE, Conversation, MessageRole, Project

logger = logging.getLogger(__name__)

TITLE_PREFIX_LENGTH = 100


@dataclass
class PreparedTurn:
    """Everything needed to stream one answer for a conversation."""

    conversation_id: UUID
    history: list[dict[str, str]]
    model: str
    temperature: float
    max_tokens: int
    thinking_enabled: bool = False
    instructions: str | None = None
    lease_token: str | None = None
    started_at: float | None = field(default=None)


class ChatService:
    """Service class for streamed chat turns."""

    def __init__(
        self,
        db: AsyncSession,
        stream_client: AnthropicStreamClient,
        lease_seconds: int | None = None,
    ):
        """Initialize chat service.

        Args:
            db: Async database session for the request.
            stream_client: Provider client used to open the answer stream.
            lease_seconds: Lifetime of a generation lease before it may be taken over.
        """
        self.db = db
        self.store = ConversationStore(db)
        self.stream_client = stream_client
        self.lease_seconds = lease_seconds if lease_seconds is not None else settings.generation_lease_seconds

    async def prepare_turn(self, request: ChatRequest) -> PreparedTurn:
        """Resolve the conversation, persist the user message and claim the generation lease.

        Raises:
            MessageRequiredError: Neither ``message`` nor a non-empty ``messages`` list given.
            ConversationNotFoundError: ``conversationId`` does not exist.
            ProjectNotFoundError: ``projectId`` of a new conversation does not exist.
            GenerationInProgressError: Another answer is streaming for this conversation.
        """
        if not request.messages and not request.message:
            raise MessageRequiredError()

        model = request.model or settings.default_model
        temperature = request.temperature if request.temperature is not None else settings.default_temperature
        max_tokens = request.max_tokens or settings.default_max_tokens

        if request.conversation_id is not None:
            conversation = await self.store.get_conversation(request.conversation_id, include_project=True)
            if conversation is None:
                raise ConversationNotFoundError()
        else:
            conversation = None

        history = await self._build_history(request, conversation)

        if conversation is None:
            conversation = await self._create_conversation(request, history, model, temperature, max_tokens)

        lease_token = await self.store.acquire_generation_lease(conversation.id, self.lease_seconds)
        if lease_token is None:
            await self.db.rollback()
            raise GenerationInProgressError()

        await self.store.create_message(conversation.id, MessageRole.USER, history[-1]["content"])
        await self.db.commit()

        project = conversation.project
        logger.info(
            f"Prepared chat turn for conversation {conversation.id}: "
            f"model={model} history={len(history)} thinking={request.thinking_enabled}"
        )
        return PreparedTurn(
            conversation_id=conversation.id,
            history=history,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            thinking_enabled=request.thinking_enabled,
            instructions=project.instructions if project is not None else None,
            lease_token=lease_token,
        )

    async def open_stream(self, turn: PreparedTurn) -> AsyncIterator[UpstreamEvent]:
        """Open the provider stream for a prepared turn.

        The lease is released again when the provider rejects the request.
        """
        turn.started_at = time.perf_counter()
        try:
            return await self.stream_client.open_stream(
                model=turn.model,
                history=turn.history,
                temperature=turn.temperature,
                max_tokens=turn.max_tokens,
                instructions=turn.instructions,
                thinking_enabled=turn.thinking_enabled,
            )
        except ProviderError:
            await self._release(turn)
            raise

    async def _build_history(self, request: ChatRequest, conversation: Conversation | None) -> list[dict[str, str]]:
        if request.messages:
            return [{"role": turn.role, "content": turn.content} for turn in request.messages]

        history = []
        if conversation is not None:
            stored = await self.store.list_messages(conversation.id)
            history = [{"role": message.role.value, "content": message.content} for message in stored]
        history.append({"role": MessageRole.USER.value, "content": request.message})
        return history

    async def _create_conversation(
        self,
        request: ChatRequest,
        history: list[dict[str, str]],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> Conversation:
        project = None
        if request.project_id is not None:
            project = await self.db.get(Project, request.project_id)
            if project is None:
                raise ProjectNotFoundError()

        title = history[0]["content"][:TITLE_PREFIX_LENGTH] or DEFAULT_CONVERSATION_TITLE
        conversation = await self.store.create_conversation(
            title=title,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            project_id=request.project_id,
        )
        conversation.project = project
        logger.info(f"Created conversation {conversation.id} from chat request")
        return conversation

    async def _release(self, turn: PreparedTurn) -> None:
        if turn.lease_token is None:
            return
        await self.store.release_generation_lease(turn.conversation_id, turn.lease_token)
        await self.db.commit()
        turn.lease_token = None
