"""Conversation service layer with business logic."""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.domains.conversation.store import UNSET, ConversationStore
from app.exceptions.conversation import ConversationNotFoundError, ProjectNotFoundError
from app.schemas.conversation import (
    ConversationCreate,
    ConversationDetailResponse,
    ConversationResponse,
    ConversationUpdate,
    MessageResponse,
)
from models import Conversation, Project

logger = logging.getLogger(__name__)


class ConversationService:
    """Service class for conversation business logic."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.store = ConversationStore(db)

    async def list_conversations(
        self, project_id: UUID | None = None, archived: bool = False
    ) -> list[ConversationResponse]:
        rows = await self.store.list_conversations(project_id=project_id, archived=archived)
        return [self._to_response(conversation, message_count=count) for conversation, count in rows]

    async def create_conversation(self, data: ConversationCreate) -> ConversationResponse:
        """Create an empty conversation."""
        if data.project_id is not None and await self.db.get(Project, data.project_id) is None:
            raise ProjectNotFoundError()

        conversation = await self.store.create_conversation(
            title=data.title,
            model=data.model,
            temperature=data.temperature,
            max_tokens=data.max_tokens,
            project_id=data.project_id,
        )
        await self.db.commit()
        logger.info(f"Created conversation {conversation.id}")

        conversation = await self._get_or_404(conversation.id)
        return self._to_response(conversation, message_count=0)

    async def get_conversation(self, conversation_id: UUID) -> ConversationDetailResponse:
        """Get a conversation with its project and messages in chronological order."""
        conversation = await self._get_or_404(conversation_id)
        messages = await self.store.list_messages(conversation_id)
        summary = self._to_response(conversation, message_count=len(messages))
        return ConversationDetailResponse(
            **summary.model_dump(),
            messages=[MessageResponse.model_validate(message) for message in messages],
        )

    async def update_conversation(self, conversation_id: UUID, data: ConversationUpdate) -> ConversationResponse:
        updates = data.model_dump(exclude_unset=True, exclude_none=True)
        conversation = await self.store.update_conversation(
            conversation_id,
            title=updates.get("title", UNSET),
            archived=updates.get("archived", UNSET),
        )
        if conversation is None:
            raise ConversationNotFoundError()
        await self.db.commit()

        conversation = await self._get_or_404(conversation_id)
        count = await self.store.count_messages(conversation_id)
        return self._to_response(conversation, message_count=count)

    async def delete_conversation(self, conversation_id: UUID) -> None:
        deleted = await self.store.delete_conversation(conversation_id)
        if not deleted:
            raise ConversationNotFoundError()
        await self.db.commit()
        logger.info(f"Deleted conversation {conversation_id}")

    async def list_messages(self, conversation_id: UUID) -> list[MessageResponse]:
        await self._get_or_404(conversation_id)
        messages = await self.store.list_messages(conversation_id)
        return [MessageResponse.model_validate(message) for message in messages]

    async def _get_or_404(self, conversation_id: UUID) -> Conversation:
        conversation = await self.store.get_conversation(conversation_id, include_project=True)
        if conversation is None:
            raise ConversationNotFoundError()
        return conversation

    @staticmethod
    def _to_response(conversation: Conversation, message_count: int) -> ConversationResponse:
        response = ConversationResponse.model_validate(conversation)
        return response.model_copy(update={"message_count": message_count})
