"""Persistence operations for conversations, messages and generation leases.

The store wraps an ``AsyncSession`` and never commits on its own; callers own
the transaction boundary.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from app.schemas.stream import StreamStatistics
from models import Conversation, Message, MessageRole, utcnow

logger = logging.getLogger(__name__)

UNSET: Any = object()


class ConversationStore:
    """Conversation/message persistence bound to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_conversation(
        self,
        title: str,
        model: str,
        temperature: float,
        max_tokens: int,
        project_id: UUID | None = None,
    ) -> Conversation:
        conversation = Conversation(
            title=title,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            project_id=project_id,
        )
        self.db.add(conversation)
        await self.db.flush()
        return conversation

    async def get_conversation(self, conversation_id: UUID, include_project: bool = False) -> Conversation | None:
        stmt = select(Conversation).where(Conversation.id == conversation_id)
        if include_project:
            stmt = stmt.options(selectinload(Conversation.project))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_conversations(
        self, project_id: UUID | None = None, archived: bool = False
    ) -> list[tuple[Conversation, int]]:
        """List conversations newest first, each paired with its message count."""
        message_count = func.count(Message.id)
        stmt = (
            select(Conversation, message_count)
            .outerjoin(Message, Message.conversation_id == Conversation.id)
            .options(selectinload(Conversation.project))
            .where(Conversation.archived == archived)
            .group_by(Conversation.id)
            .order_by(Conversation.updated_at.desc())
        )
        if project_id is not None:
            stmt = stmt.where(Conversation.project_id == project_id)
        result = await self.db.execute(stmt)
        return [(conversation, count) for conversation, count in result.all()]

    async def list_messages(
        self, conversation_id: UUID, ascending: bool = True, limit: int | None = None
    ) -> list[Message]:
        order = Message.created_at.asc() if ascending else Message.created_at.desc()
        stmt = select(Message).where(Message.conversation_id == conversation_id).order_by(order)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_message(
        self,
        conversation_id: UUID,
        role: MessageRole,
        content: str,
        metrics: StreamStatistics | None = None,
    ) -> Message:
        message = Message(conversation_id=conversation_id, role=role, content=content)
        if metrics is not None:
            message.tokens_per_second = metrics.tokens_per_second
            message.total_tokens = metrics.total_tokens
            message.input_tokens = metrics.input_tokens
            message.output_tokens = metrics.output_tokens
            message.cached_tokens = metrics.cached_tokens
            message.time_to_first_token = metrics.time_to_first_token
            message.stop_reason = metrics.stop_reason
            message.generation_config = metrics.config_snapshot
            message.cost = metrics.cost
            message.thinking_content = metrics.thinking_content
        self.db.add(message)
        await self.db.flush()
        return message

    async def count_messages(self, conversation_id: UUID) -> int:
        stmt = select(func.count(Message.id)).where(Message.conversation_id == conversation_id)
        result = await self.db.execute(stmt)
        return result.scalar() or 0

    async def update_conversation(
        self,
        conversation_id: UUID,
        title: str = UNSET,
        archived: bool = UNSET,
        updated_at: datetime = UNSET,
    ) -> Conversation | None:
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            return None
        if title is not UNSET:
            conversation.title = title
        if archived is not UNSET:
            conversation.archived = archived
        conversation.updated_at = updated_at if updated_at is not UNSET else utcnow()
        await self.db.flush()
        return conversation

    async def delete_conversation(self, conversation_id: UUID) -> bool:
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            return False
        await self.db.execute(delete(Message).where(Message.conversation_id == conversation_id))
        await self.db.delete(conversation)
        await self.db.flush()
        return True

    async def acquire_generation_lease(self, conversation_id: UUID, ttl_seconds: int) -> str | None:
        """Claim the conversation for one in-flight generation.

        Returns the lease token, or None when another unexpired lease exists.
        """
        now = utcnow()
        token = str(uuid.uuid4())
        stmt = (
            update(Conversation)
            .where(
                Conversation.id == conversation_id,
                or_(
                    Conversation.generation_token.is_(None),
                    Conversation.generation_started_at < now - timedelta(seconds=ttl_seconds),
                ),
            )
            .values(
                generation_token=token,
                generation_started_at=now,
                updated_at=Conversation.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            logger.info(f"Generation lease for conversation {conversation_id} is held")
            return None
        return token

    async def release_generation_lease(self, conversation_id: UUID, token: str) -> bool:
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id, Conversation.generation_token == token)
            .values(
                generation_token=None,
                generation_started_at=None,
                updated_at=Conversation.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
