"""Conversation API controller with FastAPI endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_db, get_title_generator
from app.domains.conversation.service import ConversationService
from app.schemas.base import ResponseSchema
from app.schemas.conversation import ConversationCreate, ConversationUpdate
from app.services.title import TitleGenerator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/conversations",
    tags=["conversations"],
)


@router.get("", response_model=ResponseSchema)
async def list_conversations(
    project_id: UUID | None = Query(None, alias="projectId", description="Only conversations of this project"),
    archived: bool = Query(False, description="List archived conversations instead of active ones"),
    db: AsyncSession = Depends(get_db),
):
    """List conversations, most recently updated first."""
    service = ConversationService(db)
    conversations = await service.list_conversations(project_id=project_id, archived=archived)

    return ResponseSchema(
        status="success",
        message="Conversations retrieved successfully",
        data=[conversation.to_wire() for conversation in conversations],
    )


@router.post("", response_model=ResponseSchema, status_code=201)
async def create_conversation(
    conversation_data: ConversationCreate = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """Create an empty conversation."""
    service = ConversationService(db)
    conversation = await service.create_conversation(conversation_data)

    return ResponseSchema(
        status="success",
        message="Conversation created successfully",
        data=conversation.to_wire(),
    )


@router.get("/{conversation_id}", response_model=ResponseSchema)
async def get_conversation(
    conversation_id: UUID = Path(..., description="Conversation ID"),
    db: AsyncSession = Depends(get_db),
):
    """Get a conversation with its project and messages."""
    service = ConversationService(db)
    conversation = await service.get_conversation(conversation_id)

    return ResponseSchema(
        status="success",
        message="Conversation retrieved successfully",
        data=conversation.to_wire(),
    )


@router.patch("/{conversation_id}", response_model=ResponseSchema)
async def update_conversation(
    conversation_id: UUID = Path(..., description="Conversation ID"),
    conversation_data: ConversationUpdate = Body(...),
    db: AsyncSession = Depends(get_db),
):
    """Rename or (un)archive a conversation."""
    service = ConversationService(db)
    conversation = await service.update_conversation(conversation_id, conversation_data)

    return ResponseSchema(
        status="success",
        message="Conversation updated successfully",
        data=conversation.to_wire(),
    )


@router.delete("/{conversation_id}", response_model=ResponseSchema)
async def delete_conversation(
    conversation_id: UUID = Path(..., description="Conversation ID"),
    db: AsyncSession = Depends(get_db),
):
    """Delete a conversation and all of its messages."""
    service = ConversationService(db)
    await service.delete_conversation(conversation_id)

    return ResponseSchema(
        status="success",
        message="Conversation deleted successfully",
        data={"success": True},
    )


@router.get("/{conversation_id}/messages", response_model=ResponseSchema)
async def list_messages(
    conversation_id: UUID = Path(..., description="Conversation ID"),
    db: AsyncSession = Depends(get_db),
):
    """List the messages of a conversation in chronological order."""
    service = ConversationService(db)
    messages = await service.list_messages(conversation_id)

    return ResponseSchema(
        status="success",
        message="Messages retrieved successfully",
        data=[message.to_wire() for message in messages],
    )


@router.post("/{conversation_id}/generate-title", response_model=ResponseSchema)
async def generate_title(
    conversation_id: UUID = Path(..., description="Conversation ID"),
    title_generator: TitleGenerator = Depends(get_title_generator),
):
    """Generate a short title from the first exchange of a conversation.

    A title the user already customized, or an empty model answer, leaves the
    title unchanged with ``generated`` set to false.
    """
    result = await title_generator.create_title(conversation_id)

    return ResponseSchema(
        status="success",
        message="Title generated successfully" if result.generated else "Title unchanged",
        data=result.to_wire(),
    )
