"""Conversation and message schemas for request/response serialization."""

from __future__ import annotations

from uuid import UUID

from pydantic import AliasChoices, Field, field_validator

from .base import BaseModelSchema, BaseSchema


class ConversationCreate(BaseSchema):
    """Schema for creating a conversation explicitly."""

    title: str = Field(..., min_length=1, max_length=255)
    model: str = Field(..., min_length=1, max_length=100)
    project_id: UUID | None = None
    temperature: float = Field(default=1.0, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, ge=1)

    @field_validator("title", "model")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Value cannot be empty or only whitespace")
        return v


class ConversationUpdate(BaseSchema):
    """Schema for updating a conversation."""

    title: str | None = Field(None, min_length=1, max_length=255)
    archived: bool | None = None


class ProjectSummary(BaseSchema):
    """Short project reference embedded in conversation responses."""

    id: UUID
    name: str
    instructions: str | None = None


class MessageResponse(BaseModelSchema):
    """Schema for message response."""

    conversation_id: UUID
    role: str
    content: str
    tokens_per_second: float | None = None
    total_tokens: int | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cached_tokens: int | None = None
    time_to_first_token: float | None = None
    stop_reason: str | None = None
    generation_config: str | None = Field(
        None,
        validation_alias=AliasChoices("generation_config", "modelConfig"),
        serialization_alias="modelConfig",
    )
    cost: float | None = None
    thinking_content: str | None = None

    @field_validator("role", mode="before")
    @classmethod
    def role_value(cls, v):
        return getattr(v, "value", v)


class ConversationResponse(BaseModelSchema):
    """Schema for conversation response."""

    title: str
    model: str
    temperature: float
    max_tokens: int
    project_id: UUID | None = None
    archived: bool = False
    message_count: int | None = None
    project: ProjectSummary | None = None


class ConversationDetailResponse(ConversationResponse):
    """Schema for conversation response with its messages."""

    messages: list[MessageResponse] = Field(default_factory=list)


class TitleResponse(BaseSchema):
    """Schema for the title generation endpoint."""

    title: str
    generated: bool
