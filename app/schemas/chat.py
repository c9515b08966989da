"""Chat schemas for the streaming chat endpoint."""

from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import Field, field_validator

from .base import BaseSchema


class ChatTurn(BaseSchema):
    """A single role-tagged message of a conversation history."""

    role: Literal["user", "assistant"] = Field(..., description="Author of the message")
    content: str = Field(..., description="Message text")


class ChatRequest(BaseSchema):
    """Schema for a chat request.

    Either ``message`` (appended to the stored history of ``conversation_id``)
    or a full ``messages`` history must be provided.
    """

    message: str | None = Field(None, description="Single new user message")
    messages: list[ChatTurn] | None = Field(None, description="Full message history")
    model: str | None = Field(None, max_length=100, description="Model identifier")
    temperature: float | None = Field(None, ge=0.0, le=1.0, description="Sampling temperature")
    max_tokens: int | None = Field(None, ge=1, description="Maximum output tokens")
    conversation_id: UUID | None = Field(None, description="Existing conversation ID, null for new")
    project_id: UUID | None = Field(None, description="Project for a new conversation")
    thinking_enabled: bool = Field(default=False, description="Enable extended thinking")

    @field_validator("message")
    @classmethod
    def blank_message_is_missing(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v
