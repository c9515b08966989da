"""
Conversation model for chat sessions with the model provider.
"""

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from .base import UUID, BaseModel

DEFAULT_CONVERSATION_TITLE = "New Conversation"


class Conversation(BaseModel):
    """
    Represents a chat conversation entity in the application.

    ``generation_token`` and ``generation_started_at`` hold the lease of the
    stream currently generating an answer for this conversation, if any.
    """

    __tablename__ = "conversations"

    title = Column(String(255), nullable=False, default=DEFAULT_CONVERSATION_TITLE)
    model = Column(String(100), nullable=False)
    temperature = Column(Float, nullable=False, default=1.0)
    max_tokens = Column(Integer, nullable=False, default=4096)
    project_id = Column(UUID(), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    archived = Column(Boolean, nullable=False, default=False)

    generation_token = Column(String(36), nullable=True)
    generation_started_at = Column(DateTime, nullable=True)

    # Relationships
    project = relationship("Project", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Message.created_at",
    )
