"""
Message model for user prompts and assistant answers.
"""

import enum

from sqlalchemy import Column, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import UUID, BaseModel


class MessageRole(str, enum.Enum):
    """Message role enumeration."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """
    Represents a chat message entity in the application.

    Metric columns are only populated for assistant messages, once the stream
    that produced them has completed.
    """

    __tablename__ = "messages"

    conversation_id = Column(
        UUID(), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(Enum(MessageRole, values_callable=lambda e: [m.value for m in e]), nullable=False)
    content = Column(Text, nullable=False)

    # Assistant-only metrics
    tokens_per_second = Column(Float)
    total_tokens = Column(Integer)
    input_tokens = Column(Integer)
    output_tokens = Column(Integer)
    cached_tokens = Column(Integer)
    time_to_first_token = Column(Float)
    stop_reason = Column(String(50))
    generation_config = Column(Text)  # JSON snapshot: {"model", "temperature", "maxTokens"}
    cost = Column(Float)
    thinking_content = Column(Text)

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")
