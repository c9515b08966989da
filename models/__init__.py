"""
Models package initialization.
"""

from .base import Base, BaseModel, utcnow
from .conversation import DEFAULT_CONVERSATION_TITLE, Conversation
from .message import Message, MessageRole
from .project import Project

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "Conversation",
    "DEFAULT_CONVERSATION_TITLE",
    "Message",
    "MessageRole",
    "Project",
]
