"""
Project model for grouping conversations under shared instructions.
"""

from sqlalchemy import Column, String, Text
from sqlalchemy.orm import relationship

from .base import BaseModel


class Project(BaseModel):
    """
    Represents a project entity in the application.

    Instructions are injected into every conversation of the project as a
    cacheable system segment.
    """

    __tablename__ = "projects"

    name = Column(String(255), nullable=False)
    description = Column(Text)
    instructions = Column(Text)

    # Relationships
    conversations = relationship("Conversation", back_populates="project")
