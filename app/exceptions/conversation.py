"""Conversation and project exceptions."""

from .base import BadRequestError, BaseAppException, ConflictError, NotFoundError


class ConversationNotFoundError(NotFoundError):
    """Raised when a conversation is not found."""

    def __init__(self, message: str = "Conversation not found"):
        super().__init__(message=message, error_code="CONVERSATION_NOT_FOUND")


class ProjectNotFoundError(NotFoundError):
    """Raised when a project is not found."""

    def __init__(self, message: str = "Project not found"):
        super().__init__(message=message, error_code="PROJECT_NOT_FOUND")


class MessageRequiredError(BadRequestError):
    """Raised when a chat request carries neither a message nor a message list."""

    def __init__(self, message: str = "Message or messages array is required"):
        super().__init__(message=message)


class GenerationInProgressError(ConflictError):
    """Raised when a conversation already has an answer being generated."""

    def __init__(self, message: str = "A response is already being generated for this conversation"):
        super().__init__(message=message, error_code="GENERATION_IN_PROGRESS")


class TitleGenerationError(BaseAppException):
    """Raised by the title endpoint when no title could be produced."""

    def __init__(self, message: str = "Failed to generate title"):
        super().__init__(message=message, status_code=500, error_code="TITLE_GENERATION_FAILED")
