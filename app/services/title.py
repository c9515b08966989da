"""Conversation title generation with the cheapest available model."""

import logging
import re
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.domains.conversation.store import ConversationStore
from app.exceptions.base import BadRequestError
from app.exceptions.conversation import ConversationNotFoundError, TitleGenerationError
from app.exceptions.provider import ProviderError
from app.schemas.conversation import TitleResponse
from app.services.pricing import get_cheapest_model
from app.services.provider import AnthropicStreamClient
from models import DEFAULT_CONVERSATION_TITLE

logger = logging.getLogger(__name__)

TITLE_PROMPT = (
    "Generate a very short, concise title (3-6 words) that describes this conversation. "
    "Be specific and descriptive. Only return the title, nothing else.\n\nConversation:\n{context}"
)
CONTEXT_MESSAGES = 2
DEFAULT_TITLE_LENGTH = 100

_WRAPPING_QUOTES = re.compile(r"^[\"']|[\"']$")


def clean_title(text: str) -> str:
    """Trim whitespace and one wrapping quote character at each end."""
    return _WRAPPING_QUOTES.sub("", text.strip())


def is_default_title(title: str, first_message: str | None) -> bool:
    """Whether ``title`` is still one the server assigned rather than a chosen one."""
    if title == DEFAULT_CONVERSATION_TITLE:
        return True
    return first_message is not None and title == first_message[:DEFAULT_TITLE_LENGTH]


class TitleGenerator:
    """Produce and store short descriptive conversation titles.

    Each run opens its own session so it can be scheduled after the request
    that triggered it has finished.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: AnthropicStreamClient,
        model: str | None = None,
        max_tokens: int = 50,
        temperature: float = 0.7,
    ):
        self.session_factory = session_factory
        self.client = client
        self.model = model or get_cheapest_model()
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def create_title(self, conversation_id: UUID) -> TitleResponse:
        """Generate and persist a title unless the current one was customized.

        Raises:
            ConversationNotFoundError: Unknown conversation.
            BadRequestError: Fewer than two messages to summarize.
            TitleGenerationError: The provider call failed.
        """
        async with self.session_factory() as session:
            store = ConversationStore(session)
            conversation = await store.get_conversation(conversation_id)
            if conversation is None:
                raise ConversationNotFoundError()

            messages = await store.list_messages(conversation_id, limit=CONTEXT_MESSAGES)
            if len(messages) < CONTEXT_MESSAGES:
                raise BadRequestError("Conversation needs at least two messages to generate a title")

            if not is_default_title(conversation.title, messages[0].content):
                return TitleResponse(title=conversation.title, generated=False)

            context = "\n\n".join(f"{message.role.value}: {message.content}" for message in messages)
            try:
                text = await self.client.create_message(
                    model=self.model,
                    prompt=TITLE_PROMPT.format(context=context),
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                )
            except ProviderError as e:
                raise TitleGenerationError(e.message) from e

            title = clean_title(text) if text else ""
            if not title:
                logger.warning(f"Empty title returned for conversation {conversation_id}, keeping current title")
                return TitleResponse(title=conversation.title, generated=False)

            await store.update_conversation(conversation_id, title=title)
            await session.commit()

        logger.info(f"Generated title for conversation {conversation_id}: {title!r}")
        return TitleResponse(title=title, generated=True)

    async def generate_title(self, conversation_id: UUID) -> str | None:
        """Run title generation in the background; failures are logged, never raised.

        Returns:
            The new or existing custom title, or None when nothing was generated.
        """
        try:
            result = await self.create_title(conversation_id)
        except BadRequestError:
            logger.info(f"Skipping title generation for {conversation_id}: not enough messages")
            return None
        except Exception as e:
            logger.error(f"Title generation failed for conversation {conversation_id}: {e}")
            return None
        return result.title
