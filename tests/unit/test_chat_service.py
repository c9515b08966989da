"""
Unit tests for ChatService.

This module covers how a chat request is turned into a prepared turn: history
assembly, conversation resolution, the generation lease and provider rejection.
"""

import uuid

import pytest

from app.domains.chat.service import ChatService
from app.domains.conversation.store import ConversationStore
from app.exceptions.conversation import (
    ConversationNotFoundError,
    GenerationInProgressError,
    MessageRequiredError,
    ProjectNotFoundError,
)
from app.exceptions.provider import ProviderAuthenticationError
from app.schemas.chat import ChatRequest
from models import DEFAULT_CONVERSATION_TITLE, MessageRole


class TestPrepareTurn:
    """Test cases for ChatService.prepare_turn."""

    @pytest.mark.asyncio
    async def test_single_message_creates_conversation(self, test_db, fake_client):
        service = ChatService(test_db, fake_client)

        turn = await service.prepare_turn(ChatRequest(message="What is SSE?"))

        conversation = await ConversationStore(test_db).get_conversation(turn.conversation_id)
        assert conversation.title == "What is SSE?"
        assert conversation.model == "claude-sonnet-4-5-20250929"
        assert turn.history == [{"role": "user", "content": "What is SSE?"}]
        assert turn.temperature == 1.0
        assert turn.max_tokens == 8192
        assert turn.lease_token is not None
        assert turn.instructions is None

        messages = await ConversationStore(test_db).list_messages(turn.conversation_id)
        assert [(m.role, m.content) for m in messages] == [(MessageRole.USER, "What is SSE?")]

    @pytest.mark.asyncio
    async def test_long_first_message_title_is_truncated(self, test_db, fake_client):
        turn = await ChatService(test_db, fake_client).prepare_turn(ChatRequest(message="x" * 250))

        conversation = await ConversationStore(test_db).get_conversation(turn.conversation_id)
        assert conversation.title == "x" * 100

    @pytest.mark.asyncio
    async def test_message_appended_to_stored_history(self, test_db, fake_client, conversation_with_exchange):
        service = ChatService(test_db, fake_client)

        turn = await service.prepare_turn(
            ChatRequest(message="And sourdough?", conversation_id=conversation_with_exchange.id)
        )

        assert turn.conversation_id == conversation_with_exchange.id
        assert turn.history == [
            {"role": "user", "content": "How do I bake bread?"},
            {"role": "assistant", "content": "Mix flour, water, yeast and salt."},
            {"role": "user", "content": "And sourdough?"},
        ]
        assert await ConversationStore(test_db).count_messages(conversation_with_exchange.id) == 3

    @pytest.mark.asyncio
    async def test_full_history_is_used_as_given(self, test_db, fake_client):
        request = ChatRequest(
            messages=[
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
                {"role": "user", "content": "bye"},
            ],
            model="claude-3-haiku-20240307",
            temperature=0.2,
            max_tokens=256,
            thinking_enabled=True,
        )

        turn = await ChatService(test_db, fake_client).prepare_turn(request)

        assert [m["content"] for m in turn.history] == ["hi", "hello", "bye"]
        assert turn.model == "claude-3-haiku-20240307"
        assert turn.temperature == 0.2
        assert turn.max_tokens == 256
        assert turn.thinking_enabled is True
        messages = await ConversationStore(test_db).list_messages(turn.conversation_id)
        assert [m.content for m in messages] == ["bye"]

    @pytest.mark.asyncio
    async def test_project_instructions_are_attached(self, test_db, fake_client, test_project):
        turn = await ChatService(test_db, fake_client).prepare_turn(
            ChatRequest(message="Ahoy?", project_id=test_project.id)
        )

        conversation = await ConversationStore(test_db).get_conversation(turn.conversation_id)
        assert conversation.project_id == test_project.id
        assert turn.instructions == "Answer like a pirate."

    @pytest.mark.asyncio
    async def test_missing_message(self, test_db, fake_client):
        service = ChatService(test_db, fake_client)

        with pytest.raises(MessageRequiredError):
            await service.prepare_turn(ChatRequest())
        with pytest.raises(MessageRequiredError):
            await service.prepare_turn(ChatRequest(message="   "))
        with pytest.raises(MessageRequiredError):
            await service.prepare_turn(ChatRequest(messages=[]))

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, test_db, fake_client):
        with pytest.raises(ConversationNotFoundError):
            await ChatService(test_db, fake_client).prepare_turn(
                ChatRequest(message="hi", conversation_id=uuid.uuid4())
            )

    @pytest.mark.asyncio
    async def test_unknown_project(self, test_db, fake_client):
        with pytest.raises(ProjectNotFoundError):
            await ChatService(test_db, fake_client).prepare_turn(ChatRequest(message="hi", project_id=uuid.uuid4()))

    @pytest.mark.asyncio
    async def test_second_generation_is_rejected(self, test_db, fake_client, test_conversation):
        conversation_id = test_conversation.id
        service = ChatService(test_db, fake_client)
        await service.prepare_turn(ChatRequest(message="first", conversation_id=conversation_id))

        with pytest.raises(GenerationInProgressError):
            await service.prepare_turn(ChatRequest(message="second", conversation_id=conversation_id))

        messages = await ConversationStore(test_db).list_messages(conversation_id)
        assert [m.content for m in messages] == ["first"]


class TestOpenStream:
    """Test cases for ChatService.open_stream."""

    @pytest.mark.asyncio
    async def test_open_stream_passes_turn_settings(self, test_db, fake_client, test_project):
        service = ChatService(test_db, fake_client)
        turn = await service.prepare_turn(ChatRequest(message="Ahoy?", project_id=test_project.id))

        await service.open_stream(turn)

        assert turn.started_at is not None
        assert fake_client.stream_calls == [
            {
                "model": turn.model,
                "history": turn.history,
                "temperature": turn.temperature,
                "max_tokens": turn.max_tokens,
                "instructions": "Answer like a pirate.",
                "thinking_enabled": False,
            }
        ]

    @pytest.mark.asyncio
    async def test_rejection_releases_lease(self, test_db, fake_client, test_conversation):
        fake_client.open_error = ProviderAuthenticationError()
        service = ChatService(test_db, fake_client)
        turn = await service.prepare_turn(ChatRequest(message="hi", conversation_id=test_conversation.id))

        with pytest.raises(ProviderAuthenticationError):
            await service.open_stream(turn)

        assert turn.lease_token is None
        assert await ConversationStore(test_db).acquire_generation_lease(test_conversation.id, 600) is not None


class TestDefaultTitle:
    """A new conversation whose first message is empty gets the placeholder title."""

    @pytest.mark.asyncio
    async def test_empty_first_message(self, test_db, fake_client):
        request = ChatRequest(messages=[{"role": "user", "content": ""}])

        turn = await ChatService(test_db, fake_client).prepare_turn(request)

        conversation = await ConversationStore(test_db).get_conversation(turn.conversation_id)
        assert conversation.title == DEFAULT_CONVERSATION_TITLE
