"""
Unit tests for StreamRelay.

Each test drives the relay with a scripted provider stream and checks the SSE
frames it emits and what it persists.
"""

import json

import anyio
import pytest

from app.domains.chat.relay import StreamRelay, StreamState, TurnContext
from app.domains.conversation.store import ConversationStore
from app.exceptions.provider import ProviderUnavailableError
from app.services.pricing import calculate_message_cost
from app.services.provider import (
    BlockKind,
    ContentBlockStart,
    ContentBlockStop,
    ContentDelta,
    MessageStart,
    MessageStop,
    UsageDelta,
)
from models import MessageRole
from tests.factories import FakeClock, FakeStreamClient, text_events, thinking_events

MODEL = "claude-sonnet-4-5-20250929"


def parse_frames(chunks):
    frames = []
    for chunk in chunks:
        assert chunk.startswith("data: ")
        assert chunk.endswith("\n\n")
        frames.append(json.loads(chunk[len("data: "):]))
    return frames


async def run_relay(relay, events):
    client = FakeStreamClient(events=events)
    stream = await client.open_stream()
    chunks = [chunk async for chunk in relay.relay(stream)]
    return parse_frames(chunks), client


async def list_messages(session_factory, conversation_id):
    async with session_factory() as session:
        return await ConversationStore(session).list_messages(conversation_id)


@pytest.fixture
def context(test_conversation):
    return TurnContext(conversation_id=test_conversation.id, model=MODEL, temperature=0.7, max_tokens=1024)


class TestStreamRelay:
    """Test cases for the relay state machine."""

    @pytest.mark.asyncio
    async def test_text_stream_round_trip(self, context, session_factory):
        """Text deltas are relayed in order and one message holding their concatenation is stored."""
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)

        frames, client = await run_relay(relay, text_events("a", "b", input_tokens=10, output_tokens=2))

        assert [frame["type"] for frame in frames] == ["content", "content", "statistics", "done"]
        assert frames[0]["content"] == "a"
        assert frames[1]["content"] == "b"
        assert relay.state is StreamState.DONE
        assert client.closed is True

        messages = await list_messages(session_factory, context.conversation_id)
        assert len(messages) == 1
        message = messages[0]
        assert message.role is MessageRole.ASSISTANT
        assert message.content == "ab"
        assert frames[3] == {
            "type": "done",
            "messageId": str(message.id),
            "conversationId": str(context.conversation_id),
        }

    @pytest.mark.asyncio
    async def test_statistics_frame_and_persisted_metrics(self, context, session_factory):
        clock = FakeClock(start=100.0, step=0.5)
        relay = StreamRelay(context, session_factory, clock=clock, start_time=100.0)

        frames, _ = await run_relay(relay, text_events("a", "b", input_tokens=10, output_tokens=2))
        statistics = frames[2]["statistics"]

        # first delta read the clock at 100.5, finalize at 101.0
        assert statistics["timeToFirstToken"] == pytest.approx(0.5)
        assert statistics["totalTokens"] == 12
        assert statistics["inputTokens"] == 10
        assert statistics["outputTokens"] == 2
        assert statistics["tokensPerSecond"] == pytest.approx(12 / 1.0)
        assert statistics["stopReason"] == "end_turn"
        assert statistics["cost"] == pytest.approx(calculate_message_cost(MODEL, 10, 2, 0))
        assert json.loads(statistics["modelConfig"]) == {"model": MODEL, "temperature": 0.7, "maxTokens": 1024}
        assert statistics["thinkingContent"] == ""

        message = (await list_messages(session_factory, context.conversation_id))[0]
        assert message.total_tokens == 12
        assert message.time_to_first_token == pytest.approx(0.5)
        assert message.stop_reason == "end_turn"
        assert json.loads(message.generation_config)["maxTokens"] == 1024

    @pytest.mark.asyncio
    async def test_time_to_first_token_counts_thinking_delta(self, context, session_factory):
        """The first delta of either kind sets the first-token time, exactly once."""
        clock = FakeClock(start=200.0, step=0.25)
        relay = StreamRelay(context, session_factory, clock=clock, start_time=199.0)

        frames, _ = await run_relay(relay, thinking_events("reasoning", "answer"))

        assert frames[-2]["statistics"]["timeToFirstToken"] == pytest.approx(200.25 - 199.0)
        assert relay.metrics.first_token_time == clock.readings[0]

    @pytest.mark.asyncio
    async def test_thinking_scenario(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)

        frames, _ = await run_relay(relay, thinking_events("reasoning…", "answer"))

        assert [frame["type"] for frame in frames] == ["thinking", "thinking_done", "content", "statistics", "done"]
        assert frames[0]["content"] == "reasoning…"
        assert frames[2]["content"] == "answer"
        assert frames[3]["statistics"]["thinkingContent"] == "reasoning…"

        message = (await list_messages(session_factory, context.conversation_id))[0]
        assert message.thinking_content == "reasoning…"
        assert message.content == "answer"

    @pytest.mark.asyncio
    async def test_zero_tokens_give_zero_throughput(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)
        events = [MessageStart(), ContentBlockStart(BlockKind.TEXT), ContentBlockStop(), MessageStop()]

        frames, _ = await run_relay(relay, events)
        statistics = frames[-2]["statistics"]

        assert statistics["tokensPerSecond"] == 0
        assert statistics["totalTokens"] == 0
        assert statistics["timeToFirstToken"] == 0

    @pytest.mark.asyncio
    async def test_zero_duration_gives_zero_throughput(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=lambda: 100.0, start_time=100.0)

        frames, _ = await run_relay(relay, text_events("x", input_tokens=5, output_tokens=5))

        assert frames[-2]["statistics"]["totalTokens"] == 10
        assert frames[-2]["statistics"]["tokensPerSecond"] == 0

    @pytest.mark.asyncio
    async def test_mid_stream_failure(self, context, session_factory):
        """Frames already sent stay sent, one error frame follows and nothing is stored."""
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)
        events = [
            MessageStart(input_tokens=5),
            ContentBlockStart(BlockKind.TEXT),
            ContentDelta("partial"),
            ProviderUnavailableError("connection reset"),
        ]

        frames, client = await run_relay(relay, events)

        assert frames == [{"type": "content", "content": "partial"}, {"type": "error", "error": "Streaming failed"}]
        assert relay.state is StreamState.ERRORED
        assert client.closed is True
        assert await list_messages(session_factory, context.conversation_id) == []

    @pytest.mark.asyncio
    async def test_stream_ending_without_stop_is_an_error(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)
        events = [MessageStart(), ContentBlockStart(BlockKind.TEXT), ContentDelta("cut")]

        frames, _ = await run_relay(relay, events)

        assert [frame["type"] for frame in frames] == ["content", "error"]
        assert await list_messages(session_factory, context.conversation_id) == []

    @pytest.mark.asyncio
    async def test_events_after_done_are_ignored(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)

        frames, _ = await run_relay(relay, [*text_events("a"), ContentDelta("late"), MessageStop()])

        assert [frame["type"] for frame in frames] == ["content", "statistics", "done"]
        assert len(await list_messages(session_factory, context.conversation_id)) == 1

    @pytest.mark.asyncio
    async def test_usage_delta_without_output_keeps_totals(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)
        events = [
            MessageStart(input_tokens=4, output_tokens=1),
            ContentBlockStart(BlockKind.TEXT),
            ContentDelta("x"),
            ContentBlockStop(),
            UsageDelta(output_tokens=3),
            UsageDelta(stop_reason="stop_sequence"),
            MessageStop(),
        ]

        frames, _ = await run_relay(relay, events)
        statistics = frames[-2]["statistics"]

        assert statistics["outputTokens"] == 3
        assert statistics["totalTokens"] == 7
        assert statistics["stopReason"] == "stop_sequence"

    @pytest.mark.asyncio
    async def test_unknown_event_is_an_error(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)

        frames, _ = await run_relay(relay, [MessageStart(), object()])

        assert frames == [{"type": "error", "error": "Streaming failed"}]

    @pytest.mark.asyncio
    async def test_cached_tokens_are_priced(self, context, session_factory):
        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0)
        events = text_events("x", input_tokens=100, output_tokens=10)
        events[0] = MessageStart(input_tokens=100, output_tokens=1, cached_tokens=5000)

        frames, _ = await run_relay(relay, events)
        statistics = frames[-2]["statistics"]

        assert statistics["cachedTokens"] == 5000
        assert statistics["cost"] == pytest.approx(calculate_message_cost(MODEL, 100, 10, 5000))


class TestTitleTrigger:
    """The first full exchange schedules title generation, later ones do not."""

    @pytest.mark.asyncio
    async def test_second_message_triggers_title_once(self, context, session_factory, test_db):
        await ConversationStore(test_db).create_message(context.conversation_id, MessageRole.USER, "Hello")
        await test_db.commit()
        scheduled = []

        relay = StreamRelay(context, session_factory, title_trigger=scheduled.append, clock=FakeClock(), start_time=100.0)
        await run_relay(relay, text_events("Hi"))

        assert scheduled == [context.conversation_id]

        await ConversationStore(test_db).create_message(context.conversation_id, MessageRole.USER, "Again")
        await test_db.commit()
        relay = StreamRelay(context, session_factory, title_trigger=scheduled.append, clock=FakeClock(), start_time=100.0)
        await run_relay(relay, text_events("Sure"))

        assert scheduled == [context.conversation_id]

    @pytest.mark.asyncio
    async def test_trigger_failure_does_not_break_stream(self, context, session_factory, test_db):
        await ConversationStore(test_db).create_message(context.conversation_id, MessageRole.USER, "Hello")
        await test_db.commit()

        def failing_trigger(_conversation_id):
            raise RuntimeError("scheduler down")

        relay = StreamRelay(context, session_factory, title_trigger=failing_trigger, clock=FakeClock(), start_time=100.0)
        frames, _ = await run_relay(relay, text_events("Hi"))

        assert frames[-1]["type"] == "done"


class TestLeaseRelease:
    """The generation lease is released whatever the outcome."""

    @pytest.mark.asyncio
    async def test_lease_released_after_success(self, context, session_factory, test_db):
        store = ConversationStore(test_db)
        token = await store.acquire_generation_lease(context.conversation_id, 600)
        await test_db.commit()

        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0, lease_token=token)
        await run_relay(relay, text_events("ok"))

        async with session_factory() as session:
            assert await ConversationStore(session).acquire_generation_lease(context.conversation_id, 600) is not None

    @pytest.mark.asyncio
    async def test_lease_released_after_failure(self, context, session_factory, test_db):
        store = ConversationStore(test_db)
        token = await store.acquire_generation_lease(context.conversation_id, 600)
        await test_db.commit()

        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0, lease_token=token)
        await run_relay(relay, [MessageStart(), RuntimeError("boom")])

        async with session_factory() as session:
            assert await ConversationStore(session).acquire_generation_lease(context.conversation_id, 600) is not None

    @pytest.mark.asyncio
    async def test_lease_released_when_client_disconnects(self, context, session_factory, test_db):
        """Cancelling the body mid-stream still closes upstream and frees the conversation."""
        store = ConversationStore(test_db)
        token = await store.acquire_generation_lease(context.conversation_id, 600)
        await test_db.commit()
        upstream_closed = []

        async def stalled_stream():
            try:
                yield MessageStart(input_tokens=3, output_tokens=1)
                yield ContentBlockStart(BlockKind.TEXT)
                yield ContentDelta("a")
                await anyio.sleep_forever()
            finally:
                upstream_closed.append(True)

        relay = StreamRelay(context, session_factory, clock=FakeClock(), start_time=100.0, lease_token=token)
        chunks = []
        with anyio.CancelScope() as scope:
            async for chunk in relay.relay(stalled_stream()):
                chunks.append(chunk)
                scope.cancel()

        assert scope.cancelled_caught
        assert parse_frames(chunks) == [{"type": "content", "content": "a"}]
        assert upstream_closed == [True]

        async with session_factory() as session:
            assert await ConversationStore(session).acquire_generation_lease(context.conversation_id, 600) is not None
        assert await list_messages(session_factory, context.conversation_id) == []
