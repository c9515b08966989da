"""Chat API controller with the streaming chat endpoint."""

import logging

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.dependencies import get_db, get_session_factory, get_stream_client, get_title_generator
from app.domains.chat.relay import StreamRelay, TurnContext
from app.domains.chat.service import ChatService
from app.domains.chat.sse import SSE_HEADERS, SSE_MEDIA_TYPE
from app.schemas.chat import ChatRequest
from app.services.provider import AnthropicStreamClient
from app.services.title import TitleGenerator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/chat",
    tags=["chat"],
)


@router.post("", response_class=StreamingResponse)
async def stream_chat(
    background_tasks: BackgroundTasks,
    chat_request: ChatRequest = Body(...),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    stream_client: AnthropicStreamClient = Depends(get_stream_client),
    title_generator: TitleGenerator = Depends(get_title_generator),
):
    """Stream an assistant answer as server-sent events.

    Request problems (missing message, unknown conversation or project, a
    generation already in flight, provider rejection) are returned as JSON
    errors before any frame is sent. Failures after streaming has started
    arrive as a single ``error`` frame.
    """
    service = ChatService(db, stream_client)
    turn = await service.prepare_turn(chat_request)
    events = await service.open_stream(turn)

    relay = StreamRelay(
        TurnContext(
            conversation_id=turn.conversation_id,
            model=turn.model,
            temperature=turn.temperature,
            max_tokens=turn.max_tokens,
        ),
        session_factory,
        title_trigger=lambda conversation_id: background_tasks.add_task(
            title_generator.generate_title, conversation_id
        ),
        start_time=turn.started_at,
        lease_token=turn.lease_token,
    )
    return StreamingResponse(relay.relay(events), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)
