"""Client side of the chat stream.

``StreamConsumer`` turns the raw bytes of a ``POST /api/chat`` response into
typed frames and folds them into a ``ChatStreamState``, the same way the
browser UI renders a streaming answer. ``ChatStreamClient`` drives it over
``httpx``.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import httpx

from app.schemas.chat import ChatRequest
from app.schemas.stream import (
    STREAM_FRAME_ADAPTER,
    ContentFrame,
    DoneFrame,
    ErrorFrame,
    StatisticsFrame,
    StreamFrame,
    StreamStatistics,
    ThinkingDoneFrame,
    ThinkingFrame,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class ChatClientError(Exception):
    """Raised when the chat endpoint rejects a request before streaming."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ChatStreamState:
    """What the UI shows for one streamed answer."""

    content: str = ""
    thinking: str = ""
    thinking_done: bool = False
    statistics: StreamStatistics | None = None
    message_id: UUID | None = None
    conversation_id: UUID | None = None
    error: str | None = None
    done: bool = False


class StreamConsumer:
    """Incremental parser for ``data:`` framed server-sent events."""

    def __init__(self, state: ChatStreamState | None = None):
        self.state = state or ChatStreamState()
        self.finished = False
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")()

    def feed(self, chunk: str | bytes) -> list[StreamFrame]:
        """Add a chunk of the response body and dispatch every complete line in it.

        A line split across chunks is held back until its newline arrives.
        """
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._handle_lines(lines)

    def flush(self) -> list[StreamFrame]:
        """Dispatch whatever is left in the buffer once the body has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        lines, self._buffer = [self._buffer], ""
        return self._handle_lines(lines)

    def handle_line(self, line: str) -> StreamFrame | None:
        """Parse one line; returns None for non-data lines, the sentinel and malformed frames."""
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            self.finished = True
            return None

        try:
            return STREAM_FRAME_ADAPTER.validate_python(json.loads(payload))
        except ValueError as e:
            logger.warning(f"Skipping malformed stream frame: {e}")
            return None

    def dispatch(self, frame: StreamFrame) -> None:
        state = self.state
        if isinstance(frame, ThinkingFrame):
            state.thinking += frame.content
        elif isinstance(frame, ThinkingDoneFrame):
            state.thinking_done = True
        elif isinstance(frame, ContentFrame):
            state.content += frame.content
        elif isinstance(frame, StatisticsFrame):
            state.statistics = frame.statistics
        elif isinstance(frame, DoneFrame):
            state.message_id = frame.message_id
            state.conversation_id = frame.conversation_id
            state.done = True
        elif isinstance(frame, ErrorFrame):
            state.error = frame.error
        else:
            raise TypeError(f"Unhandled stream frame: {frame!r}")

    async def consume(self, chunks: AsyncIterable[str | bytes]) -> ChatStreamState:
        """Read a whole response body and return the final state."""
        async for chunk in chunks:
            self.feed(chunk)
            if self.finished:
                return self.state
        self.flush()
        return self.state

    def _handle_lines(self, lines: list[str]) -> list[StreamFrame]:
        frames = []
        for line in lines:
            if self.finished:
                break
            frame = self.handle_line(line)
            if frame is not None:
                self.dispatch(frame)
                frames.append(frame)
        return frames


class ChatStreamClient:
    """Send chat turns to a running server and collect the streamed answer."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        timeout: float | None = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    async def send(
        self,
        message: str | None = None,
        messages: list[dict[str, str]] | None = None,
        conversation_id: UUID | None = None,
        project_id: UUID | None = None,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        thinking_enabled: bool = False,
    ) -> ChatStreamState:
        """Stream one answer.

        Raises:
            ChatClientError: The server answered with a JSON error instead of a stream.
        """
        request = ChatRequest(
            message=message,
            messages=messages,
            conversation_id=conversation_id,
            project_id=project_id,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            thinking_enabled=thinking_enabled,
        )
        body = request.model_dump(mode="json", by_alias=True, exclude_none=True)

        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            async with client.stream("POST", "/api/chat", json=body) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise ChatClientError(_error_message(response), status_code=response.status_code)
                return await StreamConsumer().consume(response.aiter_bytes())


def _error_message(response: httpx.Response) -> str:
    try:
        body: Any = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"
