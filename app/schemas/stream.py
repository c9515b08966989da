"""Server-sent frames of the chat stream.

Every frame carries a ``type`` discriminator; the set of frame kinds is
closed and shared by the server relay and the client consumer.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import Field, TypeAdapter

from .base import BaseSchema


class StreamStatistics(BaseSchema):
    """Metrics of a completed assistant message."""

    tokens_per_second: float = 0.0
    total_tokens: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    cached_tokens: int = 0
    time_to_first_token: float = 0.0
    stop_reason: str = ""
    config_snapshot: str = Field("", alias="modelConfig", description="JSON sampling config")
    cost: float = 0.0
    thinking_content: str = ""


class ThinkingFrame(BaseSchema):
    type: Literal["thinking"] = "thinking"
    content: str


class ThinkingDoneFrame(BaseSchema):
    type: Literal["thinking_done"] = "thinking_done"


class ContentFrame(BaseSchema):
    type: Literal["content"] = "content"
    content: str


class StatisticsFrame(BaseSchema):
    type: Literal["statistics"] = "statistics"
    statistics: StreamStatistics


class DoneFrame(BaseSchema):
    type: Literal["done"] = "done"
    message_id: UUID
    conversation_id: UUID


class ErrorFrame(BaseSchema):
    type: Literal["error"] = "error"
    error: str


StreamFrame = Annotated[
    Union[ThinkingFrame, ThinkingDoneFrame, ContentFrame, StatisticsFrame, DoneFrame, ErrorFrame],
    Field(discriminator="type"),
]

STREAM_FRAME_ADAPTER: TypeAdapter[StreamFrame] = TypeAdapter(StreamFrame)
