"""Server-sent event framing for the chat stream."""

import json

from app.schemas.base import BaseSchema

SSE_MEDIA_TYPE = "text/event-stream"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(frame: BaseSchema) -> str:
    """Format one frame as a ``data:`` line followed by a blank line."""
    return f"data: {json.dumps(frame.to_wire(), separators=(',', ':'), ensure_ascii=False)}\n\n"
