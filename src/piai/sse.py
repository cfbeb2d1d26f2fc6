"""Server-Sent Events adapter for assistant message event streams."""

from __future__ import annotations

from collections.abc import AsyncIterator

from piai.events import AssistantMessageEvent


async def sse_generator(
    event_stream: AsyncIterator[AssistantMessageEvent],
) -> AsyncIterator[str]:
    """Convert an event stream into SSE-formatted strings."""
    async for event in event_stream:
        yield f"event: {event.type}\ndata: {event.model_dump_json()}\n\n"
    yield "event: end\ndata: {}\n\n"
