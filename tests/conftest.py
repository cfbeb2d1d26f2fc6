import asyncio
from dataclasses import dataclass, field

import pytest

from piai.context import Conversation
from piai.events import (
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)
from piai.message import TextContent, UserMessage
from piai.provider import adapt_chunks
from piai.tools import Tool


# ---------------------------------------------------------------------------
# Fake chunk dataclasses (mirrors the OpenAI ChatCompletionChunk shape)
# ---------------------------------------------------------------------------

@dataclass
class FakeFunctionDelta:
    name: str | None = None
    arguments: str | None = None


@dataclass
class FakeToolCallDelta:
    index: int
    id: str | None = None
    function: FakeFunctionDelta | None = None


@dataclass
class FakeDelta:
    content: str | None = None
    tool_calls: list[FakeToolCallDelta] | None = None
    role: str | None = None


@dataclass
class FakeChunkChoice:
    delta: FakeDelta = field(default_factory=FakeDelta)
    finish_reason: str | None = None
    index: int = 0


@dataclass
class FakeChunk:
    choices: list[FakeChunkChoice] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Chunk builder helpers
# ---------------------------------------------------------------------------

def role_chunk() -> FakeChunk:
    """Opening chunk: role only, empty content."""
    return FakeChunk(choices=[FakeChunkChoice(delta=FakeDelta(role="assistant", content=""))])


def text_chunk(text: str, finish_reason: str | None = None) -> FakeChunk:
    return FakeChunk(choices=[FakeChunkChoice(
        delta=FakeDelta(content=text), finish_reason=finish_reason,
    )])


def tool_chunk(
    index: int,
    arguments: str | None = None,
    call_id: str | None = None,
    name: str | None = None,
) -> FakeChunk:
    """Chunk carrying one tool-call delta."""
    return FakeChunk(choices=[FakeChunkChoice(delta=FakeDelta(tool_calls=[
        FakeToolCallDelta(
            index=index, id=call_id,
            function=FakeFunctionDelta(name=name, arguments=arguments),
        ),
    ]))])


def mixed_chunk(
    text: str | None = None,
    tool_calls: list[FakeToolCallDelta] | None = None,
    finish_reason: str | None = None,
) -> FakeChunk:
    """Chunk carrying text and several tool-call deltas at once."""
    return FakeChunk(choices=[FakeChunkChoice(
        delta=FakeDelta(content=text, tool_calls=tool_calls),
        finish_reason=finish_reason,
    )])


def call_delta(
    index: int,
    arguments: str | None = None,
    call_id: str | None = None,
    name: str | None = None,
) -> FakeToolCallDelta:
    return FakeToolCallDelta(
        index=index, id=call_id,
        function=FakeFunctionDelta(name=name, arguments=arguments),
    )


def finish_chunk(reason: str) -> FakeChunk:
    return FakeChunk(choices=[FakeChunkChoice(finish_reason=reason)])


async def iter_chunks(chunks, error: Exception | None = None, hang: bool = False):
    """Async iterator over *chunks*, like the SDK's ``AsyncStream``.

    Raises *error* after the last chunk, or blocks forever when *hang*.
    """
    for chunk in chunks:
        await asyncio.sleep(0)
        yield chunk
    if error is not None:
        raise error
    if hang:
        await asyncio.Event().wait()


def chunk_source(chunks, **kwargs):
    """Source factory for ``start_stream`` built from fake chunks."""
    async def open_source():
        return adapt_chunks(iter_chunks(chunks, **kwargs))
    return open_source


async def drain(stream):
    """Read every event, then the outcome.

    Returns ``(events, message, error)``; exactly one of the last two
    is ``None``.
    """
    events = [e async for e in stream]
    error = await stream.error()
    message = None if error else await stream.result()
    return events, message, error


# ---------------------------------------------------------------------------
# Invariant checks
# ---------------------------------------------------------------------------

def assert_well_formed(events, message):
    """Check the block invariants of a successfully completed stream."""
    open_index = None
    open_kind = None
    ended = []
    text_deltas: dict[int, list[str]] = {}

    for event in events:
        if isinstance(event, (TextStartEvent, ToolCallStartEvent)):
            assert open_index is None, "block opened while another is open"
            kind = "text" if isinstance(event, TextStartEvent) else "tool"
            expected = len(ended)
            assert event.content_index == expected
            open_index, open_kind = event.content_index, kind
        elif isinstance(event, TextDeltaEvent):
            assert open_kind == "text" and event.content_index == open_index
            text_deltas.setdefault(event.content_index, []).append(event.delta)
        elif isinstance(event, TextEndEvent):
            assert open_kind == "text" and event.content_index == open_index
            assert "".join(text_deltas[event.content_index]) == event.content
            ended.append(TextContent(text=event.content))
            open_index = open_kind = None
        elif isinstance(event, ToolCallEndEvent):
            assert open_kind == "tool" and event.content_index == open_index
            ended.append(event.tool_call)
            open_index = open_kind = None

    assert open_index is None, "block left open"
    assert message.contents == ended


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def weather_tool():
    return Tool(
        name="getWeather",
        description="Get the weather for a given location",
        parameters={
            "type": "object",
            "properties": {"location": {"type": "string"}},
            "required": ["location"],
        },
    )


@pytest.fixture
def conversation(weather_tool):
    return Conversation(
        system_prompt="You are a helpful assistant.",
        messages=[UserMessage.text("What is the weather in Tokyo?")],
        tools=[weather_tool],
    )

