from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any, assert_never

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from piai import instrumentation as inst
from piai.context import Conversation
from piai.engine import start_stream
from piai.errors import ConfigError, SourceError
from piai.message import (
    AssistantMessage,
    ImageContent,
    ModelProvider as ProviderType,
    StopReason,
    TextContent,
    ToolCall,
    ToolResultMessage,
    UserMessage,
)
from piai.stream import AssistantMessageEventStream
from piai.streaming import StreamChunk, ToolCallFragment, parse_arguments
from piai.tools import Tool

logger = logging.getLogger(__name__)


class ModelProvider(ABC):
    """A single model served by a backend.

    Args:
        model: Model identifier sent to the backend.
        provider_type: Which provider serves the model.
    """

    def __init__(self, model: str, provider_type: ProviderType):
        self.model = model
        self.provider_type = provider_type

    @abstractmethod
    def stream(
        self,
        conversation: Conversation,
        *,
        timeout: float | None = None,
    ) -> AssistantMessageEventStream:
        """Start a streaming call and return its handle immediately.

        Must be called from a running event loop.  *timeout* bounds the
        whole stream, in seconds.
        """

    @abstractmethod
    async def complete(self, conversation: Conversation) -> AssistantMessage:
        """Single request/response call."""


# ---------------------------------------------------------------------------
# OpenAI-compatible backends
# ---------------------------------------------------------------------------

class OpenAIConfig(BaseModel):
    api_key: str = ""
    base_url: str | None = None
    max_retries: int = 5
    timeout: float = 600.0


_STOP_REASONS = {
    "stop": StopReason.STOP,
    "length": StopReason.LENGTH,
    "tool_calls": StopReason.TOOL_USE,
    "function_call": StopReason.TOOL_USE,
    "content_filter": StopReason.ABORTED,
}


def stop_reason_from_openai(reason: str | None) -> StopReason:
    return _STOP_REASONS.get(reason or "", StopReason.UNKNOWN)


class OpenAIProvider(ModelProvider):
    """Provider for any backend speaking the OpenAI chat completions API.

    The ``AsyncOpenAI`` client is built on first use, so a provider can
    be registered before its credentials are needed.  Transport retries
    are left to the client (``max_retries``).

    Args:
        config: Credentials and client options.
        model: Model identifier sent to the backend.
        provider_type: Which provider serves the model.
    """

    def __init__(
        self,
        config: OpenAIConfig,
        model: str,
        provider_type: ProviderType = ProviderType.OPENAI,
    ):
        super().__init__(model, provider_type)
        self.config = config
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.config.api_key:
                raise ConfigError(
                    f"API key is required for provider {self.provider_type.value}"
                )
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                max_retries=self.config.max_retries,
                timeout=self.config.timeout,
            )
        return self._client

    def stream(
        self,
        conversation: Conversation,
        *,
        timeout: float | None = None,
    ) -> AssistantMessageEventStream:
        output = AssistantMessage(provider=self.provider_type, model=self.model)

        async def open_source():
            params = build_params(self.model, conversation)
            chunks = await self.client.chat.completions.create(
                **params, stream=True,
            )
            return adapt_chunks(chunks)

        logger.info(f"Streaming {self.provider_type.value}/{self.model}")
        return start_stream(open_source, output, timeout)

    async def complete(self, conversation: Conversation) -> AssistantMessage:
        params = build_params(self.model, conversation)
        async with inst.completion_span(
            self.provider_type.value, self.model,
        ) as span:
            try:
                response = await self.client.chat.completions.create(**params)
            except OpenAIError as e:
                inst.record_error(span, e)
                raise SourceError(f"completion failed: {e}") from e

            output = AssistantMessage(
                provider=self.provider_type, model=self.model,
            )
            if response.choices:
                choice = response.choices[0]
                output.stop_reason = stop_reason_from_openai(choice.finish_reason)
                msg = choice.message
                if msg.content:
                    output.contents.append(TextContent(text=msg.content))
                for tc in msg.tool_calls or []:
                    output.contents.append(ToolCall(
                        id=tc.id,
                        name=tc.function.name,
                        arguments=parse_arguments(tc.function.arguments),
                    ))
            inst.record_stop_reason(span, output.stop_reason)
        return output


# ---------------------------------------------------------------------------
# Chunk adaptation
# ---------------------------------------------------------------------------

class ChunkTracker:
    """Normalises SDK chunks and reports when a block has just finished.

    A block is the run of chunks of one kind: text, or deltas for one
    tool-call index.  It finishes when a chunk of another kind (or for
    another tool call) arrives, when the backend sends its finish
    reason, or when the stream ends.  Empty keep-alive chunks do not
    finish anything.

    One SDK chunk may touch several blocks (text plus tool calls, or
    several tool calls).  :meth:`track` splits it into one fragment per
    block, text first, then tool calls in the order their indices first
    appear.
    """

    _NONE = ("none", -1)

    def __init__(self) -> None:
        self._state: tuple[str, int] = self._NONE
        self._text: list[str] = []

    def track(self, chunk) -> list[StreamChunk]:
        if not chunk.choices:
            return [StreamChunk()]
        choice = chunk.choices[0]
        delta = choice.delta
        content = getattr(delta, "content", None) if delta else None
        tool_calls = getattr(delta, "tool_calls", None) if delta else None

        out: list[StreamChunk] = []
        if content:
            fragment = self._enter(("text", -1))
            self._text.append(content)
            fragment.content_delta = content
            out.append(fragment)

        by_index: dict[int, list] = {}
        for tc in tool_calls or []:
            by_index.setdefault(tc.index, []).append(tc)
        for index, calls in by_index.items():
            fragment = self._enter(("tool", index))
            fragment.tool_call_fragments = [
                ToolCallFragment(
                    index=tc.index,
                    call_id=tc.id,
                    name=tc.function.name if tc.function else None,
                    arguments_delta=tc.function.arguments if tc.function else None,
                )
                for tc in calls
            ]
            out.append(fragment)

        if not out:
            # A bare finish reason closes the open block; keep-alives don't.
            out.append(
                self._enter(self._NONE) if choice.finish_reason else StreamChunk()
            )
        if choice.finish_reason:
            out[-1].finish_reason = stop_reason_from_openai(choice.finish_reason)
        return out

    def flush(self) -> StreamChunk | None:
        """Close whatever block is still open at end of stream."""
        if self._state == self._NONE:
            return None
        return self._enter(self._NONE)

    def _enter(self, state: tuple[str, int]) -> StreamChunk:
        out = StreamChunk()
        if state != self._state:
            self._finish(out)
            self._state = state
        return out

    def _finish(self, out: StreamChunk) -> None:
        kind, index = self._state
        if kind == "text":
            out.finished_text = "".join(self._text)
            self._text = []
        elif kind == "tool":
            out.finished_tool_call = index


async def adapt_chunks(
    chunks: AsyncIterator[Any],
    tracker: ChunkTracker | None = None,
) -> AsyncIterator[StreamChunk]:
    """Turn an SDK chunk stream into :class:`StreamChunk` fragments."""
    tracker = tracker or ChunkTracker()
    try:
        async for chunk in chunks:
            for fragment in tracker.track(chunk):
                yield fragment
        final = tracker.flush()
        if final is not None:
            yield final
    finally:
        close = getattr(chunks, "close", None)
        if close is not None:
            await close()


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------

def build_params(model: str, conversation: Conversation) -> dict[str, Any]:
    params: dict[str, Any] = {
        "model": model,
        "messages": build_messages(conversation),
        "seed": 0,
    }
    if conversation.tools:
        params["tools"] = build_tools(conversation.tools)
        params["tool_choice"] = "auto"
    return params


def build_messages(conversation: Conversation) -> list[dict[str, Any]]:
    messages: list[dict[str, Any]] = []
    if conversation.system_prompt:
        messages.append({"role": "system", "content": conversation.system_prompt})

    for message in conversation.messages:
        if not message.contents:
            continue
        match message:
            case UserMessage():
                messages.append({
                    "role": "user",
                    "content": _user_parts(message.contents),
                })
            case AssistantMessage():
                messages.append(_assistant_message(message))
            case ToolResultMessage():
                messages.append({
                    "role": "tool",
                    "tool_call_id": message.tool_call_id,
                    "content": _text_parts(message.contents),
                })
            case _:
                assert_never(message)
    return messages


def _image_url(image: ImageContent) -> str:
    if image.data.startswith(("http://", "https://", "data:")):
        return image.data
    return f"data:{image.mime_type or 'image/png'};base64,{image.data}"


def _user_parts(contents) -> list[dict[str, Any]]:
    parts = []
    for content in contents:
        if isinstance(content, TextContent):
            parts.append({"type": "text", "text": content.text})
        elif isinstance(content, ImageContent):
            parts.append({
                "type": "image_url",
                "image_url": {"url": _image_url(content)},
            })
    return parts


def _text_parts(contents) -> list[dict[str, Any]]:
    return [
        {"type": "text", "text": c.text}
        for c in contents if isinstance(c, TextContent)
    ]


def _assistant_message(message: AssistantMessage) -> dict[str, Any]:
    result: dict[str, Any] = {"role": "assistant"}
    text = _text_parts(message.contents)
    if text:
        result["content"] = text
    tool_calls = [
        {
            "id": tc.id,
            "type": "function",
            "function": {
                "name": tc.name,
                "arguments": json.dumps(tc.arguments),
            },
        }
        for tc in message.tool_calls()
    ]
    if tool_calls:
        result["tool_calls"] = tool_calls
    return result


def build_tools(tools: list[Tool]) -> list[dict[str, Any]]:
    return [t.openai_schema() for t in tools]
