"""Turns a fragment source into lifecycle events and one final message.

:class:`BlockAccumulator` is the per-stream state machine.
:func:`run_stream` drives it from a producer task and settles the
stream handle; :func:`start_stream` spawns that task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from piai import instrumentation as inst
from piai.errors import SourceError, StreamCancelledError, StreamError
from piai.events import (
    AssistantMessageEvent,
    DoneEvent,
    ErrorEvent,
    StartEvent,
    TextDeltaEvent,
    TextEndEvent,
    TextStartEvent,
    ToolCallDeltaEvent,
    ToolCallEndEvent,
    ToolCallStartEvent,
)
from piai.message import AssistantMessage, StopReason, TextContent, ToolCall
from piai.stream import AssistantMessageEventStream
from piai.streaming import (
    FragmentSource,
    StreamChunk,
    ToolCallAccumulator,
    ToolCallFragment,
)

logger = logging.getLogger(__name__)

Emit = Callable[[AssistantMessageEvent], Awaitable[None]]
SourceFactory = Callable[[], Awaitable[FragmentSource]]


class BlockType(str, Enum):
    NONE = "none"
    TEXT = "text"
    TOOL_CALL = "toolCall"


class BlockAccumulator:
    """Builds an assistant message from stream chunks, emitting events.

    Blocks open on a change of delta type (text to tool call or back)
    and close when the source reports the open block finished.  Content
    indices start at 0, increase by one per block and are never reused.

    Args:
        output: The message to build.  Owned by the accumulator until
            :meth:`finish` returns.
        emit: Coroutine called with each event, in order.
    """

    def __init__(self, output: AssistantMessage, emit: Emit):
        self.output = output
        self.current_index = -1
        self.current_block = BlockType.NONE
        self.started = False
        self.tool_calls = ToolCallAccumulator()
        self._emit = emit
        self._open_text: list[str] = []
        self._open_call: int | None = None

    def snapshot(self) -> AssistantMessage:
        return self.output.model_copy(deep=True)

    async def start(self) -> None:
        self.started = True
        await self._emit(StartEvent())

    async def add(self, chunk: StreamChunk) -> None:
        if chunk.finish_reason is not None:
            self.output.stop_reason = chunk.finish_reason

        if chunk.finished_text:
            await self._close_text(chunk.finished_text)
        if chunk.finished_tool_call is not None:
            await self._close_tool_call(chunk.finished_tool_call)

        if not chunk.has_delta:
            return

        if chunk.content_delta:
            await self._text_delta(chunk.content_delta)

        for fragment in chunk.tool_call_fragments or []:
            await self._tool_call_delta(fragment)

    async def finish(self) -> None:
        """Close a block the source left open."""
        if self.current_block is BlockType.TEXT:
            logger.warning(
                f"Text block {self.current_index} still open at end of "
                "stream, closing it"
            )
            await self._close_text("".join(self._open_text))
        elif self.current_block is BlockType.TOOL_CALL:
            logger.warning(
                f"Tool call block {self.current_index} still open at "
                "end of stream, closing it"
            )
            await self._close_tool_call(self._open_call)

    # ------------------------------------------------------------------
    # Block transitions
    # ------------------------------------------------------------------

    def _open(self, block: BlockType) -> None:
        self.current_index += 1
        self.current_block = block
        self._open_text = []
        self._open_call = None
        logger.debug(f"Opened {block.value} block {self.current_index}")

    async def _text_delta(self, delta: str) -> None:
        if self.current_block is not BlockType.TEXT:
            self._open(BlockType.TEXT)
            await self._emit(TextStartEvent(
                content_index=self.current_index, partial=self.snapshot(),
            ))
        self._open_text.append(delta)
        await self._emit(TextDeltaEvent(
            content_index=self.current_index, delta=delta,
            partial=self.snapshot(),
        ))

    async def _tool_call_delta(self, fragment: ToolCallFragment) -> None:
        if self.current_block is not BlockType.TOOL_CALL:
            self._open(BlockType.TOOL_CALL)
            await self._emit(ToolCallStartEvent(
                content_index=self.current_index, partial=self.snapshot(),
            ))
        self.tool_calls.feed(fragment)
        self._open_call = fragment.index
        if fragment.arguments_delta:
            await self._emit(ToolCallDeltaEvent(
                content_index=self.current_index,
                delta=fragment.arguments_delta,
                partial=self.snapshot(),
            ))

    async def _close_text(self, text: str) -> None:
        if self.current_block is not BlockType.TEXT:
            logger.debug("Ignoring finished text with no open text block")
            return
        self.current_block = BlockType.NONE
        await self._emit(TextEndEvent(
            content_index=self.current_index, content=text,
            partial=self.snapshot(),
        ))
        self.output.contents.append(TextContent(text=text))
        logger.debug(f"Closed text block {self.current_index}")

    async def _close_tool_call(self, call_index: int | None) -> None:
        if self.current_block is not BlockType.TOOL_CALL:
            logger.debug("Ignoring finished tool call with no open block")
            return
        self.current_block = BlockType.NONE
        tool_call = (
            self.tool_calls.resolve(call_index)
            if call_index is not None else ToolCall()
        )
        await self._emit(ToolCallEndEvent(
            content_index=self.current_index, tool_call=tool_call,
            partial=self.snapshot(),
        ))
        self.output.contents.append(tool_call)
        logger.debug(
            f"Closed tool call block {self.current_index} "
            f"({tool_call.name or 'unnamed'})"
        )


async def run_stream(
    stream: AssistantMessageEventStream,
    open_source: SourceFactory,
    output: AssistantMessage,
    timeout: float | None = None,
) -> None:
    """Producer loop: pull chunks, emit events, settle *stream*.

    Backend failures settle the stream with :class:`SourceError` after an
    ``error`` event.  Cancellation of this task, or *timeout* seconds
    elapsing, settles it with :class:`StreamCancelledError` and emits
    nothing further.
    """
    acc = BlockAccumulator(output, stream.push)
    system = output.provider.value if output.provider else "unknown"
    deadline = asyncio.timeout(timeout)

    async with inst.stream_span(system, output.model) as span:
        try:
            async with deadline:
                source = await open_source()
                try:
                    await acc.start()
                    async for chunk in source:
                        await acc.add(chunk)
                finally:
                    await _aclose(source)
                await acc.finish()
                message = acc.snapshot()
                await stream.push(DoneEvent(
                    reason=message.stop_reason, message=message,
                ))
        except asyncio.CancelledError:
            _fail_cancelled(stream, acc, "cancelled", span)
            raise
        except Exception as e:
            if isinstance(e, TimeoutError) and deadline.expired():
                _fail_cancelled(stream, acc, "deadline exceeded", span)
            else:
                await _fail_from_source(stream, acc, e, span)
            return

        inst.record_stop_reason(span, message.stop_reason)
        logger.info(
            f"Stream done: {len(message.contents)} block(s), "
            f"stop reason {message.stop_reason.value}"
        )
        stream.succeed(message)


async def _aclose(source: FragmentSource) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()


def _fail_cancelled(
    stream: AssistantMessageEventStream,
    acc: BlockAccumulator,
    reason: str,
    span,
) -> None:
    logger.info(f"Stream {reason} at block {acc.current_index}")
    error = StreamCancelledError(f"stream {reason}")
    inst.record_error(span, error)
    stream.fail(error)


async def _fail_from_source(
    stream: AssistantMessageEventStream,
    acc: BlockAccumulator,
    exc: Exception,
    span,
) -> None:
    if isinstance(exc, StreamError):
        error = exc
    else:
        error = SourceError(f"stream source failed: {exc}")
        error.__cause__ = exc
    logger.error(f"Stream failed at block {acc.current_index}: {exc}")
    inst.record_error(span, error)

    acc.output.stop_reason = StopReason.ERROR
    acc.output.error_message = str(exc)
    if not acc.started:
        # The backend call never opened; there is no event stream to end.
        stream.fail(error)
        return
    try:
        await stream.push(ErrorEvent(
            reason=StopReason.ERROR, error=acc.snapshot(),
        ))
    finally:
        stream.fail(error)


def start_stream(
    open_source: SourceFactory,
    output: AssistantMessage,
    timeout: float | None = None,
) -> AssistantMessageEventStream:
    """Spawn the producer task and return its stream handle.

    Must be called from a running event loop.
    """
    stream = AssistantMessageEventStream()
    task = asyncio.create_task(run_stream(stream, open_source, output, timeout))
    stream.attach(task)
    return stream
