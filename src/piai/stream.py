from __future__ import annotations

import asyncio
import logging

from piai.errors import SourceError, StreamCancelledError, StreamError
from piai.events import AssistantMessageEvent
from piai.message import AssistantMessage

logger = logging.getLogger(__name__)

_CLOSED = object()


class AssistantMessageEventStream:
    """Handle returned by ``ModelProvider.stream()``.

    Iterate the handle to read events; await :meth:`result` (or
    :meth:`error`) for the terminal outcome.  The event channel holds a
    single event, so the producer waits until each one is taken: drain
    the events in the same task before awaiting the result, or in a
    separate task alongside it.  :meth:`final_message` does the former.

    Exactly one of a final message or a :class:`StreamError` is
    delivered.  The event channel is closed when the outcome settles,
    and ``done`` is always the last event of a successful stream.

    Example::

        stream = provider.stream(conversation)
        async for event in stream:
            match event:
                case TextDeltaEvent(delta=delta):
                    print(delta, end="")
        message = await stream.result()
    """

    def __init__(self) -> None:
        loop = asyncio.get_running_loop()
        self._events: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._closed = False
        self._outcome: asyncio.Future[AssistantMessage] = loop.create_future()
        self._task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def attach(self, task: asyncio.Task) -> None:
        self._task = task
        task.add_done_callback(self._on_producer_done)

    def _on_producer_done(self, task: asyncio.Task) -> None:
        # A producer cancelled before its first step never reaches its
        # own error handling.
        if self._outcome.done():
            return
        if task.cancelled():
            self.fail(StreamCancelledError("stream cancelled"))
            return
        exc = task.exception()
        error = SourceError(f"stream producer failed: {exc}")
        error.__cause__ = exc
        self.fail(error)

    async def push(self, event: AssistantMessageEvent) -> None:
        if self._closed:
            raise RuntimeError("event channel is closed")
        await self._events.put(event)

    def succeed(self, message: AssistantMessage) -> None:
        self._outcome.set_result(message)
        self._close()

    def fail(self, error: StreamError) -> None:
        self._outcome.set_exception(error)
        # Mark retrieved: callers that only read events never await it.
        self._outcome.exception()
        self._close()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._events.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # The reader still has an event to take; it sees the closed
            # flag once the queue drains.
            pass

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def done(self) -> bool:
        return self._outcome.done()

    def __aiter__(self) -> AssistantMessageEventStream:
        return self

    async def __anext__(self) -> AssistantMessageEvent:
        if self._closed and self._events.empty():
            raise StopAsyncIteration
        event = await self._events.get()
        if event is _CLOSED:
            raise StopAsyncIteration
        return event

    async def result(self) -> AssistantMessage:
        """Wait for the final message.

        Raises:
            StreamError: ``SourceError`` if the backend failed,
                ``StreamCancelledError`` if the stream was cancelled.
        """
        return await asyncio.shield(self._outcome)

    async def error(self) -> StreamError | None:
        """Wait for the outcome and return the failure, if any."""
        try:
            await self.result()
        except StreamError as e:
            return e
        return None

    async def final_message(self) -> AssistantMessage:
        """Drain every remaining event, then return the final message."""
        async for _ in self:
            pass
        return await self.result()

    def cancel(self) -> None:
        """Ask the producer to stop.

        The outcome settles with ``StreamCancelledError`` unless the
        stream already finished.
        """
        if self._task is not None and not self._task.done():
            logger.debug("Cancelling stream producer")
            self._task.cancel()
