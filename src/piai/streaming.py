"""Streaming primitives shared by providers and the stream engine.

Providers yield :class:`StreamChunk` fragments.  The
:class:`ToolCallAccumulator` reassembles tool calls whose arguments
arrive in fragments across multiple chunks.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from piai.message import StopReason, ToolCall

logger = logging.getLogger(__name__)


@dataclass
class ToolCallFragment:
    """A fragment of a tool call from a streaming chunk."""

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments_delta: str | None = None


@dataclass
class StreamChunk:
    """Normalised streaming fragment from any provider.

    ``finished_text`` and ``finished_tool_call`` report that the block
    which was open before this chunk is complete: the full text of a
    finished text block, or the index of a finished tool call.  They
    refer to the previous block, never to deltas carried by this chunk.
    """

    content_delta: str | None = None
    tool_call_fragments: list[ToolCallFragment] | None = None
    finish_reason: StopReason | None = None
    finished_text: str | None = None
    finished_tool_call: int | None = None

    @property
    def has_delta(self) -> bool:
        return bool(self.content_delta) or bool(self.tool_call_fragments)


FragmentSource = AsyncIterator[StreamChunk]


def parse_arguments(payload: str) -> dict[str, Any]:
    """Parse a reassembled argument payload.

    Incomplete or malformed payloads, and payloads that are not a JSON
    object, resolve to an empty mapping.
    """
    if not payload:
        return {}
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as e:
        logger.debug(f"Unparseable tool arguments {payload!r}: {e}")
        return {}
    if not isinstance(parsed, dict):
        logger.debug(f"Tool arguments are not an object: {payload!r}")
        return {}
    return parsed


@dataclass
class PendingToolCall:
    """A tool call whose arguments are still arriving."""

    id: str = ""
    name: str = ""
    arguments: str = ""

    def resolve(self) -> ToolCall:
        return ToolCall(
            id=self.id,
            name=self.name,
            arguments=parse_arguments(self.arguments),
        )


class ToolCallAccumulator:
    """Assembles complete tool calls from streaming fragments."""

    def __init__(self) -> None:
        self._pending: dict[int, PendingToolCall] = {}

    def feed(self, fragment: ToolCallFragment) -> None:
        if fragment.index not in self._pending:
            self._pending[fragment.index] = PendingToolCall()
        tc = self._pending[fragment.index]
        if fragment.call_id:
            tc.id = fragment.call_id
        if fragment.name:
            tc.name = fragment.name
        if fragment.arguments_delta is not None:
            tc.arguments += fragment.arguments_delta

    def resolve(self, index: int) -> ToolCall:
        """Resolve the call at *index*, parsing its arguments."""
        return self._pending.get(index, PendingToolCall()).resolve()

    def finalize(self) -> list[ToolCall]:
        """Return every resolved tool call in index order."""
        return [self._pending[i].resolve() for i in sorted(self._pending)]
