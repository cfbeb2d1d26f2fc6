"""Lifecycle events emitted while an assistant message streams in.

Every event except start, done and error carries ``partial``, a
snapshot of the message as built so far.  Snapshots are copies; the
stream engine never touches them after emission.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union, assert_never

from pydantic import BaseModel, Field

from piai.message import AssistantMessage, StopReason, ToolCall


class StartEvent(BaseModel):
    type: Literal["start"] = "start"


class TextStartEvent(BaseModel):
    type: Literal["text_start"] = "text_start"
    content_index: int
    partial: AssistantMessage


class TextDeltaEvent(BaseModel):
    type: Literal["text_delta"] = "text_delta"
    content_index: int
    delta: str
    partial: AssistantMessage


class TextEndEvent(BaseModel):
    type: Literal["text_end"] = "text_end"
    content_index: int
    content: str
    partial: AssistantMessage


class ToolCallStartEvent(BaseModel):
    type: Literal["toolcall_start"] = "toolcall_start"
    content_index: int
    partial: AssistantMessage


class ToolCallDeltaEvent(BaseModel):
    """Raw argument text for the open tool-call block."""

    type: Literal["toolcall_delta"] = "toolcall_delta"
    content_index: int
    delta: str
    partial: AssistantMessage


class ToolCallEndEvent(BaseModel):
    type: Literal["toolcall_end"] = "toolcall_end"
    content_index: int
    tool_call: ToolCall
    partial: AssistantMessage


class DoneEvent(BaseModel):
    """Final event of a successful stream."""

    type: Literal["done"] = "done"
    reason: StopReason
    message: AssistantMessage


class ErrorEvent(BaseModel):
    """Final event of a stream that failed at the backend."""

    type: Literal["error"] = "error"
    reason: StopReason
    error: AssistantMessage


AssistantMessageEvent = Annotated[
    Union[
        StartEvent,
        TextStartEvent,
        TextDeltaEvent,
        TextEndEvent,
        ToolCallStartEvent,
        ToolCallDeltaEvent,
        ToolCallEndEvent,
        DoneEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]


def describe(event: AssistantMessageEvent) -> str:
    """One-line human readable summary of an event."""
    match event:
        case StartEvent():
            return "start"
        case TextStartEvent(content_index=i):
            return f"text_start[{i}]"
        case TextDeltaEvent(content_index=i, delta=delta):
            return f"text_delta[{i}] {delta!r}"
        case TextEndEvent(content_index=i, content=content):
            return f"text_end[{i}] {len(content)} chars"
        case ToolCallStartEvent(content_index=i):
            return f"toolcall_start[{i}]"
        case ToolCallDeltaEvent(content_index=i, delta=delta):
            return f"toolcall_delta[{i}] {delta!r}"
        case ToolCallEndEvent(content_index=i, tool_call=tc):
            return f"toolcall_end[{i}] {tc.name}({tc.arguments})"
        case DoneEvent(reason=reason):
            return f"done ({reason.value})"
        case ErrorEvent(reason=reason, error=partial):
            return f"error ({reason.value}): {partial.error_message}"
        case _:
            assert_never(event)
