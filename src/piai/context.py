from typing import Any

from pydantic import BaseModel, Field

from piai.message import Message
from piai.tools import Tool


class Conversation(BaseModel):
    """Everything a provider needs to produce the next assistant turn.

    The system prompt is kept apart from ``messages`` and injected by the
    provider at call time.

    Args:
        system_prompt: Instructions sent ahead of the transcript.
        messages: Ordered user, assistant and tool-result messages.
        tools: Tools the assistant may call.
        metadata: Free-form caller data, never sent to the backend.
    """

    system_prompt: str = ""
    messages: list[Message] = Field(default_factory=list)
    tools: list[Tool] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
