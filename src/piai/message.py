from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StopReason(str, Enum):
    STOP = "stop"
    LENGTH = "length"
    TOOL_USE = "toolUse"
    ABORTED = "aborted"
    ERROR = "error"
    UNKNOWN = "unknown"


class ModelProvider(str, Enum):
    NVIDIA = "nvidia"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    MISTRAL = "mistral"
    CUSTOM = "custom"


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    """Image input. ``data`` is a URL or a ``data:`` URI."""

    type: Literal["image"] = "image"
    data: str
    mime_type: str = ""


class ToolCall(BaseModel):
    """A tool invocation requested by the assistant.

    ``arguments`` holds the parsed argument object. It is empty when the
    streamed argument payload could not be parsed.
    """

    type: Literal["toolCall"] = "toolCall"
    id: str = ""
    name: str = ""
    arguments: dict[str, Any] = Field(default_factory=dict)


Content = Annotated[
    Union[TextContent, ImageContent, ToolCall],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    contents: list[Content] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)

    @classmethod
    def text(cls, text: str) -> "UserMessage":
        return cls(contents=[TextContent(text=text)])


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    contents: list[Content] = Field(default_factory=list)
    stop_reason: StopReason = StopReason.UNKNOWN
    timestamp: datetime = Field(default_factory=_now)
    provider: ModelProvider | None = None
    model: str = ""
    error_message: str | None = None

    def text(self) -> str:
        """Concatenated text of every text block, in order."""
        return "".join(
            c.text for c in self.contents if isinstance(c, TextContent)
        )

    def tool_calls(self) -> list[ToolCall]:
        return [c for c in self.contents if isinstance(c, ToolCall)]


class ToolResultMessage(BaseModel):
    role: Literal["toolResult"] = "toolResult"
    tool_call_id: str
    tool_name: str = ""
    contents: list[Content] = Field(default_factory=list)
    is_error: bool = False
    timestamp: datetime = Field(default_factory=_now)


Message = Annotated[
    Union[UserMessage, AssistantMessage, ToolResultMessage],
    Field(discriminator="role"),
]
