from piai.config import Config, ProviderConfig
from piai.context import Conversation
from piai.errors import (
    ConfigError,
    ModelNotFoundError,
    PiAIError,
    ProviderNotFoundError,
    SourceError,
    StreamCancelledError,
    StreamError,
)
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
from piai.instrumentation import instrument, uninstrument
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
from piai.provider import ModelProvider, OpenAIConfig, OpenAIProvider
from piai.registry import Model, Registry
from piai.stream import AssistantMessageEventStream
from piai.tools import Tool, tool

__all__ = [
    "AssistantMessage",
    "AssistantMessageEvent",
    "AssistantMessageEventStream",
    "Config",
    "ConfigError",
    "Conversation",
    "DoneEvent",
    "ErrorEvent",
    "ImageContent",
    "Model",
    "ModelNotFoundError",
    "ModelProvider",
    "OpenAIConfig",
    "OpenAIProvider",
    "PiAIError",
    "ProviderConfig",
    "ProviderNotFoundError",
    "ProviderType",
    "Registry",
    "SourceError",
    "StartEvent",
    "StopReason",
    "StreamCancelledError",
    "StreamError",
    "TextContent",
    "TextDeltaEvent",
    "TextEndEvent",
    "TextStartEvent",
    "Tool",
    "ToolCall",
    "ToolCallDeltaEvent",
    "ToolCallEndEvent",
    "ToolCallStartEvent",
    "ToolResultMessage",
    "UserMessage",
    "instrument",
    "tool",
    "uninstrument",
]
