"""Streaming example: a tool-calling turn followed by a plain completion.

Demonstrates:
- Building a Registry from environment configuration
- Draining events in a task while awaiting the final message
- Answering tool calls with ToolResultMessage
- Finishing the conversation with Registry.complete()

Usage:
    Add NVIDIA_API_KEY=nvapi-... to .env, then:
    uv run --env-file=.env examples/stream_weather.py
"""

import asyncio
import logging

from piai import (
    Config,
    Conversation,
    DoneEvent,
    ErrorEvent,
    Model,
    ProviderType,
    Registry,
    TextContent,
    TextDeltaEvent,
    Tool,
    ToolCallStartEvent,
    ToolResultMessage,
    UserMessage,
)


def getWeather(location: str):
    """Get the weather for a given location"""
    return f"Weather in {location}: 72°F (22°C), partly cloudy"


WEATHER_TOOL = Tool.from_function(getWeather)


async def main():
    registry = Registry.from_config(Config.from_env())
    model = Model(ProviderType.NVIDIA, "openai/gpt-oss-20b")
    print(f"Using {model.provider.value}/{model.id}\n")

    conversation = Conversation(
        system_prompt=(
            "You are a helpful assistant. If you call a tool, include "
            "the results in your response."
        ),
        messages=[UserMessage.text(
            "Write a short poem about cats. Then check weather for Tokyo "
            "and incorporate it into your response."
        )],
        tools=[WEATHER_TOOL],
    )

    stream = registry.stream(model, conversation, timeout=120)

    async def print_events():
        async for event in stream:
            match event:
                case TextDeltaEvent(delta=delta):
                    print(delta, end="", flush=True)
                case ToolCallStartEvent():
                    print("\n[tool call started]")
                case DoneEvent(reason=reason):
                    print(f"\n[done: {reason.value}]")
                case ErrorEvent(error=partial):
                    print(f"\n[error: {partial.error_message}]")

    printer = asyncio.create_task(print_events())
    error = await stream.error()
    await printer
    if error is not None:
        print(f"Streaming failed: {error}")
        return

    message = await stream.result()
    conversation.messages.append(message)

    for call in message.tool_calls():
        print(f"Executing {call.name}({call.arguments})")
        location = call.arguments.get("location", "Tokyo")
        conversation.messages.append(ToolResultMessage(
            tool_call_id=call.id,
            tool_name=call.name,
            contents=[TextContent(text=getWeather(location))],
        ))

    final = await registry.complete(model, conversation)
    print(f"\nFinal response:\n{final.text()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
