"""Unit tests for OpenAI chunk normalisation."""

import pytest

from piai.message import StopReason
from piai.provider import ChunkTracker, adapt_chunks
from piai.streaming import StreamChunk

from tests.conftest import (
    FakeChunk,
    call_delta,
    finish_chunk,
    iter_chunks,
    mixed_chunk,
    role_chunk,
    text_chunk,
    tool_chunk,
)


def track_one(tracker, chunk) -> StreamChunk:
    fragments = tracker.track(chunk)
    assert len(fragments) == 1
    return fragments[0]


class TestChunkTracker:
    def test_empty_choices(self):
        assert ChunkTracker().track(FakeChunk()) == [StreamChunk()]

    def test_role_chunk_is_keep_alive(self):
        out = track_one(ChunkTracker(), role_chunk())
        assert not out.has_delta
        assert out.finished_text is None
        assert out.finished_tool_call is None

    def test_text_finished_by_finish_reason(self):
        tracker = ChunkTracker()
        tracker.track(text_chunk("Hello, "))
        tracker.track(text_chunk("world"))
        out = track_one(tracker, finish_chunk("stop"))

        assert out.finished_text == "Hello, world"
        assert out.finish_reason is StopReason.STOP
        assert tracker.flush() is None

    def test_text_finished_by_tool_call(self):
        tracker = ChunkTracker()
        tracker.track(text_chunk("Checking."))
        out = track_one(tracker, tool_chunk(0, "{}", call_id="t1", name="getWeather"))

        assert out.finished_text == "Checking."
        assert [f.call_id for f in out.tool_call_fragments] == ["t1"]

    def test_tool_call_finished_by_next_index(self):
        tracker = ChunkTracker()
        tracker.track(tool_chunk(0, "{}", call_id="a", name="foo"))
        out = track_one(tracker, tool_chunk(1, "{}", call_id="b", name="bar"))

        assert out.finished_tool_call == 0
        assert out.tool_call_fragments[0].index == 1

    def test_continuation_fragments_do_not_finish(self):
        tracker = ChunkTracker()
        tracker.track(tool_chunk(0, '{"location":', call_id="t1", name="getWeather"))
        out = track_one(tracker, tool_chunk(0, '"Tokyo"}'))

        assert out.finished_tool_call is None
        fragment = out.tool_call_fragments[0]
        assert fragment.call_id is None
        assert fragment.name is None
        assert fragment.arguments_delta == '"Tokyo"}'

    def test_keep_alive_between_text_chunks(self):
        tracker = ChunkTracker()
        tracker.track(text_chunk("a"))
        assert track_one(tracker, role_chunk()).finished_text is None
        tracker.track(text_chunk("b"))

        assert tracker.flush().finished_text == "ab"

    def test_tool_call_finish_reason(self):
        tracker = ChunkTracker()
        tracker.track(tool_chunk(0, "{}", call_id="t1", name="getWeather"))
        out = track_one(tracker, finish_chunk("tool_calls"))

        assert out.finished_tool_call == 0
        assert out.finish_reason is StopReason.TOOL_USE

    def test_flush_open_tool_call(self):
        tracker = ChunkTracker()
        tracker.track(tool_chunk(2, "{}", call_id="t1", name="getWeather"))

        assert tracker.flush().finished_tool_call == 2
        assert tracker.flush() is None

    def test_finish_reason_with_final_text(self):
        """Text in the finishing chunk stays open until the stream ends."""
        tracker = ChunkTracker()
        tracker.track(text_chunk("Hello"))
        out = track_one(tracker, text_chunk(" there", finish_reason="length"))

        assert out.finished_text is None
        assert out.finish_reason is StopReason.LENGTH
        assert tracker.flush().finished_text == "Hello there"


class TestChunksTouchingSeveralBlocks:
    def test_text_and_tool_call_split(self):
        tracker = ChunkTracker()
        text, tool = tracker.track(mixed_chunk(
            "Let me check.",
            [call_delta(0, '{"location":', call_id="t1", name="getWeather")],
        ))

        assert text.content_delta == "Let me check."
        assert text.tool_call_fragments is None
        assert tool.finished_text == "Let me check."
        assert tool.content_delta is None
        assert [f.call_id for f in tool.tool_call_fragments] == ["t1"]

    def test_two_tool_calls_split(self):
        tracker = ChunkTracker()
        first, second = tracker.track(mixed_chunk(tool_calls=[
            call_delta(0, "{}", call_id="a", name="f"),
            call_delta(1, "{}", call_id="b", name="g"),
        ]))

        assert first.finished_tool_call is None
        assert [f.index for f in first.tool_call_fragments] == [0]
        assert second.finished_tool_call == 0
        assert [f.index for f in second.tool_call_fragments] == [1]
        assert tracker.flush().finished_tool_call == 1

    def test_fragments_grouped_by_index(self):
        tracker = ChunkTracker()
        fragments = tracker.track(mixed_chunk(tool_calls=[
            call_delta(0, '{"a":', call_id="a", name="f"),
            call_delta(1, "{}", call_id="b", name="g"),
            call_delta(0, " 1}"),
        ]))

        assert len(fragments) == 2
        assert [f.arguments_delta for f in fragments[0].tool_call_fragments] == [
            '{"a":', " 1}",
        ]

    def test_finish_reason_on_last_fragment(self):
        tracker = ChunkTracker()
        text, tool = tracker.track(mixed_chunk(
            "Checking.", [call_delta(0, "{}", call_id="t1", name="getWeather")],
            finish_reason="tool_calls",
        ))

        assert text.finish_reason is None
        assert tool.finish_reason is StopReason.TOOL_USE


class TestAdaptChunks:
    @pytest.mark.asyncio
    async def test_yields_final_flush(self):
        chunks = [role_chunk(), text_chunk("Hi")]
        out = [c async for c in adapt_chunks(iter_chunks(chunks))]

        assert len(out) == 3
        assert out[-1].finished_text == "Hi"
        assert not out[-1].has_delta

    @pytest.mark.asyncio
    async def test_yields_every_split_fragment(self):
        chunks = [mixed_chunk("Hi", [call_delta(0, "{}", call_id="t1", name="f")])]
        out = [c async for c in adapt_chunks(iter_chunks(chunks))]

        assert [c.content_delta for c in out] == ["Hi", None, None]
        assert out[1].finished_text == "Hi"
        assert out[2].finished_tool_call == 0

    @pytest.mark.asyncio
    async def test_closes_sdk_stream(self):
        closed = []

        class ClosableStream:
            def __init__(self, chunks):
                self._it = iter_chunks(chunks)

            def __aiter__(self):
                return self._it

            async def close(self):
                closed.append(True)

        source = adapt_chunks(ClosableStream([text_chunk("Hi")]))
        async for _ in source:
            break
        await source.aclose()

        assert closed == [True]

    @pytest.mark.asyncio
    async def test_propagates_source_error(self):
        source = adapt_chunks(iter_chunks(
            [text_chunk("Hi")], error=ConnectionError("reset"),
        ))
        with pytest.raises(ConnectionError, match="reset"):
            async for _ in source:
                pass
