#!/usr/bin/env python3
"""
Tests for the incremental stream decoder.

Covers line reassembly across arbitrary chunk boundaries, frame
classification and fragment delivery.
"""

import asyncio
import random

import pytest

from deeperseeker.llm.exceptions import MalformedFrameError
from deeperseeker.llm.streaming.models import ContentFragment, FrameKind
from deeperseeker.llm.streaming.parser import (
    FragmentAccumulator,
    LineBuffer,
    StreamDecoder,
)


async def byte_stream(chunks):
    for chunk in chunks:
        yield chunk


def delta_line(content: str) -> str:
    return 'data: {"choices":[{"delta":{"content":"%s"}}]}\n' % content


BODY = (
    delta_line("Hél")
    + "\n"
    + ": keep-alive\n"
    + delta_line("lo 世界 🎉")
    + 'data: {"choices":[{"delta":{}}],"usage":{"total_tokens":3}}\n'
    + delta_line("!")
    + "data: [DONE]\n"
).encode("utf-8")

EXPECTED = ["Hél", "lo 世界 🎉", "!"]


def split_every(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


def split_randomly(data: bytes, seed: int) -> list[bytes]:
    rng = random.Random(seed)
    cuts = sorted(rng.sample(range(1, len(data)), k=rng.randint(1, 12)))
    bounds = [0, *cuts, len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:])]


async def collect(chunks, **decoder_kwargs):
    received = []
    decoder = StreamDecoder(**decoder_kwargs)
    result = await decoder.decode(
        byte_stream(chunks), lambda text, reasoning: received.append(text)
    )
    return received, result


class TestLineBuffer:
    """Test line reassembly from raw bytes."""

    def test_keeps_partial_line(self):
        buffer = LineBuffer()
        assert buffer.push(b"data: abc") == []
        assert buffer.has_pending
        assert buffer.push(b"def\nnext") == ["data: abcdef"]
        assert buffer.finish() == "next"
        assert not buffer.has_pending

    def test_empty_segments_between_newlines(self):
        buffer = LineBuffer()
        assert buffer.push(b"a\n\nb\n") == ["a", "", "b"]
        assert buffer.finish() == ""

    def test_multibyte_character_split_across_pushes(self):
        buffer = LineBuffer()
        encoded = "é🎉\n".encode("utf-8")
        lines = []
        for i in range(len(encoded)):
            lines.extend(buffer.push(encoded[i:i + 1]))
        assert lines == ["é🎉"]

    def test_incomplete_character_at_end_is_replaced(self):
        buffer = LineBuffer()
        buffer.push(b"abc\xe2\x82")
        assert buffer.finish() == "abc�"


class TestParseLine:
    """Test classification of single lines."""

    @pytest.mark.parametrize(
        "line",
        ["", "   ", ": comment", "event: message", "id: 7", "data:[DONE]"],
    )
    def test_non_data_lines_are_ignored(self, line):
        assert StreamDecoder.parse_line(line).kind is FrameKind.IGNORED

    def test_done_sentinel(self):
        frame = StreamDecoder.parse_line("data: [DONE]")
        assert frame.kind is FrameKind.DONE
        assert frame.fragment() is None

    def test_done_sentinel_with_carriage_return(self):
        assert StreamDecoder.parse_line("data: [DONE]\r").kind is FrameKind.DONE

    def test_data_frame_with_content(self):
        frame = StreamDecoder.parse_line(delta_line("Hi").rstrip("\n"))
        assert frame.kind is FrameKind.DATA
        assert frame.fragment() == ContentFragment(text="Hi")

    def test_control_only_envelope_has_no_fragment(self):
        for payload in (
            '{"choices":[{"delta":{},"finish_reason":"stop"}]}',
            '{"choices":[]}',
            '{"id":"abc","object":"chat.completion.chunk"}',
            '{"choices":[{"delta":{"content":""}}]}',
        ):
            frame = StreamDecoder.parse_line("data: " + payload)
            assert frame.kind is FrameKind.DATA
            assert frame.fragment() is None

    def test_reasoning_content(self):
        frame = StreamDecoder.parse_line(
            'data: {"choices":[{"delta":{"reasoning_content":"thinking"}}]}'
        )
        assert frame.fragment() == ContentFragment(text="", reasoning_text="thinking")

    def test_invalid_json_is_malformed(self):
        frame = StreamDecoder.parse_line('data: {"choices": [')
        assert frame.kind is FrameKind.MALFORMED
        assert frame.error.startswith("JSON decode error")

    @pytest.mark.parametrize(
        "payload",
        ["[1, 2]", '"text"', '{"choices":[{"delta":{"content":5}}]}', '{"choices":null}'],
    )
    def test_unexpected_envelope_is_malformed(self, payload):
        frame = StreamDecoder.parse_line("data: " + payload)
        assert frame.kind is FrameKind.MALFORMED
        assert frame.error.startswith("Unexpected envelope")


class TestDecode:
    """Test draining whole streams."""

    @pytest.mark.asyncio
    async def test_example_split_inside_json(self):
        chunks = [
            b'data: {"choices":[{"delta":{"content":"Hel',
            b'lo"}}]}\n\ndata: [DONE]\n',
        ]
        received, result = await collect(chunks)
        assert received == ["Hello"]
        assert result.completed
        assert result.saw_done
        assert result.fragments == 1

    @pytest.mark.asyncio
    async def test_whole_body_in_one_chunk(self):
        received, result = await collect([BODY])
        assert received == EXPECTED
        assert result.completed
        assert not result.discarded_tail

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 2, 3, 7, 64])
    async def test_fixed_size_chunks_give_same_fragments(self, size):
        received, _ = await collect(split_every(BODY, size))
        assert received == EXPECTED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seed", range(10))
    async def test_random_chunking_gives_same_fragments(self, seed):
        received, _ = await collect(split_randomly(BODY, seed))
        assert received == EXPECTED

    @pytest.mark.asyncio
    async def test_multibyte_character_split_across_chunks(self):
        chunks = [
            b'data: {"choices":[{"delta":{"content":"caf\xc3',
            b'\xa9"}}]}\n',
        ]
        received, _ = await collect(chunks)
        assert received == ["café"]

    def test_line_emitted_only_after_it_completes(self):
        received = []
        decoder = StreamDecoder()
        first_half = b'data: {"choi'
        second_half = b'ces":[{"delta":{"content":"once"}}]}\n'

        assert decoder.feed(first_half) == []
        frames = decoder.feed(second_half)
        for frame in frames:
            if frame.fragment():
                received.append(frame.fragment().text)
        assert received == ["once"]

    @pytest.mark.asyncio
    async def test_done_emits_nothing_and_stops_emission(self):
        chunks = [b"data: [DONE]\n" + delta_line("late").encode()]
        received, result = await collect(chunks)
        assert received == []
        assert result.saw_done
        assert result.lines == 2

    @pytest.mark.asyncio
    async def test_completes_without_sentinel(self):
        received, result = await collect([delta_line("only").encode()])
        assert received == ["only"]
        assert result.completed
        assert not result.saw_done

    @pytest.mark.asyncio
    async def test_malformed_line_does_not_stop_later_lines(self):
        errors = []
        body = (
            delta_line("before")
            + "data: {not json}\n"
            + "data: [1, 2]\n"
            + delta_line("after")
        ).encode()
        received, result = await collect([body], on_malformed=errors.append)
        assert received == ["before", "after"]
        assert result.malformed_frames == 2
        assert len(errors) == 2
        assert all(isinstance(e, MalformedFrameError) for e in errors)
        assert errors[0].line == "data: {not json}"

    @pytest.mark.asyncio
    async def test_unterminated_trailing_line_is_discarded(self):
        body = delta_line("A") + 'data: {"choices":[{"delta":{"content":"B"}}]}'
        received, result = await collect(split_every(body.encode(), 5))
        assert received == ["A"]
        assert result.completed
        assert result.discarded_tail

    @pytest.mark.asyncio
    async def test_crlf_line_endings(self):
        body = delta_line("x").replace("\n", "\r\n") + "data: [DONE]\r\n"
        received, result = await collect([body.encode()])
        assert received == ["x"]
        assert result.saw_done

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        received, result = await collect([])
        assert received == []
        assert result.completed
        assert result.lines == 0

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self):
        received = []

        async def failing_stream():
            yield delta_line("partial").encode()
            raise ConnectionResetError("peer went away")

        decoder = StreamDecoder()
        with pytest.raises(ConnectionResetError):
            await decoder.decode(
                failing_stream(), lambda text, reasoning: received.append(text)
            )
        assert received == ["partial"]
        assert not decoder.result().completed

    @pytest.mark.asyncio
    async def test_async_sink_deliveries_do_not_overlap(self):
        active = False
        order = []

        async def sink(text, reasoning):
            nonlocal active
            assert not active
            active = True
            await asyncio.sleep(0)
            order.append(text)
            active = False

        decoder = StreamDecoder()
        await decoder.decode(byte_stream(split_every(BODY, 4)), sink)
        assert order == EXPECTED

    @pytest.mark.asyncio
    async def test_sink_receives_reasoning_text(self):
        calls = []
        body = (
            'data: {"choices":[{"delta":{"content":"a","reasoning_content":"r"}}]}\n'
        ).encode()
        decoder = StreamDecoder()
        await decoder.decode(
            byte_stream([body]), lambda text, reasoning: calls.append((text, reasoning))
        )
        assert calls == [("a", "r")]


class TestIterFragments:
    """Test the async generator form."""

    @pytest.mark.asyncio
    async def test_yields_fragments_in_order(self):
        decoder = StreamDecoder()
        fragments = [
            fragment.text
            async for fragment in decoder.iter_fragments(byte_stream(split_every(BODY, 9)))
        ]
        assert fragments == EXPECTED
        assert decoder.result().completed


class TestStatistics:
    """Test decoder statistics."""

    @pytest.mark.asyncio
    async def test_counts_and_reset(self):
        decoder = StreamDecoder(log_malformed=False)
        body = delta_line("a") + ": ping\n" + "data: oops\n" + "data: [DONE]\n"
        await decoder.decode(byte_stream([body.encode()]), lambda *_: None)

        stats = decoder.get_stats()
        assert stats["chunks"] == 1
        assert stats["lines"] == 4
        assert stats["fragments"] == 1
        assert stats["malformed_frames"] == 1
        assert stats["ignored_lines"] == 1

        decoder.reset_stats()
        assert decoder.get_stats()["lines"] == 0


class TestFragmentAccumulator:
    """Test the caller-side accumulating sink."""

    @pytest.mark.asyncio
    async def test_accumulates_text(self):
        echoed = []
        accumulator = FragmentAccumulator(echo=echoed.append)
        decoder = StreamDecoder()
        await decoder.decode(byte_stream(split_every(BODY, 3)), accumulator)

        assert accumulator.text == "".join(EXPECTED)
        assert accumulator.count == 3
        assert echoed == EXPECTED

        accumulator.reset()
        assert accumulator.text == ""
        assert accumulator.count == 0
