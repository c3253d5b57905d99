"""
Incremental decoder for server-sent-event style chat completion streams.

The transport hands over bytes in whatever pieces it likes. LineBuffer turns
them back into complete text lines, StreamDecoder classifies each line and
pulls the content fragment out of data frames.
"""

from __future__ import annotations

import codecs
import inspect
import json
from collections.abc import AsyncGenerator, AsyncIterable, Callable
from contextlib import aclosing
from typing import Any

import structlog
from pydantic import ValidationError

from ..exceptions import MalformedFrameError
from .models import ContentFragment, DecodeResult, Frame, FrameKind, StreamEnvelope

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

FragmentSink = Callable[[str, str], Any]
MalformedSink = Callable[[MalformedFrameError], Any]

logger = structlog.get_logger(__name__)


class LineBuffer:
    """
    Reassembles newline-terminated lines from raw byte chunks.

    Bytes go through a stateful UTF-8 decoder, so a character split across
    two chunks comes out whole. Only the trailing partial line is kept
    between pushes.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending: list[str] = []

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def push(self, chunk: bytes) -> list[str]:
        """Add a chunk and return the lines it completed, in order."""
        text = self._decoder.decode(chunk)
        if not text:
            return []

        self._pending.append(text)
        if "\n" not in text:
            # No line break yet; the partial line keeps growing
            return []

        lines = "".join(self._pending).split("\n")
        tail = lines.pop()
        self._pending = [tail] if tail else []
        return lines

    def finish(self) -> str:
        """Flush the decoder and hand back the unterminated tail, if any."""
        self._pending.append(self._decoder.decode(b"", final=True))
        tail = "".join(self._pending)
        self._pending = []
        return tail


class StreamDecoder:
    """
    Decoder for one response body.

    Each call owns its own instance: the line buffer and the sentinel state
    belong to a single stream.
    """

    def __init__(
        self,
        on_malformed: MalformedSink | None = None,
        *,
        log_malformed: bool = True,
        provider: str = "unknown",
        model: str = "unknown",
    ):
        self.on_malformed = on_malformed
        self.log_malformed = log_malformed
        self.provider = provider
        self.model = model
        self._buffer = LineBuffer()
        self._saw_done = False
        self._completed = False
        self._discarded_tail = False
        self.stats = self._empty_stats()

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {
            'chunks': 0,
            'lines': 0,
            'ignored_lines': 0,
            'fragments': 0,
            'malformed_frames': 0,
        }

    @property
    def saw_done(self) -> bool:
        return self._saw_done

    @staticmethod
    def parse_line(line: str) -> Frame:
        """Classify one complete line (without its line break)."""
        line = line.removesuffix("\r")

        if not line.strip() or not line.startswith(DATA_PREFIX):
            return Frame(kind=FrameKind.IGNORED, raw_line=line)

        payload = line[len(DATA_PREFIX):]
        if payload.strip() == DONE_SENTINEL:
            return Frame(kind=FrameKind.DONE, raw_line=line, payload=payload)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            return Frame(
                kind=FrameKind.MALFORMED,
                raw_line=line,
                payload=payload,
                error=f"JSON decode error: {e}",
            )

        try:
            envelope = StreamEnvelope.model_validate(data)
        except ValidationError as e:
            return Frame(
                kind=FrameKind.MALFORMED,
                raw_line=line,
                payload=payload,
                error=f"Unexpected envelope: {e.error_count()} validation error(s)",
            )

        return Frame(
            kind=FrameKind.DATA, raw_line=line, payload=payload, envelope=envelope
        )

    def feed(self, chunk: bytes) -> list[Frame]:
        """
        Push one raw chunk and return the frames it completed.

        Lines that arrive after the [DONE] sentinel are counted but not
        returned. Malformed frames are reported here and returned so the
        caller can see them; they never raise.
        """
        self.stats['chunks'] += 1
        frames = []
        for line in self._buffer.push(chunk):
            self.stats['lines'] += 1
            if self._saw_done:
                self.stats['ignored_lines'] += 1
                continue

            frame = self.parse_line(line)
            if frame.kind is FrameKind.IGNORED:
                self.stats['ignored_lines'] += 1
            elif frame.kind is FrameKind.DONE:
                self._saw_done = True
            elif frame.kind is FrameKind.MALFORMED:
                self._report_malformed(frame)
            frames.append(frame)
        return frames

    def finish(self) -> DecodeResult:
        """Close out the stream; an unterminated trailing line is dropped."""
        tail = self._buffer.finish()
        if tail:
            self._discarded_tail = True
            logger.debug(
                "Discarding unterminated trailing line",
                length=len(tail),
                saw_done=self._saw_done,
            )
        self._completed = True
        return self.result()

    def result(self) -> DecodeResult:
        return DecodeResult(
            completed=self._completed,
            saw_done=self._saw_done,
            fragments=self.stats['fragments'],
            malformed_frames=self.stats['malformed_frames'],
            lines=self.stats['lines'],
            discarded_tail=self._discarded_tail,
        )

    async def iter_fragments(
        self, byte_stream: AsyncIterable[bytes]
    ) -> AsyncGenerator[ContentFragment]:
        """
        Yield content fragments from a byte stream as they complete.

        Errors raised by the byte stream propagate unchanged. The stream is
        drained to its end even after the sentinel.
        """
        async for chunk in byte_stream:
            for frame in self.feed(chunk):
                fragment = frame.fragment()
                if fragment is not None:
                    self.stats['fragments'] += 1
                    yield fragment
        self.finish()

    async def decode(
        self, byte_stream: AsyncIterable[bytes], on_fragment: FragmentSink
    ) -> DecodeResult:
        """
        Drain a byte stream, calling on_fragment(text, reasoning_text) per fragment.

        The sink runs before the next line is looked at; an awaitable it
        returns is awaited first, so deliveries never overlap.
        """
        async with aclosing(self.iter_fragments(byte_stream)) as fragments:
            async for fragment in fragments:
                delivered = on_fragment(fragment.text, fragment.reasoning_text)
                if inspect.isawaitable(delivered):
                    await delivered
        return self.result()

    def _report_malformed(self, frame: Frame) -> None:
        self.stats['malformed_frames'] += 1
        error = MalformedFrameError(
            frame.raw_line,
            frame.error or "unparseable payload",
            provider=self.provider,
            model=self.model,
        )
        if self.log_malformed:
            logger.warning(
                "Skipping malformed stream frame",
                reason=error.reason,
                line=frame.raw_line[:200],
                provider=self.provider,
                model=self.model,
            )
        if self.on_malformed is not None:
            self.on_malformed(error)

    def get_stats(self) -> dict[str, int]:
        """Get decoding statistics for monitoring."""
        return self.stats.copy()

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = self._empty_stats()


class FragmentAccumulator:
    """
    Caller-side sink that keeps the full text of a streamed reply.

    Pass an instance as on_fragment; the decoder itself never buffers the
    whole message.
    """

    def __init__(self, echo: Callable[[str], Any] | None = None):
        self._text: list[str] = []
        self._reasoning: list[str] = []
        self.echo = echo
        self.count = 0

    def __call__(self, text: str, reasoning_text: str = "") -> None:
        self.count += 1
        if text:
            self._text.append(text)
            if self.echo is not None:
                self.echo(text)
        if reasoning_text:
            self._reasoning.append(reasoning_text)

    @property
    def text(self) -> str:
        return "".join(self._text)

    @property
    def reasoning_text(self) -> str:
        return "".join(self._reasoning)

    def reset(self) -> None:
        """Reset accumulator state for a new stream."""
        self._text.clear()
        self._reasoning.clear()
        self.count = 0
