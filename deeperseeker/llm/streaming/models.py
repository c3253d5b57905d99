"""
Streaming-specific models for the response decoder.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel


class FrameKind(Enum):
    """What a complete response line turned out to be."""
    IGNORED = "ignored"
    DONE = "done"
    DATA = "data"
    MALFORMED = "malformed"


class StreamDelta(BaseModel):
    content: str | None = None
    reasoning_content: str | None = None


class StreamChoice(BaseModel):
    index: int = 0
    delta: StreamDelta | None = None
    finish_reason: str | None = None


class StreamEnvelope(BaseModel):
    """JSON object carried by one data line."""
    choices: list[StreamChoice] = []

    def first_delta(self) -> StreamDelta | None:
        if not self.choices:
            return None
        return self.choices[0].delta


@dataclass(frozen=True)
class ContentFragment:
    """Unit handed to the sink; concatenate in arrival order."""
    text: str
    reasoning_text: str = ""


@dataclass(frozen=True)
class Frame:
    """One complete response line after classification."""
    kind: FrameKind
    raw_line: str
    payload: str = ""
    envelope: StreamEnvelope | None = None
    error: str | None = None

    def fragment(self) -> ContentFragment | None:
        """Content carried by a data frame, or None when it has nothing."""
        if self.kind is not FrameKind.DATA or self.envelope is None:
            return None
        delta = self.envelope.first_delta()
        if delta is None:
            return None
        text = delta.content or ""
        reasoning = delta.reasoning_content or ""
        if not text and not reasoning:
            return None
        return ContentFragment(text=text, reasoning_text=reasoning)


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of draining one response body."""
    completed: bool
    saw_done: bool = False
    fragments: int = 0
    malformed_frames: int = 0
    lines: int = 0
    discarded_tail: bool = False
