"""
Streaming functionality for chat completion responses.

- Line reassembly over arbitrary byte chunks
- data: frame classification and [DONE] handling
- Fragment delivery to sinks or an async generator
"""

from .models import ContentFragment, DecodeResult, Frame, FrameKind, StreamEnvelope
from .parser import DATA_PREFIX, DONE_SENTINEL, FragmentAccumulator, LineBuffer, StreamDecoder

__all__ = [
    "DATA_PREFIX",
    "DONE_SENTINEL",
    "ContentFragment",
    "DecodeResult",
    "FragmentAccumulator",
    "Frame",
    "FrameKind",
    "LineBuffer",
    "StreamDecoder",
    "StreamEnvelope",
]
