"""
Streaming chat completion integration.

This package provides:
- Request models built from conversation history
- An httpx client that owns one streaming call at a time
- An incremental decoder for server-sent-event style responses
- Typed errors for every way a call can fail
"""

from __future__ import annotations

from .client import ChatCompletionClient
from .exceptions import (
    BodyDecodingError,
    ChatClientError,
    EmptyBodyError,
    HttpStatusError,
    MalformedFrameError,
    MissingCredentialError,
    StreamTimeoutError,
    TransportError,
)
from .models import ChatCompletionRequest, ChatMessage, MessageRole, WireMessage

__all__ = [
    "BodyDecodingError",
    "ChatClientError",
    "ChatCompletionClient",
    "ChatCompletionRequest",
    "ChatMessage",
    "EmptyBodyError",
    "HttpStatusError",
    "MalformedFrameError",
    "MessageRole",
    "MissingCredentialError",
    "StreamTimeoutError",
    "TransportError",
    "WireMessage",
]
