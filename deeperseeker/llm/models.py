"""
Chat message and request models.

ChatMessage is what callers keep as conversation history. The outbound
request body is a pydantic model so the wire shape is validated and
serialized in one place.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_MAX_TOKENS = 6000


class MessageRole(Enum):
    """Roles a conversation entry can carry."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """One entry of the conversation history."""
    role: MessageRole
    content: str

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(MessageRole.USER, content)

    @classmethod
    def assistant(cls, content: str) -> ChatMessage:
        return cls(MessageRole.ASSISTANT, content)


class WireMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatCompletionRequest(BaseModel):
    """Request body for POST /chat/completions."""
    model: str = Field(min_length=1)
    messages: list[WireMessage]
    stream: bool = True
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)

    @classmethod
    def from_history(
        cls,
        history: Sequence[ChatMessage],
        model: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ) -> ChatCompletionRequest:
        """
        Build a streaming request from conversation history.

        Entries with empty or whitespace-only content are dropped; the
        remaining ones keep their chronological order.
        """
        messages = [
            WireMessage(role=message.role.value, content=message.content)
            for message in history
            if message.content.strip()
        ]
        return cls(model=model, messages=messages, max_tokens=max_tokens)
