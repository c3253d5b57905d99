"""
Error handling for streaming chat completion calls.

Every hard failure of a call derives from ChatClientError and carries the
provider and model it happened against:
- HttpStatusError when the backend refuses the request
- EmptyBodyError when a successful response has nothing to read
- TransportError when the connection drops mid-stream
- StreamTimeoutError when one of the httpx timeouts fires
- BodyDecodingError when the Content-Encoding of the body is corrupt

MalformedFrameError is the one soft error. The decoder reports it and
keeps going; it is never raised out of a call.

Each class names its log category so logging code can classify errors
without importing this package.
"""

from __future__ import annotations


class ChatClientError(Exception):
    """Base chat client error with request context."""

    category = "unknown_error"

    def __init__(
        self,
        message: str,
        provider: str = "unknown",
        model: str = "unknown",
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_data = response_data or {}


class HttpStatusError(ChatClientError):
    """Backend answered with a non-success status before streaming began."""

    category = "http_status_error"

    def __init__(self, message: str, body: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.body = body


class EmptyBodyError(ChatClientError):
    """Response reported success but exposed no readable body."""
    category = "empty_body_error"


class TransportError(ChatClientError):
    """Connection failed or was torn down while reading the stream."""
    category = "transport_error"


class MissingCredentialError(ChatClientError, ValueError):
    """No bearer token available for the request."""
    category = "parameter_error"


class MalformedFrameError(ChatClientError):
    """A data line whose payload is not a valid stream envelope."""

    category = "malformed_frame"

    def __init__(self, line: str, reason: str, **kwargs):
        super().__init__(f"Malformed frame: {reason}", **kwargs)
        self.line = line
        self.reason = reason


class StreamTimeoutError(TransportError):
    """Connect, read, write or pool timeout while streaming."""
    category = "timeout_error"


class BodyDecodingError(ChatClientError):
    """Response body could not be decoded per its Content-Encoding."""
    category = "decoding_error"
