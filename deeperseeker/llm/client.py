"""
Streaming chat completion client.

Builds the outbound request from conversation history, issues a single
streaming POST and feeds the response body through a fresh StreamDecoder.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from typing import Any

import httpx

from deeperseeker.config import Configuration
from deeperseeker.logging_utils import operation_context
from deeperseeker.storage import API_KEY, KeyValueStore

from .exceptions import (
    BodyDecodingError,
    EmptyBodyError,
    HttpStatusError,
    MissingCredentialError,
    StreamTimeoutError,
    TransportError,
)
from .models import DEFAULT_MAX_TOKENS, ChatCompletionRequest, ChatMessage
from .streaming.models import DecodeResult
from .streaming.parser import FragmentSink, MalformedSink, StreamDecoder

COMPLETIONS_PATH = "/chat/completions"
NO_CONTENT_STATUSES = {204, 205}


class ChatCompletionClient:
    """HTTP client for one streaming chat completion backend."""

    def __init__(
        self,
        config: dict[str, Any],
        api_key: str | None = None,
        *,
        key_store: KeyValueStore | None = None,
        http_config: dict[str, Any] | None = None,
        streaming_config: dict[str, Any] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        required_keys = ["base_url"]
        for key in required_keys:
            if key not in config:
                raise ValueError(
                    f"Required LLM configuration parameter '{key}' not found."
                )

        self.config: dict[str, Any] = config
        self.api_key = api_key
        self.key_store = key_store
        self.provider: str = config.get("provider", "unknown")
        self.max_tokens: int = config.get("max_tokens", DEFAULT_MAX_TOKENS)
        self.log_malformed: bool = (streaming_config or {}).get(
            "log_malformed_frames", True
        )

        if http_config:
            timeout = httpx.Timeout(
                connect=http_config["connect_timeout"],
                read=http_config["read_timeout"],
                write=http_config["write_timeout"],
                pool=http_config["pool_timeout"],
            )
        else:
            timeout = httpx.Timeout(30.0)

        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=config["base_url"],
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_configuration(
        cls,
        configuration: Configuration,
        *,
        key_store: KeyValueStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ChatCompletionClient:
        """Create a client from the YAML/env configuration."""
        return cls(
            configuration.get_llm_config(),
            configuration.llm_api_key,
            key_store=key_store,
            http_config=configuration.get_http_client_config(),
            streaming_config=configuration.get_streaming_config(),
            transport=transport,
        )

    def build_request(
        self, history: Sequence[ChatMessage], model_id: str
    ) -> ChatCompletionRequest:
        """Build the request body; blank history entries are left out."""
        if not model_id or not model_id.strip():
            raise ValueError("model_id must be a non-empty string")
        return ChatCompletionRequest.from_history(
            history, model_id, max_tokens=self.max_tokens
        )

    async def _resolve_api_key(self) -> str:
        """Environment key first, then the stored one."""
        if self.api_key:
            return self.api_key
        if self.key_store is not None:
            stored = await self.key_store.get(API_KEY)
            if stored:
                return stored
        raise MissingCredentialError(
            "No API key configured; set it in the environment or store one",
            provider=self.provider,
        )

    async def send_message(
        self,
        history: Sequence[ChatMessage],
        model_id: str,
        on_fragment: FragmentSink,
        on_malformed: MalformedSink | None = None,
    ) -> DecodeResult:
        """
        Stream a reply to `history`, delivering fragments to `on_fragment`.

        Returns once the response body is fully drained. Raises
        HttpStatusError, EmptyBodyError, BodyDecodingError or TransportError
        (StreamTimeoutError for timeouts) on failure; a cancelled task
        raises CancelledError and the response is closed.
        Fragments already delivered stay valid either way.
        """
        request = self.build_request(history, model_id)
        api_key = await self._resolve_api_key()
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "text/event-stream",
        }
        decoder = StreamDecoder(
            on_malformed,
            log_malformed=self.log_malformed,
            provider=self.provider,
            model=model_id,
        )

        async with operation_context(
            "chat_completion_stream",
            context={
                "provider": self.provider,
                "model": model_id,
                "messages": len(request.messages),
            },
        ) as op_logger:
            try:
                async with self.client.stream(
                    "POST", COMPLETIONS_PATH, json=request.model_dump(), headers=headers
                ) as response:
                    await self._check_response(response, model_id)
                    result = await decoder.decode(
                        self._iter_body(response), on_fragment
                    )
            except httpx.TimeoutException as e:
                raise StreamTimeoutError(
                    f"Timed out during streaming: {e!s}",
                    provider=self.provider,
                    model=model_id,
                ) from e
            except httpx.DecodingError as e:
                raise BodyDecodingError(
                    f"Could not decode response body: {e!s}",
                    provider=self.provider,
                    model=model_id,
                ) from e
            except httpx.RequestError as e:
                raise TransportError(
                    f"Transport error during streaming: {e!s}",
                    provider=self.provider,
                    model=model_id,
                ) from e

            op_logger.debug(
                "Stream drained",
                fragments=result.fragments,
                malformed_frames=result.malformed_frames,
                saw_done=result.saw_done,
            )
        return result

    async def _check_response(self, response: httpx.Response, model_id: str) -> None:
        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            raise HttpStatusError(
                f"API request failed with status {response.status_code}",
                body=body,
                provider=self.provider,
                model=model_id,
                status_code=response.status_code,
            )

        if (
            response.status_code in NO_CONTENT_STATUSES
            or response.headers.get("content-length") == "0"
        ):
            raise EmptyBodyError(
                "Response has no readable body",
                provider=self.provider,
                model=model_id,
                status_code=response.status_code,
            )

    @staticmethod
    async def _iter_body(response: httpx.Response) -> AsyncGenerator[bytes]:
        async for chunk in response.aiter_bytes():
            yield chunk

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> ChatCompletionClient:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
