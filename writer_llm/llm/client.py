"""
HTTP chat-completion transport and the generation facade.

The transport issues exactly one POST per call. Streaming responses are fed
through the frame decoder and event accumulator; buffered responses are read
whole and the first choice's message content is returned.
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from contextlib import aclosing, asynccontextmanager
from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog

from writer_llm.credentials import EnvSecretResolver, SecretResolver
from writer_llm.logging_utils import log_operation, operation_context

from .catalog import DEFAULT_CATALOG, ModelCatalog
from .exceptions import MalformedResponseError, MissingCredentialError, TransportError
from .models import (
    GenerationDefaults,
    GenerationOptions,
    GenerationRequest,
    ModelInfo,
    ProviderConfig,
)
from .request_builder import DEFAULT_GENERATION, build_payload, build_request
from .streaming.decoder import DEFAULT_EVENT_PREFIX, FrameDecoder, iter_event_lines
from .streaming.models import EventLine, StreamChunk
from .streaming.parser import DONE_SENTINEL, EventAccumulator, ProgressCallback

if TYPE_CHECKING:                                        # pragma: no cover
    from writer_llm.config import Configuration

logger = structlog.get_logger(__name__)


def extract_message_content(result: Any) -> str:
    """Pull `choices[0].message.content` out of a buffered response."""
    try:
        content = result["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedResponseError(
            f"Response is missing choices[0].message.content: {e!r}",
            response_data=result if isinstance(result, dict) else None,
        ) from e

    if not isinstance(content, str):
        raise MalformedResponseError(
            f"choices[0].message.content is {type(content).__name__}, expected str",
            response_data=result,
        )
    return content.strip()


class ChatCompletionTransport(Protocol):
    """Provider adapter contract used by TextGenerator."""

    async def complete(self, request: GenerationRequest) -> str: ...

    def stream(self, request: GenerationRequest) -> AsyncGenerator[StreamChunk]: ...

    async def stream_text(
        self,
        request: GenerationRequest,
        on_progress: ProgressCallback | None = None,
    ) -> str: ...

    async def aclose(self) -> None: ...


class HttpChatTransport:
    """OpenAI-compatible chat-completion transport over httpx."""

    def __init__(
        self,
        provider: ProviderConfig,
        secret_resolver: SecretResolver,
        client: httpx.AsyncClient | None = None,
        *,
        event_prefix: str = DEFAULT_EVENT_PREFIX,
        done_sentinel: str = DONE_SENTINEL,
        encoding: str = "utf-8",
    ) -> None:
        self.provider = provider
        self.secret_resolver = secret_resolver
        self.event_prefix = event_prefix
        self.done_sentinel = done_sentinel
        self.encoding = encoding

        self._owns_client = client is None
        self.client: httpx.AsyncClient = client or httpx.AsyncClient(
            timeout=httpx.Timeout(provider.timeout),
            limits=httpx.Limits(
                max_connections=provider.max_connections,
                max_keepalive_connections=provider.max_keepalive,
            ),
        )

    async def _resolve_headers(self, request: GenerationRequest) -> dict[str, str]:
        api_key = await self.secret_resolver.get_api_key()
        if not api_key:
            raise MissingCredentialError(
                f"No API key available; set {self.provider.api_key_env} first",
                provider=self.provider.name,
                model=request.model,
            )
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def _transport_error(
        self, request: GenerationRequest, status_code: int, body_text: str
    ) -> TransportError:
        return TransportError(
            f"API request failed: {status_code} {body_text}",
            status_code=status_code,
            body_text=body_text,
            provider=self.provider.name,
            model=request.model,
        )

    def _connection_error(
        self, request: GenerationRequest, error: httpx.HTTPError
    ) -> TransportError:
        logger.error("HTTP error", error=str(error), provider=self.provider.name)
        return TransportError(
            f"HTTP error: {error!s}",
            provider=self.provider.name,
            model=request.model,
        )

    async def complete(self, request: GenerationRequest) -> str:
        """Buffered request: return the first choice's message content."""
        headers = await self._resolve_headers(request)
        payload = build_payload(request, self.provider)

        try:
            response = await self.client.post(
                self.provider.url, json=payload, headers=headers
            )
        except httpx.HTTPError as e:
            raise self._connection_error(request, e) from e

        if not response.is_success:
            raise self._transport_error(request, response.status_code, response.text)

        try:
            result = response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Response body is not valid JSON: {e}",
                provider=self.provider.name,
                model=request.model,
                status_code=response.status_code,
            ) from e

        return extract_message_content(result)

    @asynccontextmanager
    async def _open_stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[tuple[EventAccumulator, AsyncGenerator[EventLine]]]:
        """
        Open one streamed response and hand out its accumulator and lines.

        The response is closed when the block exits, however it exits.
        """
        if not request.streaming:
            request = dataclasses.replace(request, streaming=True)

        headers = await self._resolve_headers(request)
        payload = build_payload(request, self.provider)
        context = {
            "provider": self.provider.name,
            "model": request.model,
            "request_id": uuid.uuid4().hex[:8],
        }

        async with operation_context("stream", context=context) as op_log:
            try:
                async with self.client.stream(
                    "POST", self.provider.url, json=payload, headers=headers
                ) as response:
                    if not response.is_success:
                        body = await response.aread()
                        raise self._transport_error(
                            request,
                            response.status_code,
                            body.decode(self.encoding, errors="replace"),
                        )

                    content_type = response.headers.get("content-type", "")
                    if "event-stream" not in content_type:
                        op_log.warning(
                            "Unexpected content-type for streaming response",
                            content_type=content_type,
                        )

                    decoder = FrameDecoder(self.event_prefix, self.encoding)
                    accumulator = EventAccumulator(self.done_sentinel, log=op_log)
                    async with aclosing(
                        iter_event_lines(response.aiter_bytes(), decoder)
                    ) as lines:
                        yield accumulator, lines

                    stats = accumulator.get_streaming_stats()
                    op_log.debug(
                        "Stream finished",
                        lines=stats.total_lines,
                        content_chunks=stats.content_chunks,
                        malformed_lines=stats.malformed_lines,
                    )
            except httpx.HTTPError as e:
                raise self._connection_error(request, e) from e

    async def stream(self, request: GenerationRequest) -> AsyncGenerator[StreamChunk]:
        """
        Streamed request: yield one CONTENT chunk per delta, then one
        COMPLETION chunk.

        The response is released as soon as the sentinel is seen, the body
        ends, or the generator is closed. There is no deadline; wrap the
        call externally for one.
        """
        async with self._open_stream(request) as (accumulator, lines):
            async with aclosing(accumulator.iter_chunks(lines)) as chunks:
                async for chunk in chunks:
                    yield chunk

    async def stream_text(
        self,
        request: GenerationRequest,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Streamed request folded into the final text."""
        async with self._open_stream(request) as (accumulator, lines):
            return await accumulator.consume(lines, on_progress)

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self.client.aclose()


class TextGenerator:
    """
    Generation entry point for callers.

    Each call builds a fresh request; concurrent calls share only the
    transport's HTTP connection pool.
    """

    def __init__(
        self,
        transport: ChatCompletionTransport,
        catalog: ModelCatalog = DEFAULT_CATALOG,
        defaults: GenerationDefaults | None = None,
    ) -> None:
        self.transport = transport
        self.catalog = catalog
        self.defaults = defaults or (
            DEFAULT_GENERATION
            if catalog is DEFAULT_CATALOG
            else GenerationDefaults(model=catalog.default_model)
        )

    @classmethod
    def from_config(
        cls,
        configuration: Configuration,
        secret_resolver: SecretResolver | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> TextGenerator:
        """Wire a generator from YAML/.env configuration."""
        provider = configuration.get_provider_config()
        streaming = configuration.get_streaming_config()
        transport = HttpChatTransport(
            provider,
            secret_resolver or EnvSecretResolver(provider.api_key_env),
            client,
            event_prefix=streaming["event_prefix"],
            done_sentinel=streaming["done_sentinel"],
            encoding=streaming["encoding"],
        )
        return cls(
            transport,
            catalog=configuration.get_model_catalog(),
            defaults=configuration.get_generation_defaults(),
        )

    @log_operation("generate")
    async def generate(
        self,
        prompt: str,
        options: GenerationOptions | Mapping[str, Any] | None = None,
        on_stream: ProgressCallback | None = None,
    ) -> str:
        """
        Generate text for a prompt.

        With `stream` enabled, `on_stream` receives the full text so far after
        every delta. Only a cleanly completed request returns text; on any
        failure the partial text is dropped and the error propagates.
        """
        request = build_request(prompt, options, self.defaults)
        if request.streaming:
            return await self.transport.stream_text(request, on_stream)
        return await self.transport.complete(request)

    async def stream(
        self,
        prompt: str,
        options: GenerationOptions | Mapping[str, Any] | None = None,
    ) -> AsyncGenerator[StreamChunk]:
        """Channel form of a streamed generation."""
        request = build_request(prompt, options, self.defaults)
        async with aclosing(self.transport.stream(request)) as chunks:
            async for chunk in chunks:
                yield chunk

    def get_available_models(self) -> list[ModelInfo]:
        return self.catalog.get_available_models()

    async def close(self) -> None:
        await self.transport.aclose()

    async def __aenter__(self) -> TextGenerator:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
