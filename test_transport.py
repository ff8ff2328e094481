#!/usr/bin/env python3
"""
Transport and TextGenerator tests against an in-process HTTP mock.

httpx.MockTransport stands in for the provider so every request the client
makes is observable and counted.
"""

import asyncio
import json
from contextlib import aclosing

import httpx
import pytest

from writer_llm.credentials import EnvSecretResolver, StaticSecretResolver
from writer_llm.llm.client import HttpChatTransport, TextGenerator, extract_message_content
from writer_llm.llm.exceptions import (
    ConfigError,
    MalformedResponseError,
    MissingCredentialError,
    TransportError,
)
from writer_llm.llm.models import ProviderConfig
from writer_llm.llm.streaming.models import StreamChunkType

PROVIDER = ProviderConfig(
    name="gemini",
    base_url="https://generativelanguage.googleapis.com/v1beta/openai",
)


def sse(content: str) -> bytes:
    payload = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode()


def chunked(data: bytes, size: int) -> list[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


class RecordingProvider:
    """MockTransport handler that records requests and replays a response."""

    def __init__(self, status=200, body=b"", chunks=None, content_type=None, error=None):
        self.status = status
        self.body = body
        self.chunks = chunks
        self.content_type = content_type
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error

        headers = {}
        if self.content_type:
            headers["content-type"] = self.content_type

        if self.chunks is not None:
            async def body():
                for chunk in self.chunks:
                    yield chunk
            return httpx.Response(self.status, headers=headers, content=body())
        return httpx.Response(self.status, headers=headers, content=self.body)

    @property
    def call_count(self) -> int:
        return len(self.requests)


def make_generator(provider: RecordingProvider, api_key="test-key") -> TextGenerator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
    transport = HttpChatTransport(PROVIDER, StaticSecretResolver(api_key), client)
    return TextGenerator(transport)


class ClosingBody(httpx.AsyncByteStream):
    """Response body that remembers whether it was closed."""

    def __init__(self, chunks: list[bytes]):
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def serve_body(body: ClosingBody) -> TextGenerator:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, headers={"content-type": "text/event-stream"}, stream=body
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TextGenerator(HttpChatTransport(PROVIDER, StaticSecretResolver("k"), client))


def json_body(data) -> bytes:
    return json.dumps(data).encode()


class TestCredentials:
    """No token means no network traffic."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("options", [{}, {"stream": True}])
    async def test_missing_credential_makes_zero_requests(self, options):
        provider = RecordingProvider(body=json_body({}))
        generator = make_generator(provider, api_key=None)

        with pytest.raises(MissingCredentialError):
            await generator.generate("any prompt", options)
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_env_resolver_without_variable(self, monkeypatch):
        monkeypatch.delenv("WRITER_LLM_TEST_KEY", raising=False)
        provider = RecordingProvider(body=json_body({}))
        client = httpx.AsyncClient(transport=httpx.MockTransport(provider))
        transport = HttpChatTransport(
            PROVIDER, EnvSecretResolver("WRITER_LLM_TEST_KEY"), client
        )

        with pytest.raises(MissingCredentialError):
            await TextGenerator(transport).generate("any prompt", {})
        assert provider.call_count == 0

    @pytest.mark.asyncio
    async def test_blank_prompt_fails_before_credentials(self):
        provider = RecordingProvider(body=json_body({}))
        generator = make_generator(provider, api_key=None)

        with pytest.raises(ConfigError):
            await generator.generate("   ")
        assert provider.call_count == 0


class TestBufferedResponses:
    """Non-streaming path."""

    @pytest.mark.asyncio
    async def test_returns_message_content(self):
        provider = RecordingProvider(
            body=json_body({"choices": [{"message": {"content": "Hello"}}]})
        )
        async with make_generator(provider) as generator:
            assert await generator.generate("Say hello") == "Hello"
        assert provider.call_count == 1

    @pytest.mark.asyncio
    async def test_request_shape(self):
        provider = RecordingProvider(
            body=json_body({"choices": [{"message": {"content": "ok"}}]})
        )
        await make_generator(provider).generate("Outline a novel", {"temperature": 0.3})

        request = provider.requests[0]
        assert request.method == "POST"
        assert str(request.url) == PROVIDER.url
        assert request.headers["authorization"] == "Bearer test-key"
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {
            "model": "gemini-2.5-pro-exp-03-25",
            "messages": [
                {"role": "system", "content": "Outline a novel"},
                {"role": "user", "content": "none"},
            ],
            "stream": False,
            "temperature": 0.3,
            "max_tokens": 64000,
        }

    @pytest.mark.asyncio
    async def test_error_status_carries_body(self):
        provider = RecordingProvider(status=401, body=b'{"error": "bad key"}')

        with pytest.raises(TransportError) as exc_info:
            await make_generator(provider).generate("p")

        assert exc_info.value.status_code == 401
        assert exc_info.value.body_text == '{"error": "bad key"}'
        assert exc_info.value.provider == "gemini"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        json_body({"choices": []}),
        json_body({"choices": [{"message": {}}]}),
        json_body({"choices": [{"message": {"content": None}}]}),
        json_body({"result": "Hello"}),
        b"<html>not json</html>",
    ])
    async def test_malformed_success_bodies(self, body):
        provider = RecordingProvider(body=body)
        with pytest.raises(MalformedResponseError):
            await make_generator(provider).generate("p")

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        provider = RecordingProvider(error=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError) as exc_info:
            await make_generator(provider).generate("p")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_extract_message_content_strips(self):
        assert extract_message_content(
            {"choices": [{"message": {"content": "  Hello\n"}}]}
        ) == "Hello"


class TestStreamingResponses:
    """Streaming path, end to end through decoder and accumulator."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("chunk_size", [1, 3, 7, 64, 4096])
    async def test_streams_across_arbitrary_chunking(self, chunk_size):
        body = sse("Chapter ") + sse("一: ") + sse("the 🌊 ") + sse("begins") + b"data: [DONE]\n\n"
        provider = RecordingProvider(
            chunks=chunked(body, chunk_size), content_type="text/event-stream"
        )
        seen = []

        text = await make_generator(provider).generate(
            "p", {"stream": True}, on_stream=seen.append
        )

        assert text == "Chapter 一: the 🌊 begins"
        assert seen == [
            "Chapter ",
            "Chapter 一: ",
            "Chapter 一: the 🌊 ",
            "Chapter 一: the 🌊 begins",
        ]
        assert json.loads(provider.requests[0].content)["stream"] is True

    @pytest.mark.asyncio
    async def test_sentinel_stops_before_trailing_lines(self):
        body = sse("done here") + b"data: [DONE]\n\n" + sse(" extra") + b"data: garbage\n"
        provider = RecordingProvider(chunks=[body], content_type="text/event-stream")

        text = await make_generator(provider).generate("p", {"stream": True})
        assert text == "done here"

    @pytest.mark.asyncio
    async def test_malformed_line_is_tolerated(self):
        body = sse("Hello, ") + b"data: not-json\n\n" + sse("world") + b"data: [DONE]\n\n"
        provider = RecordingProvider(chunks=chunked(body, 5), content_type="text/event-stream")

        text = await make_generator(provider).generate("p", {"stream": True})
        assert text == "Hello, world"

    @pytest.mark.asyncio
    async def test_stream_without_sentinel_or_trailing_newline(self):
        body = sse("a") + sse("b").rstrip(b"\n")
        provider = RecordingProvider(chunks=[body], content_type="text/event-stream")

        assert await make_generator(provider).generate("p", {"stream": True}) == "ab"

    @pytest.mark.asyncio
    async def test_async_progress_callback(self):
        provider = RecordingProvider(
            chunks=[sse("x"), sse("y"), b"data: [DONE]\n"], content_type="text/event-stream"
        )
        seen = []

        async def on_stream(text):
            await asyncio.sleep(0)
            seen.append(text)

        await make_generator(provider).generate("p", {"stream": True}, on_stream=on_stream)
        assert seen == ["x", "xy"]

    @pytest.mark.asyncio
    async def test_error_status_reads_body(self):
        provider = RecordingProvider(
            status=429, chunks=[b"rate ", b"limited"], content_type="text/plain"
        )

        with pytest.raises(TransportError) as exc_info:
            await make_generator(provider).generate("p", {"stream": True})

        assert exc_info.value.status_code == 429
        assert exc_info.value.body_text == "rate limited"

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        provider = RecordingProvider(error=httpx.ConnectError("connection refused"))

        with pytest.raises(TransportError):
            await make_generator(provider).generate("p", {"stream": True})

    @pytest.mark.asyncio
    async def test_channel_form(self):
        provider = RecordingProvider(
            chunks=[sse("a"), sse("b"), b"data: [DONE]\n"], content_type="text/event-stream"
        )

        chunks = [c async for c in make_generator(provider).stream("p")]

        assert [c.chunk_type for c in chunks] == [
            StreamChunkType.CONTENT,
            StreamChunkType.CONTENT,
            StreamChunkType.COMPLETION,
        ]
        assert [c.accumulated_content for c in chunks] == ["a", "ab", "ab"]
        assert json.loads(provider.requests[0].content)["stream"] is True

    @pytest.mark.asyncio
    async def test_concurrent_requests_do_not_share_state(self):
        def handler(request: httpx.Request) -> httpx.Response:
            prompt = json.loads(request.content)["messages"][0]["content"]

            async def body():
                for letter in prompt:
                    await asyncio.sleep(0)
                    yield sse(letter)
                yield b"data: [DONE]\n"

            return httpx.Response(200, content=body())

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = HttpChatTransport(PROVIDER, StaticSecretResolver("k"), client)
        generator = TextGenerator(transport)

        results = await asyncio.gather(
            generator.generate("abcdef", {"stream": True}),
            generator.generate("uvwxyz", {"stream": True}),
        )
        assert results == ["abcdef", "uvwxyz"]

    @pytest.mark.asyncio
    async def test_failing_callback_closes_response(self):
        body = ClosingBody([sse("a"), sse("b"), b"data: [DONE]\n"])

        def on_stream(text):
            raise RuntimeError("editor went away")

        with pytest.raises(RuntimeError, match="editor went away"):
            await serve_body(body).generate("p", {"stream": True}, on_stream=on_stream)
        assert body.closed

    @pytest.mark.asyncio
    async def test_abandoned_channel_closes_response(self):
        body = ClosingBody([sse("a"), sse("b"), b"data: [DONE]\n"])

        async with aclosing(serve_body(body).stream("p")) as chunks:
            async for chunk in chunks:
                assert chunk.accumulated_content == "a"
                break

        assert body.closed


class TestModelCatalogAccess:
    def test_get_available_models(self):
        generator = make_generator(RecordingProvider())
        assert [m.id for m in generator.get_available_models()] == [
            "gemini-2.5-flash-preview-04-17",
            "gemini-2.5-pro-exp-03-25",
        ]
