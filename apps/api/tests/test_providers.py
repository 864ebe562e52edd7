"""
Tests for the OpenAI-compatible embedding and chat providers.

Upstream HTTP is served by httpx.MockTransport.
"""

import json

import httpx
import pytest

from alumni_search.providers.chat import (
    ChatRateLimitError,
    ChatServiceError,
    OpenAICompatibleChatProvider,
)
from alumni_search.providers.embedding import (
    EmbeddingServiceError,
    OpenAICompatibleEmbeddingProvider,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestEmbeddingProvider:

    @pytest.mark.asyncio
    async def test_requests_configured_model_and_dimensions(self):
        # Arrange
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"embedding": [0.5, 0.25, 0.0]}]})

        async with _client(handler) as client:
            provider = OpenAICompatibleEmbeddingProvider(client, "https://api.test", "k", "text-embedding-3-large", dimension=3)

            # Act
            vector = await provider.embed("  AI founders  ")

        # Assert
        assert vector == [0.5, 0.25, 0.0]
        assert seen["url"] == "https://api.test/v1/embeddings"
        assert seen["auth"] == "Bearer k"
        assert seen["body"] == {"model": "text-embedding-3-large", "input": "AI founders", "dimensions": 3}

    @pytest.mark.asyncio
    async def test_http_error_maps_to_service_error(self):
        async with _client(lambda r: httpx.Response(500, text="boom")) as client:
            provider = OpenAICompatibleEmbeddingProvider(client, "https://api.test/v1", "k", "m", dimension=3)

            with pytest.raises(EmbeddingServiceError, match="500"):
                await provider.embed("q")

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_rejected(self):
        async with _client(lambda r: httpx.Response(200, json={"data": [{"embedding": [1.0, 2.0]}]})) as client:
            provider = OpenAICompatibleEmbeddingProvider(client, "https://api.test/v1", "k", "m", dimension=3)

            with pytest.raises(EmbeddingServiceError, match="2 dimensions"):
                await provider.embed("q")

    @pytest.mark.asyncio
    async def test_unexpected_shape_is_rejected(self):
        async with _client(lambda r: httpx.Response(200, json={"object": "list"})) as client:
            provider = OpenAICompatibleEmbeddingProvider(client, "https://api.test/v1", "k", "m", dimension=3)

            with pytest.raises(EmbeddingServiceError):
                await provider.embed("q")

    @pytest.mark.asyncio
    async def test_connection_error_maps_to_service_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            provider = OpenAICompatibleEmbeddingProvider(client, "https://api.test/v1", "k", "m", dimension=3)

            with pytest.raises(EmbeddingServiceError, match="unavailable"):
                await provider.embed("q")

    @pytest.mark.asyncio
    async def test_empty_text_is_rejected_before_request(self):
        async with _client(lambda r: pytest.fail("no request expected")) as client:
            provider = OpenAICompatibleEmbeddingProvider(client, "https://api.test/v1", "k", "m", dimension=3)

            with pytest.raises(ValueError):
                await provider.embed("   ")


class TestChatProvider:

    @pytest.mark.asyncio
    async def test_complete_returns_message_content(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": '  {"results": []} '}}]})

        async with _client(handler) as client:
            provider = OpenAICompatibleChatProvider(client, "https://api.test", "k", "gpt-4o-mini")

            content = await provider.complete([{"role": "user", "content": "hi"}], response_format={"type": "json_object"})

        assert content == '{"results": []}'
        assert seen["body"]["response_format"] == {"type": "json_object"}
        assert "stream" not in seen["body"]

    @pytest.mark.asyncio
    async def test_complete_server_error_raises(self):
        async with _client(lambda r: httpx.Response(502, text="bad gateway")) as client:
            provider = OpenAICompatibleChatProvider(client, "https://api.test", "k", "m")

            with pytest.raises(ChatServiceError, match="502"):
                await provider.complete([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_complete_empty_content_raises(self):
        async with _client(lambda r: httpx.Response(200, json={"choices": [{"message": {"content": "  "}}]})) as client:
            provider = OpenAICompatibleChatProvider(client, "https://api.test", "k", "m")

            with pytest.raises(ChatServiceError):
                await provider.complete([{"role": "user", "content": "hi"}])

    @pytest.mark.asyncio
    async def test_stream_yields_raw_sse_text(self):
        body = (
            'data: {"choices":[{"delta":{"content":"{\\"results\\":"}}]}\n\n'
            "data: [DONE]\n\n"
        )
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, text=body, headers={"Content-Type": "text/event-stream"})

        async with _client(handler) as client:
            provider = OpenAICompatibleChatProvider(client, "https://api.test", "k", "m")

            received = "".join([chunk async for chunk in provider.stream([{"role": "user", "content": "hi"}])])

        assert received == body
        assert seen["body"]["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_error_status_raises_before_output(self):
        async with _client(lambda r: httpx.Response(500, text="oops")) as client:
            provider = OpenAICompatibleChatProvider(client, "https://api.test", "k", "m")

            with pytest.raises(ChatServiceError, match="500"):
                async for _ in provider.stream([{"role": "user", "content": "hi"}]):
                    pass

    @pytest.mark.asyncio
    async def test_stream_rate_limit_raises_rate_limit_error(self):
        async with _client(lambda r: httpx.Response(429, text="slow down")) as client:
            provider = OpenAICompatibleChatProvider(client, "https://api.test", "k", "m")

            with pytest.raises(ChatRateLimitError):
                async for _ in provider.stream([{"role": "user", "content": "hi"}]):
                    pass
