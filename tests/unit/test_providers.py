"""Unit tests for the Ollama and Gemini providers."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from src.core.config import GeminiConfig, OllamaConfig, RetryConfig
from src.core.exceptions import ProviderUnavailable
from src.memory.models import Capabilities
from src.services.gemini_provider import GeminiProvider
from src.services.ollama_provider import OllamaProvider, _model_installed

NO_WAIT = RetryConfig(max_attempts=2, base_delay=0)


@pytest.fixture
def ollama_client():
    client = AsyncMock()
    client.generate = AsyncMock(return_value={"response": "  generated text \n"})
    client.embeddings = AsyncMock(return_value={"embedding": [0.1, 0.2, 0.3]})
    return client


@pytest.fixture
def ollama(ollama_client):
    return OllamaProvider(
        OllamaConfig(model="qwen2.5:3b", embedding_model="nomic-embed-text"),
        NO_WAIT,
        client=ollama_client,
    )


class TestOllamaProvider:
    """Tests for the local provider."""

    def test_model_name_matching(self):
        assert _model_installed("nomic-embed-text", ["nomic-embed-text:latest"])
        assert _model_installed("qwen2.5:3b", ["qwen2.5:3b"])
        assert not _model_installed("qwen2.5:3b", ["qwen2.5:7b"])

    @pytest.mark.asyncio
    async def test_initialize_all_models_installed(self, ollama):
        with patch.object(
            OllamaProvider,
            "list_models",
            AsyncMock(return_value=["qwen2.5:3b", "nomic-embed-text:latest"]),
        ):
            caps = await ollama.initialize()

        assert caps == Capabilities.all_enabled()

    @pytest.mark.asyncio
    async def test_initialize_without_embedding_model(self, ollama):
        with patch.object(OllamaProvider, "list_models", AsyncMock(return_value=["qwen2.5:3b"])):
            caps = await ollama.initialize()

        assert caps.writer and caps.summarizer and caps.proofreader
        assert caps.embedder is False

    @pytest.mark.asyncio
    async def test_initialize_server_down(self, ollama):
        with patch.object(
            OllamaProvider,
            "list_models",
            AsyncMock(side_effect=httpx.ConnectError("connection refused")),
        ):
            caps = await ollama.initialize()

        assert not caps.any_enabled()

    @pytest.mark.asyncio
    async def test_generate_strips_response(self, ollama, ollama_client):
        with patch.object(
            OllamaProvider,
            "list_models",
            AsyncMock(return_value=["qwen2.5:3b", "nomic-embed-text"]),
        ):
            await ollama.initialize()

        assert await ollama.write("hello") == "generated text"
        kwargs = ollama_client.generate.await_args.kwargs
        assert kwargs["model"] == "qwen2.5:3b"
        assert kwargs["prompt"] == "hello"

    @pytest.mark.asyncio
    async def test_embed(self, ollama, ollama_client):
        with patch.object(OllamaProvider, "list_models", AsyncMock(return_value=["nomic-embed-text"])):
            await ollama.initialize()

        assert await ollama.embed("text") == [0.1, 0.2, 0.3]
        ollama_client.embeddings.assert_awaited_once_with(model="nomic-embed-text", prompt="text")

    @pytest.mark.asyncio
    async def test_backend_error_after_retries(self, ollama, ollama_client):
        with patch.object(OllamaProvider, "list_models", AsyncMock(return_value=["qwen2.5:3b"])):
            await ollama.initialize()
        ollama_client.generate.side_effect = httpx.ReadTimeout("timed out")

        with pytest.raises(ProviderUnavailable):
            await ollama.summarize("text")

        assert ollama_client.generate.await_count == 2


def gemini_with(handler) -> GeminiProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiProvider(
        GeminiConfig(api_key="test-key", model="gemini-test", embedding_model="embed-test"),
        NO_WAIT,
        http_client=client,
    )


class TestGeminiProvider:
    """Tests for the remote provider."""

    def test_not_configured_without_key(self):
        assert not GeminiProvider(GeminiConfig(api_key=None)).is_configured()

    @pytest.mark.asyncio
    async def test_initialize_without_key(self):
        provider = GeminiProvider(GeminiConfig(api_key=None))
        caps = await provider.initialize()
        assert not caps.any_enabled()

    @pytest.mark.asyncio
    async def test_initialize_success_enables_everything(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"models": []})

        provider = gemini_with(handler)
        caps = await provider.initialize()

        assert caps == Capabilities.all_enabled()
        assert seen[0].url.path.endswith("/models")
        assert seen[0].headers["x-goog-api-key"] == "test-key"
        assert "key" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_initialize_rejected_key(self):
        provider = gemini_with(lambda request: httpx.Response(403, json={"error": "denied"}))
        caps = await provider.initialize()
        assert not caps.any_enabled()

    @pytest.mark.asyncio
    async def test_generate_content(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"models": []})
            body = json.loads(request.content)
            assert request.url.path.endswith("models/gemini-test:generateContent")
            assert body["contents"][0]["parts"][0]["text"].endswith("question")
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": " the answer "}]}}]
            })

        provider = gemini_with(handler)
        await provider.initialize()

        assert await provider.write("question") == "the answer"

    @pytest.mark.asyncio
    async def test_embed_content(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"models": []})
            assert request.url.path.endswith("models/embed-test:embedContent")
            return httpx.Response(200, json={"embedding": {"values": [1, 2, 3]}})

        provider = gemini_with(handler)
        await provider.initialize()

        assert await provider.embed("text") == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_empty_candidates_raise_after_retries(self):
        calls = {"post": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json={"models": []})
            calls["post"] += 1
            return httpx.Response(200, json={"candidates": []})

        provider = gemini_with(handler)
        await provider.initialize()

        with pytest.raises(ProviderUnavailable):
            await provider.proofread("text")

        assert calls["post"] == 2
