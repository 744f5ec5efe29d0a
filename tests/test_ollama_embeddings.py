"""
Tests for the Ollama embedding provider.

HTTP calls are mocked at the provider's request helpers, plus one class that
runs against a local aiohttp test server to exercise the real wire format.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import aiohttp
import numpy as np
import pytest
from aiohttp import test_utils, web
from conftest import make_entry

from decision_journal_rag.embeddings.ollama import OllamaConfig, OllamaEmbeddings
from decision_journal_rag.embeddings.resilience import RetryConfig
from decision_journal_rag.exceptions import (
    EmbeddingError,
    EmbeddingServiceError,
    MalformedResponseError,
)
from decision_journal_rag.projection import EMBEDDING_TEXT_VERSION


@pytest.fixture
def no_sleep():
    with patch(
        "decision_journal_rag.embeddings.resilience.asyncio.sleep", new_callable=AsyncMock
    ) as sleep:
        yield sleep


@pytest.fixture
async def ollama():
    provider = OllamaEmbeddings(OllamaConfig(base_url="http://ollama.test:11434/"))
    yield provider
    await provider.close()


class TestConfig:
    def test_defaults(self):
        config = OllamaConfig()
        assert config.base_url == "http://localhost:11434"
        assert config.model == "nomic-embed-text"
        assert config.timeout == 30.0

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("JOURNAL_RAG_OLLAMA_URL", "http://gpu-box:11434")
        monkeypatch.setenv("JOURNAL_RAG_EMBEDDING_MODEL", "mxbai-embed-large")
        monkeypatch.setenv("JOURNAL_RAG_EMBEDDING_TIMEOUT", "12")

        config = OllamaConfig.from_env()

        assert config.base_url == "http://gpu-box:11434"
        assert config.model == "mxbai-embed-large"
        assert config.timeout == 12.0
        assert config.probe_timeout == 5.0

    def test_known_model_dimensions(self):
        assert OllamaEmbeddings().dimensions == 768
        assert OllamaEmbeddings(OllamaConfig(model="all-minilm")).dimensions == 384

    def test_unknown_model_dimensions(self):
        assert OllamaEmbeddings(OllamaConfig(model="custom")).dimensions == 768
        assert OllamaEmbeddings(OllamaConfig(model="custom"), dimensions=256).dimensions == 256

    def test_trailing_slash_stripped(self, ollama):
        assert ollama.base_url == "http://ollama.test:11434"


class TestEmbedText:
    @pytest.mark.asyncio
    async def test_returns_float32_vector(self, ollama, no_sleep):
        with patch.object(
            ollama, "_post_embedding", AsyncMock(return_value={"embedding": [0.1, 0.2, 3]})
        ) as post:
            vector = await ollama.embed_text("hello")

        assert vector.dtype == np.float32
        np.testing.assert_allclose(vector, [0.1, 0.2, 3.0], rtol=1e-6)
        post.assert_awaited_once_with("hello", "nomic-embed-text")

    @pytest.mark.asyncio
    async def test_model_override(self, ollama, no_sleep):
        with patch.object(
            ollama, "_post_embedding", AsyncMock(return_value={"embedding": [1.0]})
        ) as post:
            await ollama.embed_text("hello", model="all-minilm")

        post.assert_awaited_once_with("hello", "all-minilm")

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, ollama, no_sleep):
        post = AsyncMock(
            side_effect=[aiohttp.ClientConnectionError("refused"), {"embedding": [1.0, 0.0]}]
        )
        with patch.object(ollama, "_post_embedding", post):
            vector = await ollama.embed_text("hello")

        assert vector.tolist() == [1.0, 0.0]
        assert post.await_count == 2
        no_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_exhaustion_raises_embedding_error(self, ollama, no_sleep):
        cause = aiohttp.ClientConnectionError("refused")
        with patch.object(ollama, "_post_embedding", AsyncMock(side_effect=cause)) as post:
            with pytest.raises(EmbeddingError) as exc_info:
                await ollama.embed_text("hello")

        assert post.await_count == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.__cause__ is cause
        assert str(exc_info.value).startswith("Failed to generate embedding:")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"embedding": "not-a-list"},
            {"embedding": []},
            {"embedding": [0.1, "x"]},
            {"embedding": [True, False]},
            ["embedding"],
        ],
    )
    async def test_malformed_payload_retried_then_fails(self, ollama, no_sleep, payload):
        with patch.object(ollama, "_post_embedding", AsyncMock(return_value=payload)) as post:
            with pytest.raises(EmbeddingError) as exc_info:
                await ollama.embed_text("hello")

        assert post.await_count == 4
        assert isinstance(exc_info.value.cause, MalformedResponseError)

    @pytest.mark.asyncio
    async def test_http_error_retried_like_network_error(self, ollama, no_sleep):
        post = AsyncMock(
            side_effect=[
                EmbeddingServiceError("http://ollama.test:11434/api/embeddings", 500),
                {"embedding": [0.5]},
            ]
        )
        with patch.object(ollama, "_post_embedding", post):
            vector = await ollama.embed_text("hello")

        assert vector.tolist() == [0.5]

    @pytest.mark.asyncio
    async def test_custom_retry_budget(self, no_sleep):
        provider = OllamaEmbeddings(retry_config=RetryConfig(max_retries=0))
        with patch.object(provider, "_post_embedding", AsyncMock(side_effect=TimeoutError())):
            with pytest.raises(EmbeddingError) as exc_info:
                await provider.embed_text("hello")

        assert exc_info.value.attempts == 1
        no_sleep.assert_not_awaited()


class TestAvailability:
    @pytest.mark.asyncio
    async def test_service_available(self, ollama):
        with patch.object(ollama, "_ping", AsyncMock(return_value=True)):
            assert await ollama.is_service_available() is True

    @pytest.mark.asyncio
    async def test_service_unreachable_answers_false(self, ollama):
        with patch.object(
            ollama, "_ping", AsyncMock(side_effect=aiohttp.ClientConnectionError("refused"))
        ):
            assert await ollama.is_service_available() is False

    @pytest.mark.asyncio
    async def test_model_matches_exact_or_tagged_name(self, ollama):
        with patch.object(
            ollama, "_fetch_tags", AsyncMock(return_value=["llama3:8b", "nomic-embed-text:latest"])
        ):
            assert await ollama.is_model_available() is True
            assert await ollama.is_model_available("llama3") is True
            assert await ollama.is_model_available("mxbai-embed-large") is False

    @pytest.mark.asyncio
    async def test_model_prefix_without_colon_does_not_match(self, ollama):
        with patch.object(ollama, "_fetch_tags", AsyncMock(return_value=["nomic-embed-text-v2"])):
            assert await ollama.is_model_available() is False

    @pytest.mark.asyncio
    async def test_model_check_failure_answers_false(self, ollama):
        with patch.object(ollama, "_fetch_tags", AsyncMock(side_effect=TimeoutError())):
            assert await ollama.is_model_available() is False


class TestGenerateEntryEmbedding:
    @pytest.mark.asyncio
    async def test_builds_vector_record(self, ollama, no_sleep):
        entry = make_entry("e1", "Take the job?", tags=["career"])
        now = datetime(2024, 6, 1, tzinfo=UTC)

        with patch.object(
            ollama, "_post_embedding", AsyncMock(return_value={"embedding": [0.1, 0.2]})
        ) as post:
            record = await ollama.generate_entry_embedding(entry, now=now)

        post.assert_awaited_once_with("Problem: Take the job? | Tags: career", "nomic-embed-text")
        assert record.entry_id == "e1"
        assert record.embedding_text == "Problem: Take the job? | Tags: career"
        assert record.model_name == "nomic-embed-text"
        assert record.version == EMBEDDING_TEXT_VERSION
        assert record.created_at == record.updated_at == now
        assert record.dimensions == 2


class TestAgainstLocalServer:
    """Round trip through a real HTTP server speaking the Ollama API."""

    @pytest.fixture
    async def server(self):
        state = {
            "embedding_status": 200,
            "requests": [],
            "models": [{"name": "nomic-embed-text:latest"}],
        }

        async def embeddings(request: web.Request) -> web.Response:
            body = await request.json()
            state["requests"].append(body)
            if state["embedding_status"] != 200:
                return web.Response(status=state["embedding_status"], text="busy")
            return web.json_response({"embedding": [0.25, 0.5, 0.75]})

        async def tags(request: web.Request) -> web.Response:
            return web.json_response({"models": state["models"]})

        app = web.Application()
        app.router.add_post("/api/embeddings", embeddings)
        app.router.add_get("/api/tags", tags)

        test_server = test_utils.TestServer(app)
        await test_server.start_server()
        yield test_server, state
        await test_server.close()

    @pytest.mark.asyncio
    async def test_embed_and_check_availability(self, server):
        test_server, state = server
        base_url = str(test_server.make_url("/"))

        async with OllamaEmbeddings(OllamaConfig(base_url=base_url)) as provider:
            vector = await provider.embed_text("hello world")
            assert await provider.is_service_available() is True
            assert await provider.is_model_available() is True

        assert vector.tolist() == [0.25, 0.5, 0.75]
        assert state["requests"] == [{"model": "nomic-embed-text", "prompt": "hello world"}]

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self, server, no_sleep):
        test_server, state = server
        state["embedding_status"] = 503
        base_url = str(test_server.make_url("/"))

        async with OllamaEmbeddings(OllamaConfig(base_url=base_url)) as provider:
            with pytest.raises(EmbeddingError) as exc_info:
                await provider.embed_text("hello")

        assert len(state["requests"]) == 4
        assert isinstance(exc_info.value.cause, EmbeddingServiceError)
        assert exc_info.value.cause.status == 503

    @pytest.mark.asyncio
    async def test_unreachable_server_reports_unavailable(self, no_sleep):
        # Port 9 (discard) is not expected to run an HTTP server
        config = OllamaConfig(base_url="http://127.0.0.1:9", probe_timeout=1.0)

        async with OllamaEmbeddings(config) as provider:
            assert await provider.is_service_available() is False
            assert await provider.is_model_available() is False

    @pytest.mark.asyncio
    async def test_non_string_model_names_ignored(self, server):
        test_server, state = server
        state["models"] = [
            {"name": None},
            {"name": 7},
            {},
            "junk",
            {"name": "nomic-embed-text:latest"},
        ]
        base_url = str(test_server.make_url("/"))

        async with OllamaEmbeddings(OllamaConfig(base_url=base_url)) as provider:
            assert await provider.is_model_available() is True
            assert await provider.is_model_available("all-minilm") is False

    @pytest.mark.asyncio
    async def test_malformed_model_list_answers_false(self, server):
        test_server, state = server
        state["models"] = 42
        base_url = str(test_server.make_url("/"))

        async with OllamaEmbeddings(OllamaConfig(base_url=base_url)) as provider:
            assert await provider.is_model_available() is False
