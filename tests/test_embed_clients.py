"""Tests for the embedding clients against mocked backends."""

import json

import httpx
import pytest

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.embed.ollama.EmbedClientOllama import EmbedClientOllama
from shared.clients.embed.openai.EmbedClientOpenai import EmbedClientOpenai
from shared.exceptions import EmbeddingUnavailable


def ollama_handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    if request.url.path == "/api/show":
        return httpx.Response(200, json={"model_info": {"bert.embedding_length": 3}})
    if request.url.path == "/api/embed":
        return httpx.Response(200, json={"embeddings": [[float(len(text)), 0.0, 1.0] for text in body["input"]]})
    return httpx.Response(404)


@pytest.fixture
async def ollama(helper_config) -> EmbedClientOllama:
    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(ollama_handler))
    yield client
    await client.close()


def test_manager_selects_engine(helper_config, env):
    assert isinstance(EmbedClientManager(helper_config).get_client(), EmbedClientOllama)
    env.setenv("EMBED_ENGINE", "OpenAI")
    assert isinstance(EmbedClientManager(helper_config).get_client(), EmbedClientOpenai)


def test_manager_rejects_unknown_engine(helper_config, env):
    env.setenv("EMBED_ENGINE", "nonexistent")
    with pytest.raises(ValueError):
        EmbedClientManager(helper_config)


def test_model_is_required(helper_config, env):
    env.delenv("EMBED_MODEL")
    with pytest.raises(ValueError):
        EmbedClientOllama(helper_config=helper_config)


@pytest.mark.asyncio
async def test_ollama_vector_size(ollama):
    assert await ollama.do_fetch_embedding_vector_size() == (3, "Cosine")
    assert ollama.get_vector_size() == 3


@pytest.mark.asyncio
async def test_ollama_embeds_in_order_and_batches(helper_config, env):
    env.setenv("EMBED_BATCH_SIZE", "2")
    env.setenv("EMBED_MODEL_MAX_CHARS", "4")
    seen_batches: list[list[str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        texts = json.loads(request.content)["input"]
        seen_batches.append(texts)
        return httpx.Response(200, json={"embeddings": [[float(len(t))] for t in texts]})

    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(handler))
    try:
        vectors = await client.do_embed(["a", "bb", "ccccccc"])
    finally:
        await client.close()

    assert seen_batches == [["a", "bb"], ["cccc"]]
    assert vectors == [[1.0], [2.0], [4.0]]


@pytest.mark.asyncio
async def test_embed_of_nothing_sends_no_request(ollama):
    assert await ollama.do_embed([]) == []


@pytest.mark.asyncio
async def test_backend_error_is_embedding_unavailable(helper_config):
    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="overloaded")))
    try:
        with pytest.raises(EmbeddingUnavailable):
            await client.do_embed(["text"])
        with pytest.raises(EmbeddingUnavailable):
            await client.do_fetch_embedding_vector_size()
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_wrong_vector_count_is_rejected(helper_config):
    client = EmbedClientOllama(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"embeddings": [[1.0]]})))
    try:
        with pytest.raises(EmbeddingUnavailable):
            await client.do_embed(["one", "two"])
    finally:
        await client.close()


@pytest.mark.asyncio
async def test_wrong_dimension_is_rejected(ollama, monkeypatch):
    await ollama.do_fetch_embedding_vector_size()
    monkeypatch.setattr(ollama, "extract_embeddings_from_response", lambda data: [[1.0, 2.0]])
    with pytest.raises(EmbeddingUnavailable):
        await ollama.do_embed(["text"])


@pytest.mark.asyncio
async def test_not_booted_is_embedding_unavailable(helper_config):
    client = EmbedClientOllama(helper_config=helper_config)
    with pytest.raises(EmbeddingUnavailable):
        await client.do_embed(["text"])


@pytest.mark.asyncio
async def test_openai_sorts_by_index_and_resolves_size(helper_config, env):
    env.setenv("EMBED_ENGINE", "openai")
    env.setenv("EMBED_OPENAI_API_KEY", "sk-test")
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        texts = json.loads(request.content)["input"]
        data = [{"index": i, "embedding": [float(i), 1.0]} for i in range(len(texts))]
        return httpx.Response(200, json={"data": list(reversed(data))})

    client = EmbedClientOpenai(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(handler))
    try:
        size, distance = await client.do_fetch_embedding_vector_size()
        vectors = await client.do_embed(["x", "y", "z"])
    finally:
        await client.close()

    assert (size, distance) == (2, "Cosine")
    assert vectors == [[0.0, 1.0], [1.0, 1.0], [2.0, 1.0]]
    assert requests[0].url.path == "/v1/embeddings"
    assert requests[0].headers["Authorization"] == "Bearer sk-test"


@pytest.mark.asyncio
async def test_openai_configured_vector_size_skips_request(helper_config, env):
    env.setenv("EMBED_OPENAI_VECTOR_SIZE", "1536")
    client = EmbedClientOpenai(helper_config=helper_config)
    assert await client.do_fetch_embedding_vector_size() == (1536, "Cosine")
