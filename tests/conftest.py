"""Pytest fixtures shared by the retrieval engine tests."""

import logging

import pytest

from fakes import FakeEmbedClient, FakeStoreClient, FakeVectorIndex
from services.indexing.IndexingService import IndexingService
from services.indexing.TextChunker import TextChunker
from services.query.QueryService import QueryService
from shared.clients.extract.ExtractorRegistry import ExtractorRegistry
from shared.clients.keyword.bm25.KeywordClientBm25 import KeywordClientBm25
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger

BASE_ENV = {
    "APP_API_KEY": "test-key",
    "EMBED_ENGINE": "ollama",
    "EMBED_MODEL": "test-embed",
    "EMBED_OLLAMA_BASE_URL": "http://ollama.test",
    "RAG_ENGINE": "qdrant",
    "RAG_QDRANT_BASE_URL": "http://qdrant.test",
    "RAG_QDRANT_COLLECTION": "test_chunks",
    "STORE_ENGINE": "supabase",
    "STORE_SUPABASE_BASE_URL": "http://supabase.test",
    "STORE_SUPABASE_API_KEY": "anon-key",
    "INDEX_MAX_RETRIES": "2",
    "INDEX_BACKOFF_BASE": "0",
    "INDEX_BACKOFF_MAX": "0",
    "SCAN_SETTLE_DELAY": "0",
    "SCAN_YIELD_SECONDS": "0",
    "SEARCH_DEBOUNCE_MS": "0",
}


@pytest.fixture
def env(monkeypatch):
    """Set a minimal, valid environment for every client and service."""
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    return monkeypatch


@pytest.fixture
def helper_config(env) -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("retrieval.tests")))


@pytest.fixture
def embed_client() -> FakeEmbedClient:
    return FakeEmbedClient()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def store_client() -> FakeStoreClient:
    return FakeStoreClient()


@pytest.fixture
async def keyword_index(helper_config) -> KeywordClientBm25:
    client = KeywordClientBm25(helper_config=helper_config)
    await client.boot()
    yield client
    await client.close()


@pytest.fixture
def indexing_service(helper_config, store_client, embed_client, vector_index, keyword_index) -> IndexingService:
    return IndexingService(
        helper_config=helper_config,
        store_client=store_client,
        extractor_registry=ExtractorRegistry(helper_config=helper_config),
        embed_client=embed_client,
        vector_client=vector_index,
        keyword_client=keyword_index,
        chunker=TextChunker(chunk_size=200, chunk_overlap=20, min_chunk_size=50),
    )


@pytest.fixture
def query_service(helper_config, embed_client, vector_index, keyword_index, indexing_service) -> QueryService:
    return QueryService(
        helper_config=helper_config,
        embed_client=embed_client,
        vector_client=vector_index,
        keyword_client=keyword_index,
        indexing_service=indexing_service,
    )
