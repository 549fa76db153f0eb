"""FastAPI application entry point for the hybrid retrieval engine."""

import asyncio
import contextlib
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.exceptions import RetrievalError
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.keyword.KeywordClientInterface import KeywordClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.keyword.KeywordClientManager import KeywordClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.clients.extract.ExtractorRegistry import ExtractorRegistry
from services.indexing.IndexingService import IndexingService
from services.query.QueryService import QueryService
from services.query.SearchCoalescer import SearchCoalescer
from services.integrity.IntegrityScanner import IntegrityScanner
from server.routers.SearchRouter import router as search_router
from server.routers.IndexRouter import router as index_router
from server.routers.WebhookRouter import router as webhook_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)

    embed_client = EmbedClientManager(helper_config=app.state.helper_config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.helper_config).get_client()
    keyword_client = KeywordClientManager(helper_config=app.state.helper_config).get_client()
    store_client = StoreClientManager(helper_config=app.state.helper_config).get_client()
    extractor_registry = ExtractorRegistry(helper_config=app.state.helper_config)

    clients = [embed_client, rag_client, keyword_client, store_client]
    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    app.state.indexing_service = IndexingService(
        helper_config=app.state.helper_config,
        store_client=store_client,
        extractor_registry=extractor_registry,
        embed_client=embed_client,
        vector_client=rag_client,
        keyword_client=keyword_client,
    )
    await prepare_indexes(app.state.indexing_service, rag_client, keyword_client, store_client)

    app.state.query_service = QueryService(
        helper_config=app.state.helper_config,
        embed_client=embed_client,
        vector_client=rag_client,
        keyword_client=keyword_client,
        indexing_service=app.state.indexing_service,
    )
    app.state.search_coalescer = SearchCoalescer(helper_config=app.state.helper_config)
    app.state.integrity_scanner = IntegrityScanner(
        helper_config=app.state.helper_config,
        store_client=store_client,
        indexing_service=app.state.indexing_service,
        query_service=app.state.query_service,
    )

    ready = asyncio.Event()
    scan_task = asyncio.create_task(app.state.integrity_scanner.run_after_settle(ready))
    ready.set()
    logging.info("Retrieval API ready.", color="green")

    # while the app is running...
    yield

    # when the app shuts down, stop the scanner and close all client connections
    logging.info("Shutting down, stopping integrity scanner and closing all clients...")
    app.state.integrity_scanner.stop()
    scan_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await scan_task
    for client in clients:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="hybrid_retrieval",
    description=(
        "Hybrid semantic + keyword retrieval over a document store. "
        "Documents are chunked, embedded and written into a vector index and a BM25 keyword index; "
        "queries are fused with Reciprocal Rank Fusion. "
        "Change notifications are accepted via POST /webhook/item."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(search_router)
app.include_router(index_router)
app.include_router(webhook_router)


async def prepare_indexes(
    indexing_service: IndexingService,
    rag_client: RAGClientInterface,
    keyword_client: KeywordClientInterface,
    store_client: StoreClientInterface,
) -> None:
    """Check connectivity, make sure the vector collection exists and hydrate the keyword index.

    Failures are non-fatal: the server starts in a degraded mode and search
    falls back to whichever index is available.
    """
    try:
        await indexing_service.ensure_vector_collection()
        logging.info("Embedding model and vector collection ready.")
    except RetrievalError as e:
        logging.warning("Vector collection not ready: %s. It will be set up on the first successful write.", e.message)

    try:
        await rag_client.do_healthcheck()
        records = await rag_client.scroll_records()
        await keyword_client.hydrate(records)
    except RetrievalError as e:
        logging.warning("Vector index not ready: %s. Starting with an empty keyword index.", e.message)

    try:
        await store_client.do_healthcheck()
    except RetrievalError as e:
        logging.warning("Document store not reachable: %s. Indexing and integrity scans may fail.", e.message)


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting retrieval API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
