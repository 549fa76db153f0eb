"""Integrity scan runner entry point.

Reconciles the vector and keyword indexes with the document store once:
documents listed by the store but missing from an index are re-indexed,
index entries of documents the store no longer lists are removed.
Run directly (e.g. from cron) when the API server is not running.

Usage:
    python -m scanner.scanner_runner
"""

import asyncio

from services.indexing.IndexingService import IndexingService
from services.integrity.IntegrityScanner import IntegrityScanner
from services.query.QueryService import QueryService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.extract.ExtractorRegistry import ExtractorRegistry
from shared.clients.keyword.KeywordClientManager import KeywordClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging


async def main() -> None:
    """Run a single integrity scan."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    embed_client = EmbedClientManager(helper_config=config).get_client()
    rag_client = RAGClientManager(helper_config=config).get_client()
    keyword_client = KeywordClientManager(helper_config=config).get_client()
    store_client = StoreClientManager(helper_config=config).get_client()

    indexing_service = IndexingService(
        helper_config=config,
        store_client=store_client,
        extractor_registry=ExtractorRegistry(helper_config=config),
        embed_client=embed_client,
        vector_client=rag_client,
        keyword_client=keyword_client,
    )
    query_service = QueryService(
        helper_config=config,
        embed_client=embed_client,
        vector_client=rag_client,
        keyword_client=keyword_client,
        indexing_service=indexing_service,
    )
    scanner = IntegrityScanner(
        helper_config=config,
        store_client=store_client,
        indexing_service=indexing_service,
        query_service=query_service,
    )

    clients = [embed_client, rag_client, keyword_client, store_client]
    try:
        for client in clients:
            await client.boot()
        await store_client.do_healthcheck()
        await rag_client.do_healthcheck()

        # Ensure collection exists and the keyword index mirrors it before scanning
        await indexing_service.ensure_vector_collection()
        await keyword_client.hydrate(await rag_client.scroll_records())

        report = await scanner.do_scan()
        if report.error:
            logger.error("Integrity scan finished with error: %s", report.error)
    finally:
        for client in clients:
            await client.close()


if __name__ == "__main__":
    asyncio.run(main())
