"""Query service: vector, keyword and hybrid search over the two indexes.

Hybrid search runs both sub-searches concurrently, each under its own time
budget, and fuses the two ranked lists with Reciprocal Rank Fusion. A failing
or slow index degrades the response to the other index instead of failing it.
"""

import asyncio
from typing import Awaitable

from services.indexing.IndexingService import IndexingService
from services.query.RankFusion import group_by_document, hits_to_results, reciprocal_rank_fusion
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.keyword.KeywordClientInterface import KeywordClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.exceptions import EmbeddingUnavailable, IndexUnavailable, RetrievalError, SearchTimeout
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import IndexHit
from shared.models.indexing import IndexStats
from shared.models.search import SearchMode, SearchResponse, SearchResult


class QueryService:
    """Orchestrates embedding, retrieval from both indexes, fusion and grouping."""

    def __init__(
        self,
        helper_config: HelperConfig,
        embed_client: EmbedClientInterface,
        vector_client: RAGClientInterface,
        keyword_client: KeywordClientInterface,
        indexing_service: IndexingService | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._embed = embed_client
        self._vector = vector_client
        self._keyword = keyword_client
        self._indexing = indexing_service

        self.vector_weight = float(helper_config.get_number_val("SEARCH_VECTOR_WEIGHT", default=0.7))
        self.bm25_weight = float(helper_config.get_number_val("SEARCH_BM25_WEIGHT", default=0.3))
        self.rrf_k = int(helper_config.get_number_val("SEARCH_RRF_K", default=60))
        self.overfetch_factor = int(helper_config.get_number_val("SEARCH_OVERFETCH_FACTOR", default=3))
        self.score_threshold = helper_config.get_optional_number_val("SEARCH_THRESHOLD")
        self.subsearch_timeout = float(helper_config.get_number_val("SEARCH_SUBSEARCH_TIMEOUT", default=5.0))
        self.diagnostics_timeout = float(helper_config.get_number_val("SEARCH_DIAGNOSTICS_TIMEOUT", default=60.0))

    ##########################################
    ################ SEARCH ##################
    ##########################################

    async def search(self, query: str, limit: int = 10, group_by_doc: bool = True) -> SearchResponse:
        """Vector-only semantic search.

        Args:
            query (str): The query text.
            limit (int): Maximum number of results.
            group_by_doc (bool): Return at most one result per document.

        Returns:
            SearchResponse: Results ranked by cosine similarity; unavailable=True if
                the vector index or the embedding backend could not answer.
        """
        if not query.strip() or limit <= 0:
            return SearchResponse(query=query, mode=SearchMode.VECTOR_ONLY)

        hits = await self._guarded(self._vector_hits(query, limit * self.overfetch_factor), "vector")
        if hits is None:
            return self._unavailable(query)

        results = self._finalize(hits_to_results(hits, "vector"), limit, group_by_doc)
        self.logging.info("Vector search %r returned %d result(s).", query[:80], len(results))
        return SearchResponse(query=query, results=results, total=len(results), mode=SearchMode.VECTOR_ONLY)

    async def keyword_search(self, query: str, limit: int = 10, group_by_doc: bool = True) -> SearchResponse:
        """Keyword-only BM25 search.

        Returns:
            SearchResponse: Results ranked by BM25 score; unavailable=True if the
                keyword index could not answer.
        """
        if not query.strip() or limit <= 0:
            return SearchResponse(query=query, mode=SearchMode.KEYWORD_ONLY)

        hits = await self._guarded(self._keyword_hits(query, limit * self.overfetch_factor), "keyword")
        if hits is None:
            return self._unavailable(query)

        results = self._finalize(hits_to_results(hits, "bm25"), limit, group_by_doc)
        self.logging.info("Keyword search %r returned %d result(s).", query[:80], len(results))
        return SearchResponse(query=query, results=results, total=len(results), mode=SearchMode.KEYWORD_ONLY)

    async def hybrid_search(
        self,
        query: str,
        limit: int = 10,
        vector_weight: float | None = None,
        bm25_weight: float | None = None,
        group_by_doc: bool = True,
    ) -> SearchResponse:
        """Fused vector + keyword search.

        Args:
            query (str): The query text.
            limit (int): Maximum number of results.
            vector_weight (float | None): RRF weight of the vector list; None uses the configured default.
            bm25_weight (float | None): RRF weight of the keyword list; None uses the configured default.
            group_by_doc (bool): Collapse chunk hits into one result per document,
                keeping the best ranked chunk.

        Returns:
            SearchResponse: mode tells which indexes contributed. If only one index
                answered, its results are returned with their raw scores. If none
                answered, results are empty and unavailable is True.
        """
        if not query.strip() or limit <= 0:
            return SearchResponse(query=query)

        vector_weight = self.vector_weight if vector_weight is None else vector_weight
        bm25_weight = self.bm25_weight if bm25_weight is None else bm25_weight
        fetch_k = limit * self.overfetch_factor

        vector_hits, keyword_hits = await asyncio.gather(
            self._guarded(self._vector_hits(query, fetch_k), "vector"),
            self._guarded(self._keyword_hits(query, fetch_k), "keyword"),
        )

        if vector_hits is None and keyword_hits is None:
            self.logging.error("Hybrid search %r: both indexes unavailable.", query[:80])
            return self._unavailable(query)

        if vector_hits is None:
            self.logging.warning("Hybrid search %r degraded to keyword-only results.", query[:80])
            mode = SearchMode.KEYWORD_ONLY
            fused = hits_to_results(keyword_hits, "bm25")
        elif keyword_hits is None:
            self.logging.warning("Hybrid search %r degraded to vector-only results.", query[:80])
            mode = SearchMode.VECTOR_ONLY
            fused = hits_to_results(vector_hits, "vector")
        else:
            mode = SearchMode.HYBRID
            fused = reciprocal_rank_fusion(vector_hits, keyword_hits, vector_weight, bm25_weight, self.rrf_k)

        results = self._finalize(fused, limit, group_by_doc)
        self.logging.info(
            "Hybrid search %r (%s) returned %d result(s) from %d vector / %d keyword hit(s).",
            query[:80], mode.value, len(results),
            len(vector_hits or []), len(keyword_hits or []),
        )
        return SearchResponse(query=query, results=results, total=len(results), mode=mode)

    ##########################################
    ############# DIAGNOSTICS ################
    ##########################################

    async def check_missing(self, doc_ids: list[str], require_all: bool = False) -> list[str]:
        """Return the ids that lack chunks in the vector index or in the keyword index.

        Args:
            doc_ids (list[str]): Candidate document ids.
            require_all (bool): Fail unless both indexes answer. When False, an
                index that cannot answer is left out and the other one decides alone.

        Returns:
            list[str]: Missing ids in input order, without duplicates.

        Raises:
            IndexUnavailable: If neither index can answer.
            RetrievalError: If require_all is set and one index cannot answer.
        """
        answers = await self._ask_both(
            self._vector.check_missing(doc_ids),
            self._keyword.check_missing(doc_ids),
            require_all,
        )
        available = [set(missing) for missing in answers if missing is not None]
        if not available:
            raise IndexUnavailable("No index is available to check for missing documents.")
        missing = set().union(*available)
        return [doc_id for doc_id in dict.fromkeys(doc_ids) if doc_id in missing]

    async def list_indexed_doc_ids(self, require_all: bool = False) -> set[str]:
        """Return the ids of all documents present in at least one index.

        Args:
            require_all (bool): Fail unless both indexes answer.

        Raises:
            IndexUnavailable: If neither index can answer.
            RetrievalError: If require_all is set and one index cannot answer.
        """
        answers = await self._ask_both(self._vector.list_doc_ids(), self._keyword.list_doc_ids(), require_all)
        available = [ids for ids in answers if ids is not None]
        if not available:
            raise IndexUnavailable("No index is available to list indexed documents.")
        return set().union(*available)

    async def get_stats(self) -> IndexStats:
        """Collect index statistics. Unavailable indexes are reported, not raised."""
        stats = IndexStats(
            model_loaded=self._embed.is_booted() and self._embed.get_vector_size() is not None,
            keyword_available=self._keyword.is_booted(),
        )

        try:
            stats.vector_available = await self._vector.do_healthcheck()
        except RetrievalError:
            stats.vector_available = False

        # the in-process keyword index mirrors the vector index and answers without I/O
        source = self._keyword if stats.keyword_available else self._vector
        if source is self._vector and not stats.vector_available:
            source = None
        if source is not None:
            try:
                stats.total_docs = len(await source.list_doc_ids())
                stats.total_chunks = await source.count()
            except RetrievalError as e:
                self.logging.warning("Collecting index statistics failed: %s", e.message)

        if self._indexing is not None:
            stats.last_updated = self._indexing.get_last_updated()
            stats.failed_docs = len(self._indexing.get_failed_doc_ids())
        return stats

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _vector_hits(self, query: str, k: int) -> list[IndexHit]:
        vectors = await self._embed.do_embed([query])
        if not vectors:
            raise EmbeddingUnavailable("Embedding backend returned no vector for the query.")
        return await self._vector.search(vectors[0], k, score_threshold=self.score_threshold)

    async def _keyword_hits(self, query: str, k: int) -> list[IndexHit]:
        return await self._keyword.search(query, k)

    async def _with_timeout(self, awaitable: Awaitable, timeout: float, source: str):
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise SearchTimeout(f"{source.capitalize()} index did not answer within {timeout:.1f}s.") from e

    async def _guarded(self, awaitable: Awaitable, source: str, timeout: float | None = None):
        """Await a sub-search under its timeout; None means the source did not answer."""
        try:
            return await self._with_timeout(awaitable, timeout or self.subsearch_timeout, source)
        except RetrievalError as e:
            self.logging.warning("%s sub-search unavailable: %s", source.capitalize(), e.message)
            return None

    async def _ask_both(self, vector_call: Awaitable, keyword_call: Awaitable, require_all: bool) -> list:
        """Run a diagnostics call against both indexes under the diagnostics timeout."""
        if require_all:
            return list(await asyncio.gather(
                self._with_timeout(vector_call, self.diagnostics_timeout, "vector"),
                self._with_timeout(keyword_call, self.diagnostics_timeout, "keyword"),
            ))
        return list(await asyncio.gather(
            self._guarded(vector_call, "vector", self.diagnostics_timeout),
            self._guarded(keyword_call, "keyword", self.diagnostics_timeout),
        ))

    @staticmethod
    def _finalize(results: list[SearchResult], limit: int, group_by_doc: bool) -> list[SearchResult]:
        if group_by_doc:
            results = group_by_document(results)
        return results[:limit]

    @staticmethod
    def _unavailable(query: str) -> SearchResponse:
        return SearchResponse(query=query, results=[], total=0, mode=SearchMode.UNAVAILABLE, unavailable=True)
