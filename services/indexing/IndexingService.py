"""Chunking and indexing pipeline.

Fetches a document from the store, extracts its text, splits it into chunks,
embeds every chunk and writes the full chunk set into the vector index and the
keyword index. All index mutations in the system go through this service, one
document at a time per document id.
"""

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from services.indexing.DocumentLocks import DocumentLocks
from services.indexing.TextChunker import TextChunker
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.extract.ExtractorRegistry import ExtractorRegistry
from shared.clients.keyword.KeywordClientInterface import KeywordClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.StoreDocument import StoreDocument
from shared.exceptions import (
    DocumentNotFound,
    EmbeddingUnavailable,
    ExtractionFailed,
    IndexUnavailable,
    IndexWriteFailed,
    NoContent,
    RetrievalError,
    StoreUnavailable,
)
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import ChunkMetadata, ChunkRecord
from shared.models.indexing import BatchIndexResult, DeleteResult, IndexResult, IndexStatus

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RetrievalError) and exc.retryable


def _status_for_error(exc: RetrievalError) -> IndexStatus:
    if isinstance(exc, (ExtractionFailed, StoreUnavailable)):
        return IndexStatus.EXTRACTION_FAILED
    if isinstance(exc, EmbeddingUnavailable):
        return IndexStatus.EMBEDDING_FAILED
    return IndexStatus.INDEX_WRITE_FAILED


class IndexingService:
    """Drives both indexes to reflect exactly the current text of each document."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        extractor_registry: ExtractorRegistry,
        embed_client: EmbedClientInterface,
        vector_client: RAGClientInterface,
        keyword_client: KeywordClientInterface,
        chunker: TextChunker | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._extractors = extractor_registry
        self._embed = embed_client
        self._vector = vector_client
        self._keyword = keyword_client
        self._chunker = chunker or TextChunker.from_config(helper_config)

        self._min_text_chars = int(helper_config.get_number_val("INDEX_MIN_TEXT_CHARS", default=10))
        self._max_text_chars = int(helper_config.get_number_val("INDEX_MAX_TEXT_CHARS", default=50000))
        self._max_retries = int(helper_config.get_number_val("INDEX_MAX_RETRIES", default=3))
        self._backoff_base = float(helper_config.get_number_val("INDEX_BACKOFF_BASE", default=1.0))
        self._backoff_max = float(helper_config.get_number_val("INDEX_BACKOFF_MAX", default=30.0))
        self._extract_timeout = float(helper_config.get_number_val("INDEX_EXTRACT_TIMEOUT", default=60))
        self._embed_timeout = float(helper_config.get_number_val("INDEX_EMBED_TIMEOUT", default=60))
        self._write_timeout = float(helper_config.get_number_val("INDEX_WRITE_TIMEOUT", default=30))
        self._doc_concurrency = int(helper_config.get_number_val("INDEX_DOC_CONCURRENCY", default=5))

        self._locks = DocumentLocks()
        self._collection_lock = asyncio.Lock()
        self._collection_ready = False
        self._failed: dict[str, str] = {}
        self._last_updated: datetime | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    def get_failed_doc_ids(self) -> list[str]:
        """Returns the ids of documents whose last indexing run exhausted its retries."""
        return list(self._failed.keys())

    def get_last_updated(self) -> str | None:
        return self._last_updated.isoformat() if self._last_updated else None

    ##########################################
    ############## INDEXING ##################
    ##########################################

    async def index_document(self, doc_id: str) -> IndexResult:
        """Fetch a document from the store and (re)index it in both indexes.

        A document the store no longer knows is purged from both indexes.

        Args:
            doc_id (str): The document id.

        Returns:
            IndexResult: The outcome. Failures are reported, never raised.
        """
        async with self._locks.hold(doc_id):
            return await self._run(doc_id, lambda: self._index_from_store(doc_id))

    async def index_text(self, doc_id: str, text: str, metadata: ChunkMetadata | None = None) -> IndexResult:
        """(Re)index a document from already extracted text.

        Args:
            doc_id (str): The document id.
            text (str): The document's full text.
            metadata (ChunkMetadata | None): Metadata stored on every chunk.

        Returns:
            IndexResult: The outcome. Failures are reported, never raised.
        """
        async with self._locks.hold(doc_id):
            return await self._run(doc_id, lambda: self._write_text(doc_id, text, metadata or ChunkMetadata()))

    async def index_batch(self, doc_ids: list[str]) -> BatchIndexResult:
        """Index several documents with bounded parallelism.

        Args:
            doc_ids (list[str]): Document ids; duplicates are indexed once.

        Returns:
            BatchIndexResult: Per-document results and counters.
        """
        unique_ids = list(dict.fromkeys(doc_ids))
        sem = asyncio.Semaphore(self._doc_concurrency)

        async def _bounded(doc_id: str) -> IndexResult:
            async with sem:
                return await self.index_document(doc_id)

        outcomes = await asyncio.gather(*[_bounded(doc_id) for doc_id in unique_ids], return_exceptions=True)

        batch = BatchIndexResult()
        for doc_id, outcome in zip(unique_ids, outcomes):
            if isinstance(outcome, BaseException):
                self.logging.error("Unexpected error while indexing document id=%s: %s", doc_id, outcome)
                outcome = IndexResult(doc_id=doc_id, status=IndexStatus.INDEX_WRITE_FAILED, error=str(outcome))
                self._failed[doc_id] = str(outcome.error)
            batch.results.append(outcome)
            if outcome.status == IndexStatus.INDEXED:
                batch.indexed += 1
            elif outcome.status in (IndexStatus.NO_CONTENT, IndexStatus.NOT_FOUND):
                batch.skipped += 1
            else:
                batch.failed += 1

        self.logging.info(
            "Batch indexing complete: %d indexed, %d skipped, %d failed.",
            batch.indexed, batch.skipped, batch.failed,
        )
        return batch

    async def delete_document(self, doc_id: str) -> DeleteResult:
        """Remove a document from both indexes. Deleting an unknown document succeeds.

        Args:
            doc_id (str): The document id.

        Returns:
            DeleteResult: success is True only if both indexes confirmed the delete.
        """
        async with self._locks.hold(doc_id):
            errors = await self._delete_from_indexes(doc_id)

        if errors:
            self.logging.error("Deleting document id=%s failed: %s", doc_id, "; ".join(errors))
            return DeleteResult(doc_id=doc_id, success=False, errors=errors)

        self._failed.pop(doc_id, None)
        self._touch()
        self.logging.info("Deleted document id=%s from both indexes.", doc_id)
        return DeleteResult(doc_id=doc_id, success=True)

    async def ensure_vector_collection(self) -> None:
        """Make sure the vector collection exists, sized for the embedding model.

        Runs once per process. Until it succeeds every write retries it, so an
        embedding backend or vector index that was down at startup is picked up
        as soon as it answers.

        Raises:
            EmbeddingUnavailable: If the vector size cannot be resolved.
            IndexWriteFailed: If the collection cannot be created.
        """
        if self._collection_ready:
            return
        async with self._collection_lock:
            if self._collection_ready:
                return
            vector_size, distance = await self._with_timeout(
                self._embed.do_fetch_embedding_vector_size(),
                self._embed_timeout, EmbeddingUnavailable, "vector size lookup",
            )
            created = await self._with_timeout(
                self._vector.ensure_collection(vector_size=vector_size, distance=distance),
                self._write_timeout, IndexWriteFailed, "collection setup",
            )
            self._collection_ready = True
            if created:
                self.logging.info("Created vector collection (size=%d, distance=%s).", vector_size, distance)

    ##########################################
    ############### PIPELINE #################
    ##########################################

    async def _run(self, doc_id: str, operation: Callable[[], Awaitable[int]]) -> IndexResult:
        """Run one indexing operation with retries and convert its outcome into an IndexResult."""
        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    try:
                        chunks_indexed = await operation()
                    except NoContent as e:
                        await self._clear(doc_id)
                        self._failed.pop(doc_id, None)
                        self._touch()
                        self.logging.info("Document id=%s has no indexable content: %s", doc_id, e.message)
                        return IndexResult(doc_id=doc_id, status=IndexStatus.NO_CONTENT, attempts=attempts)
                    except DocumentNotFound as e:
                        await self._clear(doc_id)
                        self._failed.pop(doc_id, None)
                        self._touch()
                        self.logging.info("Document id=%s not found in store, purged from indexes.", doc_id)
                        return IndexResult(doc_id=doc_id, status=IndexStatus.NOT_FOUND, attempts=attempts, error=e.message)
        except RetrievalError as e:
            self._failed[doc_id] = e.message
            self.logging.error("Indexing document id=%s failed after %d attempt(s): %s", doc_id, attempts, e.message)
            return IndexResult(doc_id=doc_id, status=_status_for_error(e), attempts=attempts, error=e.message)

        self._failed.pop(doc_id, None)
        self._touch()
        self.logging.info("Indexed document id=%s: %d chunk(s) written.", doc_id, chunks_indexed)
        return IndexResult(doc_id=doc_id, status=IndexStatus.INDEXED, chunks_indexed=chunks_indexed, attempts=attempts)

    async def _index_from_store(self, doc_id: str) -> int:
        doc = await self._with_timeout(self._store.get_document(doc_id), self._extract_timeout, StoreUnavailable, "document lookup")
        if doc is None:
            raise DocumentNotFound(f"Document '{doc_id}' does not exist in the store.")
        text = await self._resolve_text(doc)
        metadata = ChunkMetadata(title=doc.title, type=doc.content_type, tags=doc.tags, created_at=doc.created_at)
        return await self._write_text(doc_id, text, metadata)

    async def _resolve_text(self, doc: StoreDocument) -> str:
        """Inline text wins; otherwise the source reference is extracted by content type."""
        if doc.text and len(doc.text.strip()) >= self._min_text_chars:
            return doc.text
        if not doc.source_ref:
            raise NoContent(f"Document '{doc.id}' has neither text nor a source reference.")
        return await self._with_timeout(
            self._extractors.extract(doc.content_type, doc.source_ref),
            self._extract_timeout, ExtractionFailed, "extraction",
        )

    async def _write_text(self, doc_id: str, text: str, metadata: ChunkMetadata) -> int:
        text = (text or "")[:self._max_text_chars]
        if len(text.strip()) < self._min_text_chars:
            raise NoContent(f"Text of document '{doc_id}' is shorter than {self._min_text_chars} characters.")

        chunks = self._chunker.split(text)
        if not chunks:
            raise NoContent(f"Text of document '{doc_id}' produced no chunks.")

        # all chunks are embedded before anything is written
        vectors = await self._with_timeout(
            self._embed.do_embed([chunk.text for chunk in chunks]),
            self._embed_timeout, EmbeddingUnavailable, "embedding",
        )
        if len(vectors) != len(chunks):
            raise EmbeddingUnavailable(f"Got {len(vectors)} vectors for {len(chunks)} chunks of document '{doc_id}'.")

        records = [
            ChunkRecord(doc_id=doc_id, chunk_index=chunk.index, text=chunk.text, metadata=metadata, vector=vector)
            for chunk, vector in zip(chunks, vectors)
        ]
        await self.ensure_vector_collection()
        await self._with_timeout(self._vector.upsert_chunks(doc_id, records), self._write_timeout, IndexWriteFailed, "vector upsert")
        await self._with_timeout(self._keyword.upsert_chunks(doc_id, records), self._write_timeout, IndexWriteFailed, "keyword upsert")
        return len(records)

    async def _clear(self, doc_id: str) -> None:
        # runs inside an attempt of _run, which owns the retries
        await self._with_timeout(self._vector.delete(doc_id), self._write_timeout, IndexWriteFailed, "vector delete")
        await self._with_timeout(self._keyword.delete(doc_id), self._write_timeout, IndexWriteFailed, "keyword delete")

    async def _delete_from_indexes(self, doc_id: str) -> list[str]:
        errors: list[str] = []
        for name, index in (("vector", self._vector), ("keyword", self._keyword)):
            try:
                async for attempt in self._retrying():
                    with attempt:
                        await self._with_timeout(index.delete(doc_id), self._write_timeout, IndexWriteFailed, f"{name} delete")
            except RetrievalError as e:
                errors.append(f"{name}: {e.message}")
        return errors

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._max_retries + 1),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            before_sleep=self._log_retry,
            reraise=True,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        self.logging.warning(
            "Attempt %d failed (%s), retrying in %.1fs.",
            retry_state.attempt_number,
            exc,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )

    async def _with_timeout(self, awaitable: Awaitable[T], timeout: float, error_cls: type[RetrievalError], what: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise error_cls(f"{what} timed out after {timeout}s") from e
        except IndexUnavailable as e:
            # an unreachable index during a write counts as a failed write
            raise IndexWriteFailed(e.message) from e

    def _touch(self) -> None:
        self._last_updated = datetime.now(timezone.utc)
