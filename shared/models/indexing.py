"""Pydantic models describing indexing, deletion, statistics and scan outcomes."""

from enum import Enum

from pydantic import BaseModel


class IndexStatus(str, Enum):
    INDEXED = "indexed"
    NO_CONTENT = "no_content"
    NOT_FOUND = "not_found"
    EXTRACTION_FAILED = "extraction_failed"
    EMBEDDING_FAILED = "embedding_failed"
    INDEX_WRITE_FAILED = "index_write_failed"


class IndexResult(BaseModel):
    """Outcome of indexing a single document.

    A document without indexable text is a success with zero chunks.
    """

    doc_id: str
    status: IndexStatus
    chunks_indexed: int = 0
    attempts: int = 1
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (IndexStatus.INDEXED, IndexStatus.NO_CONTENT)


class BatchIndexResult(BaseModel):
    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    results: list[IndexResult] = []


class DeleteResult(BaseModel):
    doc_id: str
    success: bool
    errors: list[str] = []


class IndexStats(BaseModel):
    """Snapshot of index health for diagnostics views."""

    total_docs: int = 0
    total_chunks: int = 0
    last_updated: str | None = None
    model_loaded: bool = False
    vector_available: bool = False
    keyword_available: bool = False
    failed_docs: int = 0


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    REINDEXING_MISSING = "reindexing_missing"
    STOPPED = "stopped"


class ScanReport(BaseModel):
    """Counters of one integrity scan pass."""

    state: ScanState = ScanState.IDLE
    started_at: str | None = None
    finished_at: str | None = None
    total_ids: int = 0
    missing: int = 0
    attempted: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0
    orphans_removed: int = 0
    error: str | None = None
