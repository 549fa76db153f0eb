"""Pydantic models for indexed chunk data.

Hierarchy:
  ChunkMetadata: document-level metadata repeated on every chunk record.
  ChunkRecord:   one chunk of one document, as written into both indexes.
  IndexHit:      one chunk returned by a single index's search.
"""

from pydantic import BaseModel, Field


class ChunkMetadata(BaseModel):
    """Document metadata stored alongside every chunk in both indexes."""

    title: str = ""
    type: str = "document"
    tags: list[str] = []
    created_at: str | None = None


class ChunkRecord(BaseModel):
    """A single chunk keyed by (doc_id, chunk_index).

    The vector is only set for records headed for the vector index; the keyword
    index ignores it.
    """

    doc_id: str
    chunk_index: int
    text: str
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    vector: list[float] | None = None


class IndexHit(BaseModel):
    """A ranked chunk returned by one index.

    score is the cosine similarity for the vector index and the BM25 score for
    the keyword index; the two are not comparable.
    """

    doc_id: str
    chunk_index: int
    text: str
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)
    score: float
