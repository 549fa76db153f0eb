"""Pydantic models for search results and responses."""

from enum import Enum

from pydantic import BaseModel, Field

from shared.models.document import ChunkMetadata


class SearchMode(str, Enum):
    """Which indexes contributed to a response."""

    HYBRID = "hybrid"
    VECTOR_ONLY = "vector_only"
    KEYWORD_ONLY = "keyword_only"
    UNAVAILABLE = "unavailable"


class SearchResult(BaseModel):
    """A single ranked result.

    id is the document id; chunk_index identifies the chunk that produced the hit.
    score is the fused RRF score in hybrid mode, otherwise the raw score of the
    single index that answered.
    """

    id: str
    chunk_index: int
    text: str
    score: float
    vector_rank: int | None = None
    bm25_rank: int | None = None
    metadata: ChunkMetadata = Field(default_factory=ChunkMetadata)


class SearchResponse(BaseModel):
    """Response of a search call.

    unavailable is only True when no index could answer; the results are then empty.
    """

    query: str
    results: list[SearchResult] = []
    total: int = 0
    mode: SearchMode = SearchMode.HYBRID
    unavailable: bool = False
