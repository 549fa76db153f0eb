"""Reciprocal Rank Fusion of a vector-ranked and a keyword-ranked chunk list.

Each chunk scores vector_weight / (k + vector_rank) + bm25_weight / (k + bm25_rank)
with 1-based ranks; a chunk missing from one list contributes nothing for that
list. Only rank positions enter the score, so cosine similarities and BM25
scores never have to be put on a common scale.
"""

import math

from shared.models.document import IndexHit
from shared.models.search import SearchResult

DEFAULT_RRF_K = 60


def _rank_map(hits: list[IndexHit]) -> dict[tuple[str, int], int]:
    ranks: dict[tuple[str, int], int] = {}
    for position, hit in enumerate(hits, start=1):
        # a chunk listed twice keeps its best rank
        ranks.setdefault((hit.doc_id, hit.chunk_index), position)
    return ranks


def sort_key(result: SearchResult) -> tuple:
    """Fused score descending, then vector rank, keyword rank, doc id and chunk index."""
    return (
        -result.score,
        result.vector_rank if result.vector_rank is not None else math.inf,
        result.bm25_rank if result.bm25_rank is not None else math.inf,
        result.id,
        result.chunk_index,
    )


def reciprocal_rank_fusion(
    vector_hits: list[IndexHit],
    keyword_hits: list[IndexHit],
    vector_weight: float = 0.7,
    bm25_weight: float = 0.3,
    k: int = DEFAULT_RRF_K,
) -> list[SearchResult]:
    """Fuse two ranked chunk lists into one ranking.

    Args:
        vector_hits (list[IndexHit]): Vector index hits, best first.
        keyword_hits (list[IndexHit]): Keyword index hits, best first.
        vector_weight (float): Weight of the vector list.
        bm25_weight (float): Weight of the keyword list.
        k (int): RRF smoothing constant.

    Returns:
        list[SearchResult]: One result per distinct (doc_id, chunk_index), sorted by sort_key().
    """
    vector_ranks = _rank_map(vector_hits)
    keyword_ranks = _rank_map(keyword_hits)

    hits_by_key: dict[tuple[str, int], IndexHit] = {}
    for hit in [*vector_hits, *keyword_hits]:
        hits_by_key.setdefault((hit.doc_id, hit.chunk_index), hit)

    results: list[SearchResult] = []
    for key, hit in hits_by_key.items():
        vector_rank = vector_ranks.get(key)
        bm25_rank = keyword_ranks.get(key)
        score = 0.0
        if vector_rank is not None:
            score += vector_weight / (k + vector_rank)
        if bm25_rank is not None:
            score += bm25_weight / (k + bm25_rank)
        results.append(SearchResult(
            id=hit.doc_id,
            chunk_index=hit.chunk_index,
            text=hit.text,
            score=score,
            vector_rank=vector_rank,
            bm25_rank=bm25_rank,
            metadata=hit.metadata,
        ))

    results.sort(key=sort_key)
    return results


def hits_to_results(hits: list[IndexHit], source: str) -> list[SearchResult]:
    """Convert a single index's hits into results carrying that index's raw scores and ranks.

    Args:
        hits (list[IndexHit]): Hits, best first.
        source (str): "vector" or "bm25"; selects which rank field is set.
    """
    results: list[SearchResult] = []
    for position, hit in enumerate(hits, start=1):
        results.append(SearchResult(
            id=hit.doc_id,
            chunk_index=hit.chunk_index,
            text=hit.text,
            score=hit.score,
            vector_rank=position if source == "vector" else None,
            bm25_rank=position if source == "bm25" else None,
            metadata=hit.metadata,
        ))
    return results


def group_by_document(results: list[SearchResult]) -> list[SearchResult]:
    """Keep only the first, i.e. best ranked, result of every document. Order is preserved."""
    seen: set[str] = set()
    grouped: list[SearchResult] = []
    for result in results:
        if result.id in seen:
            continue
        seen.add(result.id)
        grouped.append(result)
    return grouped
