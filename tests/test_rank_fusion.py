"""Tests for Reciprocal Rank Fusion and per-document grouping."""

import pytest

from services.query.RankFusion import group_by_document, hits_to_results, reciprocal_rank_fusion
from shared.models.document import IndexHit


def _hits(*keys, score: float = 1.0) -> list[IndexHit]:
    hits = []
    for key in keys:
        doc_id, _, chunk = key.partition("#")
        hits.append(IndexHit(doc_id=doc_id, chunk_index=int(chunk or 0), text=f"text of {key}", score=score))
    return hits


def test_chunk_in_both_lists_ranks_first():
    fused = reciprocal_rank_fusion(_hits("A", "B", "C"), _hits("B", "C", "D"), vector_weight=0.5, bm25_weight=0.5, k=60)

    assert [result.id for result in fused] == ["B", "C", "A", "D"]
    by_id = {result.id: result for result in fused}
    assert by_id["B"].score == pytest.approx(0.5 / 62 + 0.5 / 61)
    assert by_id["A"].score == pytest.approx(0.5 / 61)
    assert by_id["D"].score == pytest.approx(0.5 / 63)
    assert (by_id["B"].vector_rank, by_id["B"].bm25_rank) == (2, 1)
    assert (by_id["A"].vector_rank, by_id["A"].bm25_rank) == (1, None)
    assert (by_id["D"].vector_rank, by_id["D"].bm25_rank) == (None, 3)


def test_weights_shift_the_ranking():
    vector_first = reciprocal_rank_fusion(_hits("A"), _hits("B"), vector_weight=0.7, bm25_weight=0.3)
    keyword_first = reciprocal_rank_fusion(_hits("A"), _hits("B"), vector_weight=0.3, bm25_weight=0.7)

    assert [result.id for result in vector_first] == ["A", "B"]
    assert [result.id for result in keyword_first] == ["B", "A"]


def test_ties_break_by_vector_rank_then_keyword_rank_then_id():
    # same rank in opposite lists with equal weights gives equal scores
    fused = reciprocal_rank_fusion(_hits("Y"), _hits("X"), vector_weight=0.5, bm25_weight=0.5)
    assert [result.id for result in fused] == ["Y", "X"]

    fused = reciprocal_rank_fusion([], _hits("Z", "X"), vector_weight=0.5, bm25_weight=0.5)
    assert [result.id for result in fused] == ["Z", "X"]


def test_chunk_in_both_lists_appears_once():
    fused = reciprocal_rank_fusion(_hits("B"), _hits("B"), vector_weight=0.5, bm25_weight=0.5)
    assert len(fused) == 1


def test_zero_weights_fall_back_to_rank_order():
    fused = reciprocal_rank_fusion(_hits("b#0"), _hits("a#0"), vector_weight=0.0, bm25_weight=0.0)
    # zero weights: equal scores, b has a vector rank and wins
    assert [result.id for result in fused] == ["b", "a"]


def test_chunks_are_fused_individually():
    fused = reciprocal_rank_fusion(_hits("A#0", "A#1"), _hits("A#1"), vector_weight=0.5, bm25_weight=0.5)
    assert [(result.id, result.chunk_index) for result in fused] == [("A", 1), ("A", 0)]


def test_empty_lists_fuse_to_nothing():
    assert reciprocal_rank_fusion([], []) == []


def test_hits_to_results_keep_raw_scores():
    results = hits_to_results(_hits("A", "B", score=7.5), "bm25")
    assert [result.bm25_rank for result in results] == [1, 2]
    assert all(result.vector_rank is None for result in results)
    assert all(result.score == 7.5 for result in results)


def test_grouping_keeps_the_best_chunk_per_document():
    fused = reciprocal_rank_fusion(
        _hits("A#2", "B#0", "A#0", "A#1"),
        _hits("A#2", "A#1"),
        vector_weight=0.5,
        bm25_weight=0.5,
    )
    grouped = group_by_document(fused)

    assert [result.id for result in grouped] == ["A", "B"]
    assert grouped[0].chunk_index == 2
    assert grouped[0].text == "text of A#2"
