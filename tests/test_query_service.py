"""Tests for vector, keyword and hybrid search."""

import asyncio

import pytest

from shared.exceptions import IndexUnavailable, SearchTimeout
from shared.models.search import SearchMode


@pytest.fixture
async def fruit_corpus(indexing_service):
    await indexing_service.index_text("docA", "Apple pie recipe")
    await indexing_service.index_text("docB", "Apple stock price")
    await indexing_service.index_text("docC", "Banana smoothie")


@pytest.mark.asyncio
async def test_hybrid_search_ranks_matching_documents_first(query_service, fruit_corpus):
    response = await query_service.hybrid_search("apple", limit=2)

    assert response.mode == SearchMode.HYBRID
    assert not response.unavailable
    assert {result.id for result in response.results} == {"docA", "docB"}
    assert response.total == 2


@pytest.mark.asyncio
async def test_hybrid_search_finds_keyword_overlap(query_service, fruit_corpus):
    response = await query_service.hybrid_search("fruit smoothie", limit=3)

    assert response.results[0].id == "docC"
    assert response.results[0].bm25_rank == 1


@pytest.mark.asyncio
async def test_hybrid_scores_are_rrf_scores(query_service, fruit_corpus):
    response = await query_service.hybrid_search("banana smoothie", limit=1, vector_weight=0.5, bm25_weight=0.5)

    top = response.results[0]
    assert top.id == "docC"
    assert (top.vector_rank, top.bm25_rank) == (1, 1)
    assert top.score == pytest.approx(0.5 / 61 + 0.5 / 61)


@pytest.mark.asyncio
async def test_vector_outage_degrades_to_keyword_results(query_service, vector_index, fruit_corpus):
    vector_index.available = False

    hybrid = await query_service.hybrid_search("apple", limit=5)
    keyword = await query_service.keyword_search("apple", limit=5)

    assert hybrid.mode == SearchMode.KEYWORD_ONLY
    assert not hybrid.unavailable
    assert [(r.id, r.chunk_index, r.score) for r in hybrid.results] == [(r.id, r.chunk_index, r.score) for r in keyword.results]
    assert hybrid.results


@pytest.mark.asyncio
async def test_embedding_outage_degrades_to_keyword_results(query_service, embed_client, fruit_corpus):
    embed_client.available = False
    response = await query_service.hybrid_search("smoothie", limit=5)
    assert response.mode == SearchMode.KEYWORD_ONLY
    assert [r.id for r in response.results] == ["docC"]


@pytest.mark.asyncio
async def test_keyword_outage_degrades_to_vector_results(query_service, keyword_index, fruit_corpus):
    await keyword_index.close()
    response = await query_service.hybrid_search("apple", limit=2)
    assert response.mode == SearchMode.VECTOR_ONLY
    assert {r.id for r in response.results} == {"docA", "docB"}


@pytest.mark.asyncio
async def test_total_outage_is_signalled_not_raised(query_service, vector_index, keyword_index, fruit_corpus):
    vector_index.available = False
    await keyword_index.close()

    response = await query_service.hybrid_search("apple", limit=5)

    assert response.unavailable
    assert response.mode == SearchMode.UNAVAILABLE
    assert response.results == []


@pytest.mark.asyncio
async def test_slow_index_times_out_into_degraded_mode(query_service, vector_index, fruit_corpus, monkeypatch):
    async def hanging_search(vector, k, score_threshold=None):
        await asyncio.sleep(10)

    monkeypatch.setattr(vector_index, "search", hanging_search)
    query_service.subsearch_timeout = 0.05

    response = await query_service.hybrid_search("smoothie", limit=5)
    assert response.mode == SearchMode.KEYWORD_ONLY
    assert [r.id for r in response.results] == ["docC"]


@pytest.mark.asyncio
async def test_grouping_collapses_chunks_of_one_document(query_service, indexing_service):
    text = " ".join(f"Paragraph {i} is about volcanoes and lava flows." for i in range(20))
    await indexing_service.index_text("geo", text)
    await indexing_service.index_text("other", "A note about volcanoes in Iceland.")

    grouped = await query_service.hybrid_search("volcanoes", limit=10, group_by_doc=True)
    per_chunk = await query_service.hybrid_search("volcanoes", limit=10, group_by_doc=False)

    assert sorted(r.id for r in grouped.results) == ["geo", "other"]
    assert len([r for r in per_chunk.results if r.id == "geo"]) > 1
    best_geo = next(r for r in per_chunk.results if r.id == "geo")
    grouped_geo = next(r for r in grouped.results if r.id == "geo")
    assert grouped_geo.chunk_index == best_geo.chunk_index
    assert grouped_geo.text == best_geo.text


@pytest.mark.asyncio
async def test_deleted_document_never_returned(query_service, indexing_service, fruit_corpus):
    await indexing_service.delete_document("docA")

    hybrid = await query_service.hybrid_search("apple pie recipe", limit=10)
    vector = await query_service.search("apple pie recipe", limit=10)

    assert "docA" not in {r.id for r in hybrid.results}
    assert "docA" not in {r.id for r in vector.results}
    assert await query_service.check_missing(["docA", "docB"]) == ["docA"]


@pytest.mark.asyncio
async def test_vector_search_reports_unavailable(query_service, vector_index, fruit_corpus):
    vector_index.available = False
    response = await query_service.search("apple", limit=5)
    assert response.unavailable
    assert response.results == []


@pytest.mark.asyncio
async def test_blank_query_returns_nothing(query_service, fruit_corpus):
    response = await query_service.hybrid_search("   ", limit=5)
    assert response.results == []
    assert not response.unavailable


@pytest.mark.asyncio
async def test_check_missing_uses_any_available_index(query_service, vector_index, keyword_index, fruit_corpus):
    vector_index.available = False
    assert await query_service.check_missing(["docA", "docX"]) == ["docX"]

    await keyword_index.close()
    with pytest.raises(IndexUnavailable):
        await query_service.check_missing(["docA"])


@pytest.mark.asyncio
async def test_get_stats(query_service, fruit_corpus):
    stats = await query_service.get_stats()

    assert stats.total_docs == 3
    assert stats.total_chunks == 3
    assert stats.model_loaded
    assert stats.vector_available and stats.keyword_available
    assert stats.last_updated is not None
    assert stats.failed_docs == 0


@pytest.mark.asyncio
async def test_strict_diagnostics_wait_for_slow_index(query_service, vector_index, fruit_corpus, monkeypatch):
    original = vector_index.list_doc_ids

    async def slow_list_doc_ids():
        await asyncio.sleep(0.1)
        return await original()

    monkeypatch.setattr(vector_index, "list_doc_ids", slow_list_doc_ids)
    query_service.subsearch_timeout = 0.01
    assert await query_service.list_indexed_doc_ids(require_all=True) == {"docA", "docB", "docC"}

    query_service.diagnostics_timeout = 0.05
    with pytest.raises(SearchTimeout):
        await query_service.list_indexed_doc_ids(require_all=True)


@pytest.mark.asyncio
async def test_strict_check_missing_needs_both_indexes(query_service, vector_index, fruit_corpus):
    vector_index.available = False
    with pytest.raises(IndexUnavailable):
        await query_service.check_missing(["docA", "docX"], require_all=True)


@pytest.mark.asyncio
async def test_keyword_search_completes_partial_last_word(query_service, fruit_corpus):
    response = await query_service.keyword_search("smoo", limit=5)
    assert [r.id for r in response.results] == ["docC"]
