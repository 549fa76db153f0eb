"""Tests for the chunking and indexing pipeline."""

import asyncio

import pytest

from fakes import FAKE_VECTOR_SIZE
from shared.exceptions import EmbeddingUnavailable
from shared.models.document import ChunkMetadata
from shared.models.indexing import IndexStatus

LONG_TEXT = " ".join(f"Sentence number {i} talks about orchards and apples." for i in range(30))


@pytest.mark.asyncio
async def test_index_document_writes_both_indexes(indexing_service, store_client, vector_index, keyword_index):
    store_client.add("docA", text=LONG_TEXT, title="Orchards", content_type="note", tags=["fruit"])

    result = await indexing_service.index_document("docA")

    assert result.status == IndexStatus.INDEXED
    assert result.success
    assert result.chunks_indexed > 1
    assert len(vector_index.records("docA")) == result.chunks_indexed
    assert await keyword_index.count() == result.chunks_indexed
    record = vector_index.records("docA")[0]
    assert record.metadata == ChunkMetadata(title="Orchards", type="note", tags=["fruit"])
    assert indexing_service.get_last_updated() is not None


@pytest.mark.asyncio
async def test_reindexing_unchanged_text_is_idempotent(indexing_service, store_client, vector_index, keyword_index):
    store_client.add("docA", text=LONG_TEXT)

    await indexing_service.index_document("docA")
    first = [(r.chunk_index, r.text, r.vector) for r in vector_index.records("docA")]
    first_count = await keyword_index.count()
    await indexing_service.index_document("docA")
    second = [(r.chunk_index, r.text, r.vector) for r in vector_index.records("docA")]

    assert first == second
    assert await keyword_index.count() == first_count
    assert await vector_index.count() == len(first)


@pytest.mark.asyncio
async def test_reindexing_changed_text_replaces_all_chunks(indexing_service, store_client, vector_index, keyword_index, query_service):
    store_client.add("docA", text=LONG_TEXT)
    await indexing_service.index_document("docA")

    store_client.add("docA", text="A short replacement text about bicycles.")
    result = await indexing_service.index_document("docA")

    assert result.chunks_indexed == 1
    assert [r.text for r in vector_index.records("docA")] == ["A short replacement text about bicycles."]
    assert await keyword_index.search("orchards", k=10) == []
    assert await query_service.check_missing(["docA"]) == []


@pytest.mark.asyncio
async def test_short_text_is_no_content(indexing_service, store_client, vector_index, keyword_index):
    store_client.add("docA", text=LONG_TEXT)
    await indexing_service.index_document("docA")

    store_client.add("docA", text="tiny")
    result = await indexing_service.index_document("docA")

    assert result.status == IndexStatus.NO_CONTENT
    assert result.success
    assert result.chunks_indexed == 0
    assert vector_index.records("docA") == []
    assert await keyword_index.list_doc_ids() == set()


@pytest.mark.asyncio
async def test_missing_document_is_purged(indexing_service, store_client, vector_index):
    store_client.add("docA", text=LONG_TEXT)
    await indexing_service.index_document("docA")
    store_client.remove("docA")

    result = await indexing_service.index_document("docA")

    assert result.status == IndexStatus.NOT_FOUND
    assert vector_index.records("docA") == []


@pytest.mark.asyncio
async def test_text_is_extracted_from_source_file(indexing_service, store_client, vector_index, tmp_path):
    source = tmp_path / "note.md"
    source.write_text("# Notes\n\nExtracted markdown content about lighthouses.", encoding="utf-8")
    store_client.add("docA", content_type="markdown", source_ref=str(source))

    result = await indexing_service.index_document("docA")

    assert result.status == IndexStatus.INDEXED
    assert "lighthouses" in vector_index.records("docA")[0].text


@pytest.mark.asyncio
async def test_vanished_source_file_is_no_content(indexing_service, store_client, tmp_path):
    store_client.add("docA", content_type="text", source_ref=str(tmp_path / "gone.txt"))
    result = await indexing_service.index_document("docA")
    assert result.status == IndexStatus.NO_CONTENT


@pytest.mark.asyncio
async def test_unknown_content_type_is_no_content(indexing_service, store_client):
    store_client.add("docA", content_type="spreadsheet", source_ref="/data/sheet.xlsx")
    result = await indexing_service.index_document("docA")
    assert result.status == IndexStatus.NO_CONTENT


@pytest.mark.asyncio
async def test_embedding_failure_writes_nothing(indexing_service, store_client, embed_client, vector_index, keyword_index):
    embed_client.available = False
    store_client.add("docA", text=LONG_TEXT)

    result = await indexing_service.index_document("docA")

    assert result.status == IndexStatus.EMBEDDING_FAILED
    assert not result.success
    assert result.attempts == 3
    assert embed_client.calls == 3
    assert vector_index.upsert_calls == 0
    assert await keyword_index.count() == 0
    assert indexing_service.get_failed_doc_ids() == ["docA"]


@pytest.mark.asyncio
async def test_transient_write_failure_is_retried(indexing_service, store_client, vector_index):
    vector_index.write_failures = 1
    store_client.add("docA", text=LONG_TEXT)

    result = await indexing_service.index_document("docA")

    assert result.status == IndexStatus.INDEXED
    assert result.attempts == 2
    assert indexing_service.get_failed_doc_ids() == []


@pytest.mark.asyncio
async def test_persistent_write_failure_is_reported(indexing_service, store_client, vector_index):
    vector_index.write_failures = 10
    store_client.add("docA", text=LONG_TEXT)

    result = await indexing_service.index_document("docA")

    assert result.status == IndexStatus.INDEX_WRITE_FAILED
    assert "docA" in indexing_service.get_failed_doc_ids()


@pytest.mark.asyncio
async def test_store_outage_is_extraction_failure(indexing_service, store_client):
    store_client.available = False
    result = await indexing_service.index_document("docA")
    assert result.status == IndexStatus.EXTRACTION_FAILED


@pytest.mark.asyncio
async def test_successful_run_clears_failed_registry(indexing_service, store_client, embed_client):
    store_client.add("docA", text=LONG_TEXT)
    embed_client.available = False
    await indexing_service.index_document("docA")
    embed_client.available = True
    await indexing_service.index_document("docA")
    assert indexing_service.get_failed_doc_ids() == []


@pytest.mark.asyncio
async def test_index_text_uses_given_metadata(indexing_service, vector_index):
    result = await indexing_service.index_text("clip-1", "Web clip about tidal energy.", ChunkMetadata(title="Clip", type="web"))
    assert result.status == IndexStatus.INDEXED
    assert vector_index.records("clip-1")[0].metadata.title == "Clip"


@pytest.mark.asyncio
async def test_index_batch_counts_outcomes(indexing_service, store_client):
    store_client.add("docA", text=LONG_TEXT)
    store_client.add("docB", text="tiny")

    batch = await indexing_service.index_batch(["docA", "docB", "ghost", "docA"])

    assert (batch.indexed, batch.skipped, batch.failed) == (1, 2, 0)
    assert [r.doc_id for r in batch.results] == ["docA", "docB", "ghost"]


@pytest.mark.asyncio
async def test_delete_document_removes_from_both_indexes(indexing_service, store_client, vector_index, keyword_index):
    store_client.add("docA", text=LONG_TEXT)
    await indexing_service.index_document("docA")

    result = await indexing_service.delete_document("docA")
    again = await indexing_service.delete_document("docA")

    assert result.success and again.success
    assert vector_index.records("docA") == []
    assert await keyword_index.search("apples", k=10) == []


@pytest.mark.asyncio
async def test_delete_document_reports_index_errors(indexing_service, vector_index):
    vector_index.available = False
    result = await indexing_service.delete_document("docA")
    assert not result.success
    assert result.errors and result.errors[0].startswith("vector:")


@pytest.mark.asyncio
async def test_concurrent_indexing_of_one_document_is_serialized(indexing_service, store_client, vector_index, monkeypatch):
    store_client.add("docA", text=LONG_TEXT)
    active = 0
    max_active = 0
    original_upsert = vector_index.upsert_chunks

    async def tracking_upsert(doc_id, records):
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0.01)
        try:
            return await original_upsert(doc_id, records)
        finally:
            active -= 1

    monkeypatch.setattr(vector_index, "upsert_chunks", tracking_upsert)
    results = await asyncio.gather(*[indexing_service.index_document("docA") for _ in range(3)])

    assert all(r.status == IndexStatus.INDEXED for r in results)
    assert max_active == 1


@pytest.mark.asyncio
async def test_collection_is_created_once_embedder_recovers(indexing_service, store_client, embed_client, vector_index):
    vector_index.collection_exists = False
    embed_client.available = False
    store_client.add("docA", text=LONG_TEXT)

    with pytest.raises(EmbeddingUnavailable):
        await indexing_service.ensure_vector_collection()
    first = await indexing_service.index_document("docA")
    assert first.status == IndexStatus.EMBEDDING_FAILED
    assert vector_index.collection_sizes == []

    embed_client.available = True
    second = await indexing_service.index_document("docA")

    assert second.status == IndexStatus.INDEXED
    assert vector_index.collection_sizes == [FAKE_VECTOR_SIZE]
    assert vector_index.records("docA")


@pytest.mark.asyncio
async def test_collection_setup_runs_once(indexing_service, vector_index, monkeypatch):
    calls = 0
    original = vector_index.ensure_collection

    async def counting_ensure(vector_size, distance="Cosine"):
        nonlocal calls
        calls += 1
        return await original(vector_size, distance)

    monkeypatch.setattr(vector_index, "ensure_collection", counting_ensure)
    await indexing_service.index_text("docA", LONG_TEXT)
    await indexing_service.index_text("docB", LONG_TEXT)

    assert calls == 1
