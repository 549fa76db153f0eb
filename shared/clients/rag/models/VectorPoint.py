"""VectorPoint model: the payload stored alongside each chunk vector in a RAG backend."""

from pydantic import BaseModel

from shared.models.document import ChunkMetadata, ChunkRecord, IndexHit


class VectorPoint(BaseModel):
    """Payload stored alongside each vector chunk in a RAG backend.

    Attributes:
        doc_id:       Document id as assigned by the document store.
        chunk_index:  Zero-based position of this chunk within the document.
        chunk_text:   Raw text content of this chunk.
        title:        Human-readable document title.
        type:         Document type (e.g. "article", "pdf").
        tags:         Tags attached to the document.
        created_at:   ISO-8601 creation date of the document, if available.
        indexed_seq:  Monotonic write sequence; breaks score ties in favour of
                      the chunk indexed first.
    """

    doc_id: str
    chunk_index: int
    chunk_text: str = ""

    title: str = ""
    type: str = "document"
    tags: list[str] = []
    created_at: str | None = None

    indexed_seq: int = 0

    @classmethod
    def from_record(cls, record: ChunkRecord, indexed_seq: int) -> "VectorPoint":
        return cls(
            doc_id=record.doc_id,
            chunk_index=record.chunk_index,
            chunk_text=record.text,
            title=record.metadata.title,
            type=record.metadata.type,
            tags=record.metadata.tags,
            created_at=record.metadata.created_at,
            indexed_seq=indexed_seq,
        )

    def get_metadata(self) -> ChunkMetadata:
        return ChunkMetadata(title=self.title, type=self.type, tags=self.tags, created_at=self.created_at)

    def to_record(self) -> ChunkRecord:
        return ChunkRecord(doc_id=self.doc_id, chunk_index=self.chunk_index, text=self.chunk_text, metadata=self.get_metadata())

    def to_hit(self, score: float) -> IndexHit:
        return IndexHit(doc_id=self.doc_id, chunk_index=self.chunk_index, text=self.chunk_text, metadata=self.get_metadata(), score=score)
