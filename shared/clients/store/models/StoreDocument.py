from pydantic import BaseModel


class StoreDocument(BaseModel):
    """A document as known to the authoritative document store.

    Attributes:
        id:           Stable document id.
        title:        Human-readable title.
        content_type: Declared content type (e.g. "markdown", "pdf"); selects the extractor.
        tags:         Tags attached to the document.
        created_at:   ISO-8601 creation timestamp, if known.
        text:         Inline text content, if the store keeps it.
        source_ref:   Reference to the source file (e.g. a local path) for extraction.
    """

    id: str
    title: str = ""
    content_type: str = "document"
    tags: list[str] = []
    created_at: str | None = None
    text: str | None = None
    source_ref: str | None = None
