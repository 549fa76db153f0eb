from typing import Literal

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str
    limit: int = Field(default=10, ge=1, le=100)
    group_by_doc: bool = True


class HybridSearchRequest(SearchRequest):
    vector_weight: float | None = Field(default=None, ge=0)
    bm25_weight: float | None = Field(default=None, ge=0)


class SuggestRequest(HybridSearchRequest):
    client_id: str = Field(min_length=1)


class IndexDocumentRequest(BaseModel):
    doc_id: str = Field(min_length=1)


class IndexBatchRequest(BaseModel):
    doc_ids: list[str]


class CheckMissingRequest(BaseModel):
    doc_ids: list[str]


class WebhookRequest(BaseModel):
    item_id: str = Field(min_length=1)
    event: Literal["created", "updated", "deleted"]
