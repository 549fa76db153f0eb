from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import HybridSearchRequest, SearchRequest, SuggestRequest
from server.models.responses import SuggestResponse
from shared.models.search import SearchResponse

router = APIRouter(prefix="/search", tags=["search"])


@router.post("")
async def search(
    request: Request,
    body: SearchRequest,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Vector-only semantic search.

    Args:
        request (Request): FastAPI request (provides app.state.query_service).
        body (SearchRequest): JSON body with query, limit and group_by_doc.
        _ (None): Auth dependency result (unused).

    Returns:
        SearchResponse: Ranked results; unavailable is set if semantic search is down.
    """
    query_service = request.app.state.query_service
    return await query_service.search(body.query, limit=body.limit, group_by_doc=body.group_by_doc)


@router.post("/hybrid")
async def hybrid_search(
    request: Request,
    body: HybridSearchRequest,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Fused vector + keyword search. Weights default to the configured values."""
    query_service = request.app.state.query_service
    return await query_service.hybrid_search(
        body.query,
        limit=body.limit,
        vector_weight=body.vector_weight,
        bm25_weight=body.bm25_weight,
        group_by_doc=body.group_by_doc,
    )


@router.post("/suggest")
async def suggest(
    request: Request,
    body: SuggestRequest,
    _: None = Depends(verify_api_key),
) -> SuggestResponse:
    """Debounced hybrid search for search-as-you-type.

    Only the latest request per client_id is answered with results; older ones
    resolve with superseded=True.
    """
    query_service = request.app.state.query_service
    coalescer = request.app.state.search_coalescer
    response = await coalescer.submit(
        body.client_id,
        lambda: query_service.hybrid_search(
            body.query,
            limit=body.limit,
            vector_weight=body.vector_weight,
            bm25_weight=body.bm25_weight,
            group_by_doc=body.group_by_doc,
        ),
    )
    if response is None:
        return SuggestResponse(superseded=True)
    return SuggestResponse(superseded=False, response=response)
