from fastapi import APIRouter, BackgroundTasks, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import CheckMissingRequest, IndexBatchRequest, IndexDocumentRequest
from server.models.responses import AcceptedResponse, CheckMissingResponse, ScanStatusResponse
from shared.exceptions import IndexUnavailable
from shared.models.indexing import BatchIndexResult, DeleteResult, IndexResult, IndexStats, ScanState

router = APIRouter(prefix="/index", tags=["index"])


@router.post("/document")
async def index_document(
    request: Request,
    body: IndexDocumentRequest,
    _: None = Depends(verify_api_key),
) -> IndexResult:
    """(Re)index one document from the document store.

    Args:
        request (Request): FastAPI request (provides app.state.indexing_service).
        body (IndexDocumentRequest): JSON body with the doc_id.
        _ (None): Auth dependency result (unused).

    Returns:
        IndexResult: Outcome of the indexing run, including failures.
    """
    indexing_service = request.app.state.indexing_service
    return await indexing_service.index_document(body.doc_id)


@router.post("/batch")
async def index_batch(
    request: Request,
    body: IndexBatchRequest,
    _: None = Depends(verify_api_key),
) -> BatchIndexResult:
    indexing_service = request.app.state.indexing_service
    return await indexing_service.index_batch(body.doc_ids)


@router.delete("/document/{doc_id}")
async def delete_document(
    request: Request,
    doc_id: str,
    _: None = Depends(verify_api_key),
) -> DeleteResult:
    """Remove a document from both indexes. Unknown documents are deleted successfully."""
    indexing_service = request.app.state.indexing_service
    return await indexing_service.delete_document(doc_id)


@router.post("/check-missing")
async def check_missing(
    request: Request,
    body: CheckMissingRequest,
    _: None = Depends(verify_api_key),
) -> CheckMissingResponse:
    """Return the given ids that have no chunks indexed."""
    query_service = request.app.state.query_service
    try:
        missing = await query_service.check_missing(body.doc_ids)
    except IndexUnavailable as e:
        request.app.state.logging.warning("Check-missing unavailable: %s", e.message)
        return CheckMissingResponse(missing=[], total=0, unavailable=True)
    return CheckMissingResponse(missing=missing, total=len(missing))


@router.get("/stats")
async def get_stats(
    request: Request,
    _: None = Depends(verify_api_key),
) -> IndexStats:
    query_service = request.app.state.query_service
    return await query_service.get_stats()


@router.post("/scan")
async def trigger_scan(
    request: Request,
    background_tasks: BackgroundTasks,
    _: None = Depends(verify_api_key),
) -> AcceptedResponse:
    """Start an integrity scan in the background unless one is already running.

    Args:
        request (Request): FastAPI request (provides app.state.integrity_scanner).
        background_tasks (BackgroundTasks): FastAPI background task queue.
        _ (None): Auth dependency result (unused).

    Returns:
        AcceptedResponse: "accepted", or "busy" with the current scanner state.
    """
    scanner = request.app.state.integrity_scanner
    if scanner.state != ScanState.IDLE:
        return AcceptedResponse(status="busy", detail=f"scanner is {scanner.state.value}")
    background_tasks.add_task(scanner.do_scan)
    return AcceptedResponse(status="accepted")


@router.get("/scan")
async def get_scan_status(
    request: Request,
    _: None = Depends(verify_api_key),
) -> ScanStatusResponse:
    scanner = request.app.state.integrity_scanner
    return ScanStatusResponse(state=scanner.state, last_report=scanner.last_report)
